"""
Tests for the same-day co-occurrence graph and reachability.
"""

import random
from types import MappingProxyType

import pytest

from incident_atlas.errors import InvalidInputError, NodeNotFoundError
from incident_atlas.graph import (
    build_adjacency,
    build_adjacency_pairwise,
    graph_summary,
    group_ids_by_date,
    reachable_levels,
    reachable_set,
)


@pytest.fixture
def three_records(make_record):
    """Ids 1, 2 on 2020-01-01 and id 3 on 2020-01-02."""
    return [
        make_record("1", "01/01/20 08:00"),
        make_record("2", "01/01/20 22:30"),
        make_record("3", "01/02/20 00:01"),
    ]


@pytest.fixture
def mixed_records(make_record):
    """Twelve records over four dates, some alone on their date."""
    dates = [
        "01/01/20 01:00", "01/01/20 02:00", "01/01/20 03:00",
        "01/02/20 04:00",
        "01/03/20 05:00", "01/03/20 06:00",
        "02/01/20 07:00", "02/01/20 08:00", "02/01/20 09:00", "02/01/20 10:00",
        "03/01/21 11:00",
        "01/03/20 12:00",
    ]
    return [make_record(str(100 + i), d) for i, d in enumerate(dates)]


class TestBuildAdjacency:
    """Tests for graph construction."""

    def test_three_record_example(self, three_records):
        graph = build_adjacency(three_records)

        assert graph["1"] == {"2"}
        assert graph["2"] == {"1"}
        assert graph["3"] == frozenset()

    def test_every_id_is_a_key(self, mixed_records):
        graph = build_adjacency(mixed_records)
        assert set(graph) == {r.id for r in mixed_records}

    def test_no_self_loops(self, mixed_records):
        graph = build_adjacency(mixed_records)
        for node, neighbors in graph.items():
            assert node not in neighbors

    def test_symmetric(self, mixed_records):
        graph = build_adjacency(mixed_records)
        for node, neighbors in graph.items():
            for neighbor in neighbors:
                assert node in graph[neighbor]

    def test_edge_iff_same_date(self, mixed_records):
        graph = build_adjacency(mixed_records)
        for a in mixed_records:
            for b in mixed_records:
                if a.id == b.id:
                    continue
                assert (b.id in graph[a.id]) == (a.date == b.date)

    def test_matches_pairwise_definition(self, mixed_records):
        assert dict(build_adjacency(mixed_records)) == dict(build_adjacency_pairwise(mixed_records))

    def test_order_independent(self, mixed_records):
        shuffled = list(mixed_records)
        random.Random(7).shuffle(shuffled)
        assert dict(build_adjacency(shuffled)) == dict(build_adjacency(mixed_records))

    def test_read_only(self, three_records):
        graph = build_adjacency(three_records)
        assert isinstance(graph, MappingProxyType)
        with pytest.raises(TypeError):
            graph["4"] = frozenset()

    def test_empty_input(self):
        assert dict(build_adjacency([])) == {}

    def test_group_ids_by_date_keeps_order(self, three_records):
        groups = group_ids_by_date(three_records)
        assert [ids for ids in groups.values()] == [["1", "2"], ["3"]]


class TestReachability:
    """Tests for breadth-first reachability."""

    def test_three_record_example(self, three_records):
        graph = build_adjacency(three_records)
        assert reachable_set(graph, "1") == {"1", "2"}
        assert reachable_set(graph, "3") == {"3"}

    def test_start_included(self, mixed_records):
        graph = build_adjacency(mixed_records)
        for record in mixed_records:
            assert record.id in reachable_set(graph, record.id)

    def test_reachable_equals_date_bucket(self, mixed_records):
        graph = build_adjacency(mixed_records)
        for record in mixed_records:
            bucket = {r.id for r in mixed_records if r.date == record.date}
            assert reachable_set(graph, record.id) == bucket

    def test_levels_on_same_date_graph(self, three_records):
        graph = build_adjacency(three_records)
        assert reachable_levels(graph, "1") == {"1": 0, "2": 1}

    def test_levels_on_general_graph(self):
        """Traversal works on any adjacency mapping, not only date buckets."""
        chain = {"a": {"b"}, "b": {"a", "c"}, "c": {"b", "d"}, "d": {"c"}, "e": set()}
        assert reachable_levels(chain, "a") == {"a": 0, "b": 1, "c": 2, "d": 3}
        assert reachable_set(chain, "e") == {"e"}

    def test_cycle_terminates(self):
        cycle = {"a": {"b"}, "b": {"c"}, "c": {"a"}}
        assert reachable_set(cycle, "b") == {"a", "b", "c"}

    def test_neighbor_without_key(self):
        """A neighbor missing from the keys is reached but has no onward edges."""
        graph = {"a": {"b"}}
        assert reachable_set(graph, "a") == {"a", "b"}

    @pytest.mark.parametrize("graph_name", ["date_buckets", "chain", "cycle"])
    def test_neighbor_order_does_not_change_result(self, graph_name, mixed_records):
        """Forward, reversed and shuffled neighbor lists reach the same nodes at the same depth."""
        base = {
            "date_buckets": {k: sorted(v) for k, v in build_adjacency(mixed_records).items()},
            "chain": {"a": ["b"], "b": ["a", "c"], "c": ["b", "d"], "d": ["c", "e"], "e": ["d"]},
            "cycle": {"a": ["b", "e"], "b": ["a", "c"], "c": ["b", "d"], "d": ["c", "e"], "e": ["d", "a"]},
        }[graph_name]
        rng = random.Random(11)

        def shuffled(neighbors):
            neighbors = list(neighbors)
            rng.shuffle(neighbors)
            return neighbors

        orderings = [
            base,
            {node: list(reversed(neighbors)) for node, neighbors in base.items()},
            {node: shuffled(neighbors) for node, neighbors in base.items()},
            {node: shuffled(base[node]) for node in reversed(list(base))},
        ]

        for start in base:
            expected_set = reachable_set(orderings[0], start)
            expected_levels = reachable_levels(orderings[0], start)
            for graph in orderings[1:]:
                assert reachable_set(graph, start) == expected_set
                assert reachable_levels(graph, start) == expected_levels

    def test_unknown_start(self, three_records):
        graph = build_adjacency(three_records)
        with pytest.raises(NodeNotFoundError) as excinfo:
            reachable_set(graph, "999")
        assert excinfo.value.node_id == "999"
        assert "999" in str(excinfo.value)

    def test_unknown_start_is_invalid_input(self, three_records):
        graph = build_adjacency(three_records)
        with pytest.raises(InvalidInputError):
            reachable_levels(graph, "999")

    def test_graph_not_mutated(self, mixed_records):
        graph = build_adjacency(mixed_records)
        before = dict(graph)
        reachable_set(graph, mixed_records[0].id)
        assert dict(graph) == before


class TestGraphSummary:
    """Tests for the logged graph statistics."""

    def test_three_record_example(self, three_records):
        summary = graph_summary(build_adjacency(three_records))
        assert summary == {"node_count": 3, "edge_count": 1, "isolated_nodes": 1, "max_degree": 1}

    def test_edge_count_is_pairs_per_date(self, mixed_records):
        # bucket sizes 3, 1, 3, 4, 1 -> 3 + 0 + 3 + 6 + 0
        summary = graph_summary(build_adjacency(mixed_records))
        assert summary["edge_count"] == 12
        assert summary["isolated_nodes"] == 2
        assert summary["max_degree"] == 3

    def test_empty_graph(self):
        assert graph_summary({}) == {"node_count": 0, "edge_count": 0, "isolated_nodes": 0, "max_degree": 0}
