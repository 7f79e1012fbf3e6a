"""
Same-day co-occurrence graph and breadth-first reachability.

Two incidents are adjacent when they happened on the same calendar date.
The relation is an equivalence per date, so every connected component is a
single date bucket and the reachable set from a start id is exactly the set
of incidents sharing its date. That is how the adjacency is defined, and it
is kept as-is.
"""

from collections import defaultdict, deque
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Sequence

from incident_atlas.errors import NodeNotFoundError
from incident_atlas.records import IncidentRecord


AdjacencyGraph = Mapping[str, FrozenSet[str]]


# =============================================================================
# Graph Construction
# =============================================================================

def group_ids_by_date(records: Sequence[IncidentRecord]) -> Dict[date, List[str]]:
    """Bucket record ids by calendar date, preserving input order within a bucket."""
    buckets: Dict[date, List[str]] = defaultdict(list)
    for record in records:
        buckets[record.date].append(record.id)
    return dict(buckets)


def build_adjacency(records: Sequence[IncidentRecord]) -> AdjacencyGraph:
    """
    Build the same-date adjacency graph.

    Records are bucketed by date first, so the cost is linear in the number
    of records plus the number of same-date pairs.

    Args:
        records: Cleaned record set

    Returns:
        Read-only mapping of record id -> ids sharing its date (never itself).
        Every input id is a key; an incident alone on its date maps to an
        empty set.
    """
    bucket_members: Dict[date, FrozenSet[str]] = {
        day: frozenset(ids) for day, ids in group_ids_by_date(records).items()
    }

    adjacency: Dict[str, FrozenSet[str]] = {}
    for record in records:
        adjacency[record.id] = bucket_members[record.date] - {record.id}

    return MappingProxyType(adjacency)


def build_adjacency_pairwise(records: Sequence[IncidentRecord]) -> AdjacencyGraph:
    """
    Build the adjacency graph straight from the pairwise definition.

    O(n^2); used to cross-check build_adjacency on small inputs.
    """
    adjacency: Dict[str, FrozenSet[str]] = {}
    for record in records:
        adjacency[record.id] = frozenset(
            other.id
            for other in records
            if other.id != record.id and other.date == record.date
        )
    return MappingProxyType(adjacency)


# =============================================================================
# Reachability
# =============================================================================

def reachable_levels(
    graph: Mapping[str, Iterable[str]],
    start_id: str,
) -> Dict[str, int]:
    """
    Breadth-first traversal from start_id.

    A node is marked visited as soon as it is discovered, so nothing is
    enqueued twice.

    Args:
        graph: id -> neighbor ids
        start_id: Node to start from

    Returns:
        id -> hop count from start_id, in discovery order (start_id maps to 0)

    Raises:
        NodeNotFoundError: If start_id is not a key of graph
    """
    if start_id not in graph:
        raise NodeNotFoundError(start_id)

    levels: Dict[str, int] = {start_id: 0}
    frontier = deque([start_id])

    while frontier:
        node = frontier.popleft()
        for neighbor in graph.get(node, ()):
            if neighbor not in levels:
                levels[neighbor] = levels[node] + 1
                frontier.append(neighbor)

    return levels


def reachable_set(
    graph: Mapping[str, Iterable[str]],
    start_id: str,
) -> FrozenSet[str]:
    """
    Ids reachable from start_id, including start_id itself.

    Raises:
        NodeNotFoundError: If start_id is not a key of graph
    """
    return frozenset(reachable_levels(graph, start_id))


# =============================================================================
# Summaries
# =============================================================================

def graph_summary(graph: Mapping[str, Iterable[str]]) -> Dict[str, Any]:
    """Node/edge counts for the run log (edges counted once per undirected pair)."""
    degrees = [len(set(neighbors)) for neighbors in graph.values()]
    return {
        "node_count": len(graph),
        "edge_count": sum(degrees) // 2,
        "isolated_nodes": sum(1 for d in degrees if d == 0),
        "max_degree": max(degrees) if degrees else 0,
    }
