"""
Tests for k-means clustering.

- Exactly k clusters; every point in exactly one
- Deterministic seeding: first k distinct points
- Ties go to the lowest cluster index
- Empty clusters keep their center
- Iteration ceiling is honored
"""

import numpy as np
import pytest

from incident_atlas.errors import InvalidInputError
from incident_atlas.kmeans import (
    assign_points,
    cluster_records,
    cluster_sizes,
    kmeans,
    seed_centers,
    update_centers,
)


FOUR_POINTS = [(0, 0), (0, 1), (10, 10), (10, 11)]


class TestTwoGroups:
    """Two well-separated pairs with k=2."""

    def test_converges_to_pairs(self):
        result = kmeans(FOUR_POINTS, 2)

        assert result.converged
        assert result.labels == (0, 0, 1, 1)
        assert result.clusters[0].members == (0, 1)
        assert result.clusters[1].members == (2, 3)

    def test_centers(self):
        result = kmeans(FOUR_POINTS, 2)
        assert result.clusters[0].center == pytest.approx((0.0, 0.5))
        assert result.clusters[1].center == pytest.approx((10.0, 10.5))

    def test_inertia(self):
        result = kmeans(FOUR_POINTS, 2)
        assert result.inertia == pytest.approx(1.0)

    def test_iteration_count(self):
        """Seeds (0,0),(0,1): one move of center 1, then a stable pass."""
        result = kmeans(FOUR_POINTS, 2)
        assert result.iterations == 2


class TestPartition:
    """Structural guarantees of the result."""

    @pytest.mark.parametrize("k", [1, 2, 3, 4])
    def test_exactly_k_clusters_covering_all_points(self, k):
        result = kmeans(FOUR_POINTS, k)

        assert result.k == k
        members = sorted(i for c in result.clusters for i in c.members)
        assert members == list(range(len(FOUR_POINTS)))

    def test_labels_agree_with_members(self):
        result = kmeans(FOUR_POINTS, 3)
        for cluster in result.clusters:
            for i in cluster.members:
                assert result.labels[i] == cluster.index

    def test_k_equals_one_center_is_mean(self):
        result = kmeans(FOUR_POINTS, 1)
        assert result.clusters[0].center == pytest.approx((5.0, 5.5))

    def test_deterministic(self):
        rng = np.random.default_rng(0)
        points = rng.uniform(0, 100, size=(50, 2))

        first = kmeans(points, 4)
        second = kmeans(points, 4)

        assert first.labels == second.labels
        np.testing.assert_array_equal(first.centers, second.centers)

    def test_nearest_center_property(self):
        """On convergence each point sits with its nearest center."""
        rng = np.random.default_rng(1)
        points = rng.uniform(0, 100, size=(40, 2))
        result = kmeans(points, 3)

        assert result.converged
        np.testing.assert_array_equal(assign_points(points, result.centers), np.array(result.labels))


class TestSeedingAndTies:
    """Tests for seeding rules and tie-breaking."""

    def test_seeds_skip_duplicates(self):
        points = np.array([(0, 0), (0, 0), (5, 5)], dtype=float)
        np.testing.assert_array_equal(seed_centers(points, 2), [[0, 0], [5, 5]])

    def test_seeds_pad_when_too_few_distinct(self):
        points = np.array([(1, 1), (1, 1), (1, 1)], dtype=float)
        np.testing.assert_array_equal(seed_centers(points, 2), [[1, 1], [1, 1]])

    def test_tie_goes_to_lowest_index(self):
        centers = np.array([(0, 0), (2, 0)], dtype=float)
        labels = assign_points(np.array([(1, 0)], dtype=float), centers)
        assert labels.tolist() == [0]

    def test_tie_in_full_run(self):
        result = kmeans([(0, 0), (2, 0), (1, 0)], 2)
        assert result.labels == (0, 1, 0)

    def test_duplicate_points_leave_empty_cluster(self):
        """Identical points all tie to cluster 0; cluster 1 stays empty with its seed center."""
        result = kmeans([(1, 1), (1, 1), (1, 1)], 2)

        assert result.k == 2
        assert result.clusters[0].size == 3
        assert result.clusters[1].size == 0
        assert result.clusters[1].center == (1.0, 1.0)
        assert cluster_sizes(result) == {0: 3, 1: 0}

    def test_empty_cluster_keeps_center(self):
        points = np.array([(0, 0), (1, 0)], dtype=float)
        centers = np.array([(0, 0), (50, 50)], dtype=float)
        labels = np.array([0, 0])
        updated = update_centers(points, labels, centers)
        np.testing.assert_array_equal(updated, [[0.5, 0], [50, 50]])


class TestIterationCeiling:
    """Tests for the max_iter bound."""

    def test_stops_at_ceiling(self):
        result = kmeans(FOUR_POINTS, 2, max_iter=1)

        assert not result.converged
        assert result.iterations == 1
        assert result.labels == (0, 0, 1, 1)

    def test_centers_match_returned_labels(self):
        result = kmeans(FOUR_POINTS, 2, max_iter=1)
        assert result.clusters[0].center == pytest.approx((0.0, 0.5))
        assert result.clusters[1].center == pytest.approx((10.0, 10.5))


class TestInvalidInput:
    """Out-of-bounds parameters and unusable point sets."""

    def test_empty_points(self):
        with pytest.raises(InvalidInputError):
            kmeans([], 1)

    @pytest.mark.parametrize("k", [0, -1, 5])
    def test_k_out_of_bounds(self, k):
        with pytest.raises(InvalidInputError):
            kmeans(FOUR_POINTS, k)

    def test_max_iter_zero(self):
        with pytest.raises(InvalidInputError):
            kmeans(FOUR_POINTS, 2, max_iter=0)

    def test_non_finite_points(self):
        with pytest.raises(InvalidInputError):
            kmeans([(0, 0), (float("nan"), 1)], 1)

    def test_wrong_shape(self):
        with pytest.raises(InvalidInputError):
            kmeans([(0, 0, 0), (1, 1, 1)], 1)

    def test_point_id_count_mismatch(self):
        with pytest.raises(InvalidInputError):
            kmeans(FOUR_POINTS, 2, point_ids=["a", "b"])

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            kmeans(FOUR_POINTS, 0)


class TestClusterRecords:
    """Tests for clustering normalized records."""

    def test_skips_records_without_coordinates(self, make_record):
        records = [
            make_record("a", x="0", y="0"),
            make_record("b"),
            make_record("c", x="0", y="1"),
            make_record("d", x="10", y="10"),
            make_record("e", x="10", y="11"),
        ]
        result = cluster_records(records, 2)

        assert result.point_ids == ("a", "c", "d", "e")
        assert result.member_ids(0) == ["a", "c"]
        assert result.member_ids(1) == ["d", "e"]

    def test_no_located_records(self, make_record):
        with pytest.raises(InvalidInputError):
            cluster_records([make_record("a")], 1)

    def test_member_ids_requires_ids(self):
        result = kmeans(FOUR_POINTS, 2)
        with pytest.raises(InvalidInputError):
            result.member_ids(0)
