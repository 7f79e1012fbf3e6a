"""
K-means clustering of incident locations.

Lloyd's algorithm over 2-D points with deterministic seeding:
1. Seed k centers with the first k distinct points (input order).
2. Assign each point to its nearest center (Euclidean); ties go to the
   lowest cluster index.
3. Move each center to the mean of its members; an empty cluster keeps
   its previous center.
4. Stop when no point changes cluster, or after max_iter iterations.

The loop is bounded, so a run always terminates and returns the last
assignment even when it has not converged.
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from incident_atlas.errors import InvalidInputError
from incident_atlas.records import IncidentRecord


DEFAULT_MAX_ITER = 100


@dataclass(frozen=True)
class Cluster:
    """A k-means cluster: its center and the indices of its member points."""
    index: int
    center: Tuple[float, float]
    members: Tuple[int, ...]

    @property
    def size(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class ClusteringResult:
    """Outcome of one k-means run."""
    clusters: Tuple[Cluster, ...]
    labels: Tuple[int, ...]
    iterations: int
    converged: bool
    inertia: float
    point_ids: Tuple[str, ...] = ()

    @property
    def k(self) -> int:
        return len(self.clusters)

    @property
    def centers(self) -> np.ndarray:
        return np.array([c.center for c in self.clusters], dtype=float)

    def member_ids(self, cluster_index: int) -> List[str]:
        """Record ids of a cluster's members (requires point_ids)."""
        if not self.point_ids:
            raise InvalidInputError("Clustering was run on bare points; no record ids available")
        return [self.point_ids[i] for i in self.clusters[cluster_index].members]


# =============================================================================
# Input Validation
# =============================================================================

def as_point_array(points) -> np.ndarray:
    """
    Coerce points to a float array of shape (n, 2).

    Raises:
        InvalidInputError: If the set is empty, not 2-D, or not finite
    """
    arr = np.asarray(points, dtype=float)

    if arr.size == 0:
        raise InvalidInputError("Cannot cluster an empty point set")
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise InvalidInputError(f"Points must have shape (n, 2), got {arr.shape}")
    if not np.isfinite(arr).all():
        raise InvalidInputError("Points contain NaN or infinite coordinates")

    return arr


def _check_parameters(n_points: int, k: int, max_iter: int) -> None:
    if k < 1 or k > n_points:
        raise InvalidInputError(f"k must be in [1, {n_points}] for {n_points} points, got k={k}")
    if max_iter < 1:
        raise InvalidInputError(f"max_iter must be >= 1, got {max_iter}")


# =============================================================================
# Algorithm Steps
# =============================================================================

def seed_centers(points: np.ndarray, k: int) -> np.ndarray:
    """
    Pick the first k distinct points as initial centers.

    With fewer than k distinct points, the remaining seeds repeat points in
    input order; those duplicate centers never win a tie and stay empty.
    """
    chosen: List[int] = []
    seen = set()
    for i, point in enumerate(points):
        key = (float(point[0]), float(point[1]))
        if key not in seen:
            seen.add(key)
            chosen.append(i)
            if len(chosen) == k:
                break

    i = 0
    while len(chosen) < k:
        chosen.append(i % len(points))
        i += 1

    return points[chosen].copy()


def assign_points(points: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """
    Label each point with the index of its nearest center.

    np.argmin returns the first minimum, which gives the lowest-index tie-break.
    """
    diffs = points[:, np.newaxis, :] - centers[np.newaxis, :, :]
    sq_dist = np.einsum("ijk,ijk->ij", diffs, diffs)
    return np.argmin(sq_dist, axis=1)


def update_centers(points: np.ndarray, labels: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """Recompute centers as member means; empty clusters keep their center."""
    new_centers = centers.copy()
    for j in range(len(centers)):
        mask = labels == j
        if mask.any():
            new_centers[j] = points[mask].mean(axis=0)
    return new_centers


def compute_inertia(points: np.ndarray, labels: np.ndarray, centers: np.ndarray) -> float:
    """Sum of squared distances from each point to its assigned center."""
    diffs = points - centers[labels]
    return float(np.sum(diffs * diffs))


# =============================================================================
# Driver
# =============================================================================

def kmeans(
    points,
    k: int,
    max_iter: int = DEFAULT_MAX_ITER,
    point_ids: Sequence[str] = (),
) -> ClusteringResult:
    """
    Partition points into exactly k clusters.

    Args:
        points: Array-like of shape (n, 2)
        k: Number of clusters, 1 <= k <= n
        max_iter: Iteration ceiling (>= 1)
        point_ids: Optional record id per point, kept on the result

    Returns:
        ClusteringResult whose clusters cover every point exactly once

    Raises:
        InvalidInputError: On an empty/ill-shaped point set or k/max_iter out of bounds
    """
    arr = as_point_array(points)
    n_points = len(arr)
    _check_parameters(n_points, k, max_iter)

    if point_ids and len(point_ids) != n_points:
        raise InvalidInputError(
            f"Got {len(point_ids)} point ids for {n_points} points"
        )

    centers = seed_centers(arr, k)
    labels = assign_points(arr, centers)
    converged = False
    iterations = 0

    for iterations in range(1, max_iter + 1):
        centers = update_centers(arr, labels, centers)
        new_labels = assign_points(arr, centers)
        if np.array_equal(new_labels, labels):
            converged = True
            break
        labels = new_labels

    if not converged:
        # Centers must describe the assignment being returned
        centers = update_centers(arr, labels, centers)

    clusters = tuple(
        Cluster(
            index=j,
            center=(float(centers[j][0]), float(centers[j][1])),
            members=tuple(int(i) for i in np.flatnonzero(labels == j)),
        )
        for j in range(k)
    )

    return ClusteringResult(
        clusters=clusters,
        labels=tuple(int(label) for label in labels),
        iterations=iterations,
        converged=converged,
        inertia=compute_inertia(arr, labels, centers),
        point_ids=tuple(str(pid) for pid in point_ids),
    )


def cluster_records(
    records: Sequence[IncidentRecord],
    k: int,
    max_iter: int = DEFAULT_MAX_ITER,
) -> ClusteringResult:
    """
    Cluster records by (x_coordinate, y_coordinate).

    Records without both coordinates are left out; the result's point_ids
    map point indices back to record ids.
    """
    located = [r for r in records if r.has_coordinates]
    if not located:
        raise InvalidInputError("No records with both x_coordinate and y_coordinate to cluster")

    points = [(r.x_coordinate, r.y_coordinate) for r in located]
    return kmeans(points, k, max_iter=max_iter, point_ids=[r.id for r in located])


def cluster_sizes(result: ClusteringResult) -> Dict[int, int]:
    """Map cluster index to member count."""
    return {c.index: c.size for c in result.clusters}
