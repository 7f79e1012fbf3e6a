"""
End-to-end analysis run over one batch of raw incident rows.

raw rows -> normalize -> (optionally) keep records with coordinates ->
{k-means, per-date counts, same-date graph -> reachable set}

The three analyses only read the cleaned record set; none of them depends
on another's output.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from incident_atlas.errors import InvalidInputError
from incident_atlas.graph import AdjacencyGraph, build_adjacency, graph_summary, reachable_set
from incident_atlas.kmeans import DEFAULT_MAX_ITER, ClusteringResult, cluster_records, cluster_sizes
from incident_atlas.records import (
    ON_MALFORMED_RAISE,
    TIMESTAMP_FORMAT,
    IncidentRecord,
    SkippedRow,
    filter_with_coordinates,
    normalize_rows,
)
from incident_atlas.temporal import count_by_date


DEFAULT_K = 3


@dataclass(frozen=True)
class PipelineResult:
    """Every artifact produced by one run."""
    records: Tuple[IncidentRecord, ...]
    clustering: ClusteringResult
    date_counts: Dict[date, int]
    graph: AdjacencyGraph
    start_id: str
    reachable: frozenset
    skipped: Tuple[SkippedRow, ...] = ()


def run_pipeline(
    rows: Iterable[Mapping[str, Any]],
    k: int = DEFAULT_K,
    max_iter: int = DEFAULT_MAX_ITER,
    start_id: Optional[str] = None,
    require_coordinates: bool = True,
    on_malformed: str = ON_MALFORMED_RAISE,
    timestamp_format: str = TIMESTAMP_FORMAT,
    logger=None,
) -> PipelineResult:
    """
    Normalize rows and run clustering, temporal counts and reachability.

    Args:
        rows: Raw {column: string} rows
        k: Number of clusters
        max_iter: k-means iteration ceiling
        start_id: Reachability start; defaults to the first analysed record
        require_coordinates: Drop records lacking x/y before every analysis
        on_malformed: Ingestion policy ("raise" or "skip")
        timestamp_format: strptime format for the Date column
        logger: Optional JSONLLogger

    Returns:
        PipelineResult

    Raises:
        MalformedFieldError: Ingestion failure under the "raise" policy
        InvalidInputError: No records left to analyse, k out of bounds, or
            start_id absent from the graph
    """
    records, skipped = normalize_rows(
        rows,
        on_malformed=on_malformed,
        timestamp_format=timestamp_format,
        logger=logger,
    )
    if logger is not None:
        logger.info(f"Normalized {len(records)} records ({len(skipped)} skipped)")

    if require_coordinates:
        analysed = filter_with_coordinates(records)
        if logger is not None:
            logger.info(f"Kept {len(analysed)} of {len(records)} records with x/y coordinates")
    else:
        analysed = list(records)

    if not analysed:
        raise InvalidInputError("No records left to analyse after normalization/filtering")

    try:
        clustering = cluster_records(analysed, k, max_iter=max_iter)
    except InvalidInputError as e:
        raise InvalidInputError(f"clustering stage: {e}") from e

    date_counts = count_by_date(analysed)

    graph = build_adjacency(analysed)
    if start_id is None:
        start_id = analysed[0].id
    reachable = reachable_set(graph, start_id)

    if logger is not None:
        logger.log_cluster_stats({
            "k": k,
            "iterations": clustering.iterations,
            "converged": clustering.converged,
            "inertia": clustering.inertia,
            "cluster_sizes": cluster_sizes(clustering),
        })
        logger.log_graph_stats({**graph_summary(graph), "start_id": start_id, "reachable_count": len(reachable)})
        logger.info(f"Counted incidents over {len(date_counts)} distinct dates")

    return PipelineResult(
        records=tuple(analysed),
        clustering=clustering,
        date_counts=date_counts,
        graph=graph,
        start_id=start_id,
        reachable=reachable,
        skipped=tuple(skipped),
    )


def pipeline_options(config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    run_pipeline keyword arguments from a params.yml mapping.

    analysis.require_coordinates is shared by every stage, so clustering,
    the co-occurrence graph and the date counts all see the same records.
    """
    ingestion = config.get("ingestion") or {}
    clustering = config.get("clustering") or {}
    analysis = config.get("analysis") or {}
    cooccurrence = config.get("cooccurrence") or {}
    return {
        "k": clustering.get("k", DEFAULT_K),
        "max_iter": clustering.get("max_iter", DEFAULT_MAX_ITER),
        "start_id": cooccurrence.get("start_id"),
        "require_coordinates": analysis.get("require_coordinates", True),
        "on_malformed": ingestion.get("on_malformed", ON_MALFORMED_RAISE),
        "timestamp_format": ingestion.get("timestamp_format", TIMESTAMP_FORMAT),
    }
