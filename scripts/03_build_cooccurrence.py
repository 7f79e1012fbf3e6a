#!/usr/bin/env python3
"""
03_build_cooccurrence.py

Build the same-day co-occurrence graph and run the reachability query.

- Two incidents are adjacent when they share a calendar date
- Breadth-first traversal from the start id (params.yml cooccurrence.start_id,
  or the first analysed record when unset)
- With date-only adjacency the reachable set is exactly the start's date
  bucket; the log records that size next to the date count for comparison

Outputs:
- data/processed/graph/reachable_from_start.csv (id, hops)
- data/processed/graph/adjacency_summary.json
- data/processed/metadata/reachable_from_start_metadata.json
"""

import argparse
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from incident_atlas.graph import build_adjacency, graph_summary, group_ids_by_date, reachable_levels
from incident_atlas.hashing import write_metadata_sidecar
from incident_atlas.io_utils import atomic_write_df, atomic_write_json, read_df, read_yaml
from incident_atlas.logging_utils import get_logger
from incident_atlas.paths import GRAPH_DIR, INCIDENTS_DIR, PARAMS_FILE
from incident_atlas.pipeline import pipeline_options
from incident_atlas.records import filter_with_coordinates, records_from_frame
from incident_atlas.schemas import REACHABLE_SCHEMA, validate_schema


# =============================================================================
# Constants
# =============================================================================

INPUT_INCIDENTS = INCIDENTS_DIR / "incidents_clean.parquet"

OUTPUT_REACHABLE = GRAPH_DIR / "reachable_from_start.csv"
OUTPUT_SUMMARY = GRAPH_DIR / "adjacency_summary.json"


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Same-day co-occurrence reachability")
    parser.add_argument("--start-id", default=None, help="Override cooccurrence.start_id")
    args = parser.parse_args()

    with get_logger("03_build_cooccurrence") as logger:
        logger.info("Starting 03_build_cooccurrence.py")

        config = read_yaml(PARAMS_FILE)
        logger.log_config(config)

        options = pipeline_options(config)
        start_id = args.start_id or options["start_id"]
        require_coordinates = options["require_coordinates"]

        logger.log_inputs({"incidents_clean": str(INPUT_INCIDENTS)})

        try:
            if not INPUT_INCIDENTS.exists():
                raise FileNotFoundError(
                    f"Cleaned incidents not found: {INPUT_INCIDENTS}. "
                    "Run 01_normalize_incidents.py first."
                )

            records = records_from_frame(read_df(INPUT_INCIDENTS))
            if require_coordinates:
                records = filter_with_coordinates(records)
            logger.info(f"Building graph over {len(records)} records")

            if not records:
                raise ValueError("No records to build the co-occurrence graph from")

            graph = build_adjacency(records)
            summary = graph_summary(graph)
            logger.log_graph_stats(summary)
            logger.info(f"Graph: {summary['node_count']} nodes, {summary['edge_count']} edges")

            if start_id is None:
                start_id = records[0].id
            start_id = str(start_id)
            logger.info(f"Start id: {start_id}")

            levels = reachable_levels(graph, start_id)
            logger.info(f"Six Degrees of Distribution (starting from {start_id}): {len(levels)} reachable")

            # Reachability from a start equals its date bucket
            start_date = next(r.date for r in records if r.id == start_id)
            bucket_size = len(set(group_ids_by_date(records)[start_date]))
            if bucket_size != len(levels):
                logger.error(
                    f"Reachable set size {len(levels)} differs from same-date bucket size {bucket_size}"
                )

            df_reachable = pd.DataFrame({
                "id": list(levels.keys()),
                "hops": pd.Series(list(levels.values()), dtype="int64"),
            })
            validate_schema(df_reachable, REACHABLE_SCHEMA, context="reachable_from_start")

            atomic_write_df(df_reachable, OUTPUT_REACHABLE)
            logger.info(f"Wrote: {OUTPUT_REACHABLE}")

            atomic_write_json(
                {
                    **summary,
                    "start_id": start_id,
                    "start_date": start_date.isoformat(),
                    "reachable_count": len(levels),
                    "max_hops": max(levels.values()),
                    "date_buckets": len(group_ids_by_date(records)),
                },
                OUTPUT_SUMMARY,
            )
            logger.info(f"Wrote: {OUTPUT_SUMMARY}")

            logger.log_outputs({
                "reachable_from_start": str(OUTPUT_REACHABLE),
                "adjacency_summary": str(OUTPUT_SUMMARY),
            })

            write_metadata_sidecar(
                output_path=OUTPUT_REACHABLE,
                inputs={"incidents_clean": str(INPUT_INCIDENTS)},
                config=config,
                run_id=logger.run_id,
                extra={
                    "start_id": start_id,
                    "reachable_count": len(levels),
                    "graph": summary,
                },
            )

            logger.info("SUCCESS: Built co-occurrence graph and reachable set")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
