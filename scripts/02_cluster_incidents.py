#!/usr/bin/env python3
"""
02_cluster_incidents.py

Cluster incident locations with k-means on (x_coordinate, y_coordinate).

- Records without both x/y coordinates are excluded
- Deterministic seeding (first k distinct points), so reruns are identical
- Iteration ceiling from params.yml (clustering.max_iter)

Outputs:
- data/processed/clusters/cluster_assignments.parquet / .csv
- data/processed/clusters/cluster_centers.csv
- data/processed/clusters/clustered_incidents.geojson (incidents with lat/lon)
- data/processed/metadata/cluster_assignments_metadata.json

QA:
- every point in exactly one cluster
- rerun gives identical labels
- silhouette score and inertia logged
"""

import argparse
import sys
from pathlib import Path
from typing import List

import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from incident_atlas.hashing import write_metadata_sidecar
from incident_atlas.io_utils import atomic_write_df, atomic_write_gdf, read_df, read_yaml
from incident_atlas.kmeans import ClusteringResult, cluster_records, cluster_sizes
from incident_atlas.logging_utils import get_logger
from incident_atlas.paths import CLUSTERS_DIR, INCIDENTS_DIR, PARAMS_FILE
from incident_atlas.qa import assert_cluster_coverage, compute_cluster_quality, incidents_to_gdf
from incident_atlas.records import IncidentRecord, filter_with_coordinates, records_from_frame
from incident_atlas.schemas import CLUSTER_ASSIGNMENTS_SCHEMA, CLUSTER_CENTERS_SCHEMA, validate_schema


# =============================================================================
# Constants
# =============================================================================

INPUT_INCIDENTS = INCIDENTS_DIR / "incidents_clean.parquet"

OUTPUT_ASSIGNMENTS = CLUSTERS_DIR / "cluster_assignments.parquet"
OUTPUT_ASSIGNMENTS_CSV = CLUSTERS_DIR / "cluster_assignments.csv"
OUTPUT_CENTERS = CLUSTERS_DIR / "cluster_centers.csv"
OUTPUT_GEOJSON = CLUSTERS_DIR / "clustered_incidents.geojson"


# =============================================================================
# Data Loading
# =============================================================================

def load_records(logger) -> List[IncidentRecord]:
    """Load the cleaned record set from Script 01."""
    if not INPUT_INCIDENTS.exists():
        raise FileNotFoundError(
            f"Cleaned incidents not found: {INPUT_INCIDENTS}. "
            "Run 01_normalize_incidents.py first."
        )

    records = records_from_frame(read_df(INPUT_INCIDENTS))
    logger.info(f"Loaded {len(records)} cleaned records")
    return records


# =============================================================================
# Output Tables
# =============================================================================

def build_assignments(records: List[IncidentRecord], result: ClusteringResult) -> pd.DataFrame:
    """One row per clustered incident with its cluster id."""
    return pd.DataFrame({
        "id": [r.id for r in records],
        "cluster_id": pd.Series(result.labels, dtype="int64"),
        "x_coordinate": [r.x_coordinate for r in records],
        "y_coordinate": [r.y_coordinate for r in records],
        "latitude": pd.Series([r.latitude for r in records], dtype="float64"),
        "longitude": pd.Series([r.longitude for r in records], dtype="float64"),
        "primary_type": [r.primary_type for r in records],
    })


def build_centers(result: ClusteringResult) -> pd.DataFrame:
    """One row per cluster: center and member count."""
    return pd.DataFrame({
        "cluster_id": pd.Series([c.index for c in result.clusters], dtype="int64"),
        "center_x": [c.center[0] for c in result.clusters],
        "center_y": [c.center[1] for c in result.clusters],
        "size": pd.Series([c.size for c in result.clusters], dtype="int64"),
    })


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="K-means clustering of incident locations")
    parser.add_argument("--k", type=int, default=None, help="Override clustering.k")
    parser.add_argument("--max-iter", type=int, default=None, help="Override clustering.max_iter")
    args = parser.parse_args()

    with get_logger("02_cluster_incidents") as logger:
        logger.info("Starting 02_cluster_incidents.py")

        config = read_yaml(PARAMS_FILE)
        logger.log_config(config)

        clustering_config = config.get("clustering", {})
        k = args.k if args.k is not None else clustering_config.get("k", 3)
        max_iter = args.max_iter if args.max_iter is not None else clustering_config.get("max_iter", 100)

        logger.info(f"k: {k}")
        logger.info(f"max_iter: {max_iter}")
        logger.log_inputs({"incidents_clean": str(INPUT_INCIDENTS)})

        try:
            records = load_records(logger)
            located = filter_with_coordinates(records)
            logger.info(f"{len(located)} of {len(records)} records have x/y coordinates")

            result = cluster_records(located, k, max_iter=max_iter)
            if result.converged:
                logger.info(f"Converged after {result.iterations} iterations")
            else:
                logger.warning(f"Stopped at iteration ceiling ({max_iter}) without converging")

            # QA
            assert_cluster_coverage(result, len(located), context="cluster_assignments")

            rerun = cluster_records(located, k, max_iter=max_iter)
            repro_ok = rerun.labels == result.labels
            if not repro_ok:
                logger.error("Rerun produced different cluster labels!")

            points = [(r.x_coordinate, r.y_coordinate) for r in located]
            quality = compute_cluster_quality(result, points)
            if quality["empty_clusters"]:
                logger.warning(f"{quality['empty_clusters']} cluster(s) ended empty and kept their seed center")

            df_assignments = build_assignments(located, result)
            df_centers = build_centers(result)
            validate_schema(df_assignments, CLUSTER_ASSIGNMENTS_SCHEMA, context="cluster_assignments")
            validate_schema(df_centers, CLUSTER_CENTERS_SCHEMA, context="cluster_centers")

            # Write outputs
            atomic_write_df(df_assignments, OUTPUT_ASSIGNMENTS)
            logger.info(f"Wrote: {OUTPUT_ASSIGNMENTS}")

            atomic_write_df(df_assignments, OUTPUT_ASSIGNMENTS_CSV)
            logger.info(f"Wrote: {OUTPUT_ASSIGNMENTS_CSV}")

            atomic_write_df(df_centers, OUTPUT_CENTERS)
            logger.info(f"Wrote: {OUTPUT_CENTERS}")

            gdf = incidents_to_gdf(df_assignments)
            dropped = len(df_assignments) - len(gdf)
            if dropped:
                logger.warning(f"{dropped} clustered incidents lack lat/lon and are left off the GeoJSON")
            atomic_write_gdf(gdf, OUTPUT_GEOJSON)
            logger.info(f"Wrote: {OUTPUT_GEOJSON}")

            logger.log_outputs({
                "cluster_assignments_parquet": str(OUTPUT_ASSIGNMENTS),
                "cluster_assignments_csv": str(OUTPUT_ASSIGNMENTS_CSV),
                "cluster_centers": str(OUTPUT_CENTERS),
                "clustered_incidents_geojson": str(OUTPUT_GEOJSON),
            })

            logger.log_cluster_stats({
                "k": k,
                "n_points": len(located),
                "iterations": result.iterations,
                "converged": result.converged,
                "cluster_sizes": cluster_sizes(result),
                "reproducibility_verified": repro_ok,
                **quality,
            })

            write_metadata_sidecar(
                output_path=OUTPUT_ASSIGNMENTS,
                inputs={"incidents_clean": str(INPUT_INCIDENTS)},
                config=config,
                run_id=logger.run_id,
                extra={
                    "k": k,
                    "max_iter": max_iter,
                    "seeding": "first_k_distinct_points",
                    "iterations": result.iterations,
                    "converged": result.converged,
                    "centers": df_centers.to_dict(orient="records"),
                    "quality": quality,
                    "reproducibility_verified": repro_ok,
                },
            )

            # Summary
            logger.info("=" * 70)
            for cluster in result.clusters:
                logger.info(
                    f"Cluster {cluster.index} Center: ({cluster.center[0]:.2f}, {cluster.center[1]:.2f})"
                )
                logger.info(f"Cluster {cluster.index} Members ({cluster.size}): {result.member_ids(cluster.index)}")
            logger.info("=" * 70)

            logger.info("SUCCESS: Clustered incident locations")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
