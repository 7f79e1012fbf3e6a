#!/usr/bin/env python3
"""
04_build_temporal_trends.py

Count incidents per calendar date and chart the daily series.

- One row per distinct date, ascending; dates with no incidents are absent
- Chart: 800x600 px line with circle markers, titled "Temporal Trends"

Outputs:
- data/processed/temporal/date_counts.csv (date, count)
- reports/figures/temporal_trends.png
- data/processed/metadata/date_counts_metadata.json
"""

import sys
from pathlib import Path
from typing import List, Tuple

import matplotlib.pyplot as plt
import pandas as pd

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from incident_atlas.hashing import write_metadata_sidecar
from incident_atlas.io_utils import atomic_write, atomic_write_df, read_df, read_yaml
from incident_atlas.logging_utils import get_logger
from incident_atlas.paths import FIGURES_DIR, INCIDENTS_DIR, PARAMS_FILE, TEMPORAL_DIR
from incident_atlas.pipeline import pipeline_options
from incident_atlas.records import filter_with_coordinates, records_from_frame
from incident_atlas.schemas import DATE_COUNTS_SCHEMA, validate_schema
from incident_atlas.temporal import count_by_date, date_counts_frame


# =============================================================================
# Constants
# =============================================================================

INPUT_INCIDENTS = INCIDENTS_DIR / "incidents_clean.parquet"

OUTPUT_COUNTS = TEMPORAL_DIR / "date_counts.csv"
OUTPUT_FIGURE = FIGURES_DIR / "temporal_trends.png"


# =============================================================================
# Chart
# =============================================================================

def plot_temporal_trends(
    df_counts: pd.DataFrame,
    output_path,
    size_px: Tuple[int, int] = (800, 600),
    dpi: int = 100,
) -> None:
    """
    Draw the per-date count series.

    Args:
        df_counts: Output of date_counts_frame (date, count)
        output_path: PNG destination
        size_px: Figure (width, height) in pixels
        dpi: Resolution used to turn size_px into inches
    """
    fig, ax = plt.subplots(figsize=(size_px[0] / dpi, size_px[1] / dpi), dpi=dpi)

    ax.plot(
        df_counts["date"],
        df_counts["count"],
        color="#d73027",
        linewidth=1,
        marker="o",
        markersize=4,
    )

    ax.set_title("Temporal Trends", fontsize=12, fontweight="bold")
    ax.set_xlabel("Date", fontsize=11)
    ax.set_ylabel("Count", fontsize=11)
    ax.set_ylim(bottom=0)
    ax.grid(True, alpha=0.3)
    fig.autofmt_xdate()

    plt.tight_layout()
    with atomic_write(output_path, mode="wb") as f:
        fig.savefig(f, format="png", dpi=dpi, facecolor="white")
    plt.close(fig)


def main():
    """Main entry point."""
    with get_logger("04_build_temporal_trends") as logger:
        logger.info("Starting 04_build_temporal_trends.py")

        config = read_yaml(PARAMS_FILE)
        logger.log_config(config)

        temporal_config = config.get("temporal", {})
        size_px: List[int] = temporal_config.get("figure_size_px", [800, 600])
        dpi = temporal_config.get("dpi", 100)
        require_coordinates = pipeline_options(config)["require_coordinates"]

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
            logger.info(f"Counting {len(records)} records by date")

            counts = count_by_date(records)
            df_counts = date_counts_frame(counts)
            validate_schema(df_counts, DATE_COUNTS_SCHEMA, context="date_counts")

            for day, count in counts.items():
                logger.info(f"Date: {day.isoformat()}, Count: {count}")

            atomic_write_df(df_counts, OUTPUT_COUNTS, date_format="%Y-%m-%d")
            logger.info(f"Wrote: {OUTPUT_COUNTS}")

            plot_temporal_trends(df_counts, OUTPUT_FIGURE, size_px=tuple(size_px), dpi=dpi)
            logger.info(f"Wrote: {OUTPUT_FIGURE}")

            logger.log_outputs({
                "date_counts": str(OUTPUT_COUNTS),
                "temporal_trends_figure": str(OUTPUT_FIGURE),
            })

            busiest = max(counts, key=counts.get)
            metrics = {
                "n_records": len(records),
                "n_dates": len(counts),
                "first_date": min(counts).isoformat(),
                "last_date": max(counts).isoformat(),
                "busiest_date": busiest.isoformat(),
                "busiest_count": counts[busiest],
                "mean_per_active_date": round(len(records) / len(counts), 3),
            }
            logger.log_metrics(metrics)

            write_metadata_sidecar(
                output_path=OUTPUT_COUNTS,
                inputs={"incidents_clean": str(INPUT_INCIDENTS)},
                config=config,
                run_id=logger.run_id,
                extra={**metrics, "figure": str(OUTPUT_FIGURE)},
            )

            logger.info("SUCCESS: Built temporal trend counts")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
