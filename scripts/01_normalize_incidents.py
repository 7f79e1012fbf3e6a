#!/usr/bin/env python3
"""
01_normalize_incidents.py

Normalize the raw incident export into the cleaned record set.

- Read the raw CSV as strings only (empty cells stay empty)
- Arrest/Domestic: only the exact token "TRUE" is true
- Parse Date with the configured fixed format; derive year from it
- Empty coordinate fields become absent; anything else must be numeric
- Malformed rows abort the run (on_malformed: raise) or are dropped and
  logged (on_malformed: skip)

Outputs:
- data/processed/incidents/incidents_clean.parquet
- data/processed/incidents/incidents_clean.csv
- data/processed/metadata/incidents_clean_metadata.json (provenance sidecar)

QA:
- incidents schema (dtypes, no null ids/timestamps)
- lat/lon and x/y outside the Chicago box: warned and counted, not dropped
- coordinate completeness logged
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from incident_atlas.hashing import write_metadata_sidecar
from incident_atlas.io_utils import atomic_write_df, read_incident_rows, read_yaml
from incident_atlas.logging_utils import get_logger
from incident_atlas.paths import INCIDENTS_DIR, PARAMS_FILE, RAW_INCIDENTS_CSV
from incident_atlas.qa import (
    BoundsError,
    compute_coordinate_coverage,
    compute_na_rates,
    count_out_of_bounds,
    validate_bounds,
)
from incident_atlas.records import normalize_rows, records_to_frame
from incident_atlas.schemas import INCIDENTS_SCHEMA, validate_schema


# =============================================================================
# Constants
# =============================================================================

OUTPUT_PARQUET = INCIDENTS_DIR / "incidents_clean.parquet"
OUTPUT_CSV = INCIDENTS_DIR / "incidents_clean.csv"


def parse_args():
    parser = argparse.ArgumentParser(description="Normalize raw incident records")
    parser.add_argument("--input", type=Path, default=RAW_INCIDENTS_CSV, help="Raw incident CSV")
    parser.add_argument(
        "--on-malformed",
        choices=["raise", "skip"],
        default=None,
        help="Override ingestion.on_malformed from params.yml",
    )
    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_args()

    with get_logger("01_normalize_incidents") as logger:
        logger.info("Starting 01_normalize_incidents.py")

        config = read_yaml(PARAMS_FILE)
        logger.log_config(config)

        ingestion = config.get("ingestion", {})
        timestamp_format = ingestion.get("timestamp_format", "%m/%d/%y %H:%M")
        on_malformed = args.on_malformed or ingestion.get("on_malformed", "raise")

        logger.info(f"Input: {args.input}")
        logger.info(f"Malformed row policy: {on_malformed}")
        logger.log_inputs({"raw_incidents": str(args.input)})

        try:
            rows = read_incident_rows(args.input)
            logger.info(f"Read {len(rows)} raw rows")

            records, skipped = normalize_rows(
                rows,
                on_malformed=on_malformed,
                timestamp_format=timestamp_format,
                logger=logger,
            )
            logger.info(f"Normalized {len(records)} records, skipped {len(skipped)}")

            df = records_to_frame(records)

            # QA
            validate_schema(df, INCIDENTS_SCHEMA, context="incidents_clean")
            # Out-of-box coordinates are kept; they are reported, not rejected
            try:
                validate_bounds(df, context="incidents_clean")
            except BoundsError as e:
                logger.warning(str(e))
            out_of_bounds = count_out_of_bounds(df)
            if any(out_of_bounds.values()):
                logger.warning(
                    f"Rows outside the Chicago box: {out_of_bounds['epsg_4326']} by lat/lon, "
                    f"{out_of_bounds['epsg_3435']} by x/y"
                )
            coverage = compute_coordinate_coverage(df)
            logger.info(
                f"Coordinate coverage: {coverage['n_with_xy']}/{coverage['n_total']} with x/y, "
                f"{coverage['n_with_latlon']}/{coverage['n_total']} with lat/lon"
            )

            duplicate_ids = int(df["id"].duplicated().sum())
            if duplicate_ids:
                logger.warning(f"{duplicate_ids} duplicate incident ids (ids are assumed unique)")

            # Write outputs
            atomic_write_df(df, OUTPUT_PARQUET)
            logger.info(f"Wrote: {OUTPUT_PARQUET}")

            atomic_write_df(df, OUTPUT_CSV)
            logger.info(f"Wrote: {OUTPUT_CSV}")

            logger.log_outputs({
                "incidents_clean_parquet": str(OUTPUT_PARQUET),
                "incidents_clean_csv": str(OUTPUT_CSV),
            })

            logger.log_metrics({
                "raw_rows": len(rows),
                "records": len(records),
                "skipped_rows": len(skipped),
                "duplicate_ids": duplicate_ids,
                "coordinate_coverage": coverage,
                "out_of_bounds": out_of_bounds,
                "na_rates": compute_na_rates(df),
                "year_range": [int(df["year"].min()), int(df["year"].max())],
            })

            write_metadata_sidecar(
                output_path=OUTPUT_PARQUET,
                inputs={"raw_incidents": str(args.input)},
                config=config,
                run_id=logger.run_id,
                extra={
                    "on_malformed": on_malformed,
                    "skipped": [s.to_dict() for s in skipped],
                    "coordinate_coverage": coverage,
                    "out_of_bounds": out_of_bounds,
                },
            )

            logger.info("SUCCESS: Normalized incident records")

        except Exception as e:
            logger.error(f"FAILED: {e}")
            raise


if __name__ == "__main__":
    main()
