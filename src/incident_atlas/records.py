"""
Incident record model and raw-row normalization.

Raw rows arrive as {column name: string} mappings straight from the CSV.
Normalization rules:
- Arrest/Domestic: exactly "TRUE" is True, anything else is False.
- Date: fixed format month/day/2-digit-year hour:minute.
- Coordinates: "" is absent; anything else must parse as a finite float.
- year: always derived from the parsed timestamp.
"""

import math
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from incident_atlas.errors import MalformedFieldError


TIMESTAMP_FORMAT = "%m/%d/%y %H:%M"
TRUE_TOKEN = "TRUE"

ON_MALFORMED_RAISE = "raise"
ON_MALFORMED_SKIP = "skip"
ON_MALFORMED_POLICIES = (ON_MALFORMED_RAISE, ON_MALFORMED_SKIP)

# Opaque attribute columns, carried through as strings
PAYLOAD_FIELDS = (
    "case_number",
    "block",
    "iucr",
    "primary_type",
    "description",
    "location_description",
    "beat",
    "district",
    "ward",
    "community_area",
    "fbi_code",
    "updated_on",
    "location",
)

BOOLEAN_FIELDS = ("arrest", "domestic")

COORDINATE_FIELDS = ("x_coordinate", "y_coordinate", "latitude", "longitude")


# =============================================================================
# Record Model
# =============================================================================

@dataclass(frozen=True)
class IncidentRecord:
    """One observed incident after normalization."""
    id: str
    timestamp: datetime
    year: int
    arrest: bool = False
    domestic: bool = False
    x_coordinate: Optional[float] = None
    y_coordinate: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    case_number: str = ""
    block: str = ""
    iucr: str = ""
    primary_type: str = ""
    description: str = ""
    location_description: str = ""
    beat: str = ""
    district: str = ""
    ward: str = ""
    community_area: str = ""
    fbi_code: str = ""
    updated_on: str = ""
    location: str = ""

    @property
    def date(self) -> date:
        """Calendar date of the incident (time of day discarded)."""
        return self.timestamp.date()

    @property
    def has_coordinates(self) -> bool:
        """True when both projected coordinates are present."""
        return self.x_coordinate is not None and self.y_coordinate is not None


RECORD_COLUMNS = [f.name for f in fields(IncidentRecord)]


@dataclass(frozen=True)
class SkippedRow:
    """Diagnostics for a row dropped under the skip policy."""
    row_number: int
    record_id: Optional[str]
    field: str
    value: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Field Parsers
# =============================================================================

def normalize_field_name(name: str) -> str:
    """Map a CSV header ("X Coordinate", "Case_Number") to a record field name."""
    return "_".join(str(name).strip().lower().split())


def parse_bool_flag(value: str) -> bool:
    """Return True only for the exact token "TRUE"."""
    return value == TRUE_TOKEN


def parse_timestamp(value: str, field: str = "date", fmt: str = TIMESTAMP_FORMAT) -> datetime:
    """
    Parse an incident timestamp.

    Args:
        value: Raw string, e.g. "01/31/20 13:45"
        field: Field name reported on failure
        fmt: strptime format

    Returns:
        Naive datetime

    Raises:
        MalformedFieldError: If the string does not match the format
    """
    try:
        return datetime.strptime(value, fmt)
    except (TypeError, ValueError) as e:
        raise MalformedFieldError(field, value, reason=f"expected {fmt}: {e}")


def parse_optional_float(value: str, field: str) -> Optional[float]:
    """
    Parse an optional numeric field.

    Empty string maps to None. Any other value must parse as a finite float.

    Raises:
        MalformedFieldError: If a non-empty value is not a finite number
    """
    if value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise MalformedFieldError(field, value, reason="not a number")
    if not math.isfinite(parsed):
        raise MalformedFieldError(field, value, reason="not a finite number")
    return parsed


# =============================================================================
# Row Normalization
# =============================================================================

def _canonical_row(row: Mapping[str, Any]) -> Dict[str, str]:
    canonical = {}
    for key, value in row.items():
        canonical[normalize_field_name(key)] = "" if value is None else str(value)
    return canonical


def normalize_row(
    row: Mapping[str, Any],
    timestamp_format: str = TIMESTAMP_FORMAT,
) -> IncidentRecord:
    """
    Convert one raw row into an IncidentRecord.

    The input mapping is not modified.

    Args:
        row: {column name: raw string}
        timestamp_format: strptime format for the Date column

    Returns:
        IncidentRecord

    Raises:
        MalformedFieldError: If ID or Date is missing, the date does not
            parse, or a non-empty coordinate is not a finite number
    """
    raw = _canonical_row(row)

    if "id" not in raw:
        raise MalformedFieldError("id", "", reason="missing column")
    record_id = raw["id"]

    if "date" not in raw:
        raise MalformedFieldError("date", "", reason="missing column", record_id=record_id)

    try:
        timestamp = parse_timestamp(raw["date"], "date", timestamp_format)
        coordinates = {
            name: parse_optional_float(raw.get(name, ""), name)
            for name in COORDINATE_FIELDS
        }
    except MalformedFieldError as e:
        raise e.at(None, record_id)

    flags = {name: parse_bool_flag(raw.get(name, "")) for name in BOOLEAN_FIELDS}
    payload = {name: raw.get(name, "") for name in PAYLOAD_FIELDS}

    return IncidentRecord(
        id=record_id,
        timestamp=timestamp,
        year=timestamp.year,
        **flags,
        **coordinates,
        **payload,
    )


def normalize_rows(
    rows: Iterable[Mapping[str, Any]],
    on_malformed: str = ON_MALFORMED_RAISE,
    timestamp_format: str = TIMESTAMP_FORMAT,
    logger=None,
) -> Tuple[List[IncidentRecord], List[SkippedRow]]:
    """
    Normalize a sequence of raw rows.

    Args:
        rows: Raw rows in source order
        on_malformed: "raise" aborts on the first malformed row;
            "skip" drops it and records a SkippedRow
        timestamp_format: strptime format for the Date column
        logger: Optional JSONLLogger; skipped rows are reported through it

    Returns:
        Tuple of (records, skipped rows). skipped is always empty under "raise".

    Raises:
        MalformedFieldError: Under "raise", annotated with the 1-based row number
        ValueError: If on_malformed is not a known policy
    """
    if on_malformed not in ON_MALFORMED_POLICIES:
        raise ValueError(
            f"Unknown on_malformed policy {on_malformed!r}, expected one of {ON_MALFORMED_POLICIES}"
        )

    records: List[IncidentRecord] = []
    skipped: List[SkippedRow] = []

    for row_number, row in enumerate(rows, start=1):
        try:
            records.append(normalize_row(row, timestamp_format))
        except MalformedFieldError as e:
            located = e.at(row_number, e.record_id)
            if on_malformed == ON_MALFORMED_RAISE:
                raise located from e
            skipped.append(SkippedRow(
                row_number=row_number,
                record_id=located.record_id,
                field=located.field,
                value=located.value,
                reason=located.reason,
            ))
            if logger is not None:
                logger.warning(f"Skipping malformed row: {located}")

    if skipped and logger is not None:
        logger.log_skipped_rows([s.to_dict() for s in skipped])

    return records, skipped


def filter_with_coordinates(records: Sequence[IncidentRecord]) -> List[IncidentRecord]:
    """Keep only the records that are valid for clustering."""
    return [r for r in records if r.has_coordinates]


# =============================================================================
# DataFrame Conversion
# =============================================================================

def records_to_frame(records: Sequence[IncidentRecord]) -> pd.DataFrame:
    """
    Convert records to a DataFrame with one column per record field.

    Absent coordinates become NaN; column order follows RECORD_COLUMNS.
    """
    df = pd.DataFrame([asdict(r) for r in records], columns=RECORD_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    df["year"] = df["year"].astype("int64")
    for name in BOOLEAN_FIELDS:
        df[name] = df[name].astype(bool)
    for name in COORDINATE_FIELDS:
        df[name] = df[name].astype("float64")
    return df


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def records_from_frame(df: pd.DataFrame) -> List[IncidentRecord]:
    """
    Rebuild records from a frame written by records_to_frame.

    Raises:
        KeyError: If a record column is missing from the frame
    """
    missing = [c for c in RECORD_COLUMNS if c not in df.columns]
    if missing:
        raise KeyError(f"Missing record columns: {missing}")

    records = []
    for row in df[RECORD_COLUMNS].itertuples(index=False):
        values = row._asdict()
        timestamp = pd.Timestamp(values["timestamp"]).to_pydatetime()
        records.append(IncidentRecord(
            id=str(values["id"]),
            timestamp=timestamp,
            year=int(values["year"]),
            arrest=bool(values["arrest"]),
            domestic=bool(values["domestic"]),
            **{name: _optional_float(values[name]) for name in COORDINATE_FIELDS},
            **{name: "" if pd.isna(values[name]) else str(values[name]) for name in PAYLOAD_FIELDS},
        ))
    return records
