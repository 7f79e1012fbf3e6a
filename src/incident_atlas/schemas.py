"""
Schema validation for pipeline tables.

Every table a stage writes is validated (columns, dtypes, NA rules, value
ranges) before it goes to disk, so schema drift fails the stage instead of
surfacing in a downstream script.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import pandas as pd


# =============================================================================
# Schema Definition
# =============================================================================

@dataclass
class ColumnSpec:
    """Rules for a single column."""
    name: str
    dtype: Optional[str] = None  # "int", "float", "bool", "datetime", "object"
    nullable: bool = True
    unique: bool = False
    allowed_values: Optional[Set[Any]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


@dataclass
class Schema:
    """Column rules for a DataFrame."""
    name: str
    columns: List[ColumnSpec]
    required_columns: List[str] = field(default_factory=list)
    min_rows: int = 0
    sorted_by: Optional[str] = None  # column that must be strictly increasing

    def __post_init__(self):
        if not self.required_columns:
            self.required_columns = [c.name for c in self.columns]


class SchemaError(Exception):
    """Raised when schema validation fails."""
    pass


_DTYPE_CHECKS = {
    "int": pd.api.types.is_integer_dtype,
    "float": pd.api.types.is_float_dtype,
    "bool": pd.api.types.is_bool_dtype,
    "datetime": pd.api.types.is_datetime64_any_dtype,
    "object": lambda col: pd.api.types.is_object_dtype(col) or pd.api.types.is_string_dtype(col),
}


# =============================================================================
# Pipeline Schemas
# =============================================================================

INCIDENTS_SCHEMA = Schema(
    name="incidents",
    columns=[
        ColumnSpec("id", dtype="object", nullable=False),
        ColumnSpec("timestamp", dtype="datetime", nullable=False),
        ColumnSpec("year", dtype="int", nullable=False),
        ColumnSpec("arrest", dtype="bool", nullable=False),
        ColumnSpec("domestic", dtype="bool", nullable=False),
        ColumnSpec("x_coordinate", dtype="float"),
        ColumnSpec("y_coordinate", dtype="float"),
        ColumnSpec("latitude", dtype="float", min_value=-90, max_value=90),
        ColumnSpec("longitude", dtype="float", min_value=-180, max_value=180),
    ],
    min_rows=1,
)

CLUSTER_ASSIGNMENTS_SCHEMA = Schema(
    name="cluster_assignments",
    columns=[
        ColumnSpec("id", dtype="object", nullable=False),
        ColumnSpec("cluster_id", dtype="int", nullable=False, min_value=0),
        ColumnSpec("x_coordinate", dtype="float", nullable=False),
        ColumnSpec("y_coordinate", dtype="float", nullable=False),
    ],
    min_rows=1,
)

CLUSTER_CENTERS_SCHEMA = Schema(
    name="cluster_centers",
    columns=[
        ColumnSpec("cluster_id", dtype="int", nullable=False, unique=True, min_value=0),
        ColumnSpec("center_x", dtype="float", nullable=False),
        ColumnSpec("center_y", dtype="float", nullable=False),
        ColumnSpec("size", dtype="int", nullable=False, min_value=0),
    ],
    min_rows=1,
    sorted_by="cluster_id",
)

DATE_COUNTS_SCHEMA = Schema(
    name="date_counts",
    columns=[
        ColumnSpec("date", dtype="datetime", nullable=False, unique=True),
        ColumnSpec("count", dtype="int", nullable=False, min_value=1),
    ],
    min_rows=1,
    sorted_by="date",
)

REACHABLE_SCHEMA = Schema(
    name="reachable",
    columns=[
        ColumnSpec("id", dtype="object", nullable=False, unique=True),
        ColumnSpec("hops", dtype="int", nullable=False, min_value=0),
    ],
    min_rows=1,
)


# =============================================================================
# Validation Functions
# =============================================================================

def validate_column(
    df: pd.DataFrame,
    spec: ColumnSpec,
) -> List[str]:
    """
    Validate a single column against its ColumnSpec.

    Args:
        df: DataFrame containing the column
        spec: Column rules

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    col_name = spec.name

    if col_name not in df.columns:
        errors.append(f"Missing column: {col_name}")
        return errors

    col = df[col_name]

    if spec.dtype is not None:
        check = _DTYPE_CHECKS.get(spec.dtype)
        if check is None:
            errors.append(f"Column {col_name}: unknown dtype rule {spec.dtype!r}")
        elif not check(col):
            errors.append(f"Column {col_name}: expected {spec.dtype}, got {col.dtype}")

    if not spec.nullable and col.isna().any():
        na_count = col.isna().sum()
        errors.append(f"Column {col_name}: {na_count} NA values not allowed")

    if spec.unique and col.duplicated().any():
        dup_count = col.duplicated().sum()
        errors.append(f"Column {col_name}: {dup_count} duplicate values not allowed")

    if spec.allowed_values is not None:
        invalid = ~col.isin(spec.allowed_values) & col.notna()
        if invalid.any():
            invalid_vals = col[invalid].unique()[:5]
            errors.append(f"Column {col_name}: invalid values {list(invalid_vals)}")

    if spec.min_value is not None:
        below_min = (col < spec.min_value) & col.notna()
        if below_min.any():
            errors.append(f"Column {col_name}: values below min {spec.min_value}")

    if spec.max_value is not None:
        above_max = (col > spec.max_value) & col.notna()
        if above_max.any():
            errors.append(f"Column {col_name}: values above max {spec.max_value}")

    return errors


def validate_schema(
    df: pd.DataFrame,
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Validate a DataFrame against a schema.

    Args:
        df: DataFrame to validate
        schema: Schema to validate against
        context: Optional context for error messages
        raise_on_error: If True, raise SchemaError on validation failure

    Returns:
        List of error messages (empty if valid)

    Raises:
        SchemaError: If raise_on_error=True and validation fails
    """
    errors = []
    ctx = f" ({context})" if context else ""

    if len(df) < schema.min_rows:
        errors.append(f"Expected at least {schema.min_rows} rows, got {len(df)}{ctx}")

    missing = [c for c in schema.required_columns if c not in df.columns]
    if missing:
        errors.append(f"Missing required columns: {missing}{ctx}")

    for col_spec in schema.columns:
        if col_spec.name in missing:
            continue
        errors.extend(validate_column(df, col_spec))

    if schema.sorted_by is not None and schema.sorted_by in df.columns:
        col = df[schema.sorted_by]
        if not (col.is_monotonic_increasing and col.is_unique):
            errors.append(f"Column {schema.sorted_by}: not strictly increasing{ctx}")

    if errors and raise_on_error:
        raise SchemaError(f"Schema validation failed for '{schema.name}':\n" + "\n".join(errors))

    return errors


# =============================================================================
# Schema Registry
# =============================================================================

SCHEMAS: Dict[str, Schema] = {
    "incidents": INCIDENTS_SCHEMA,
    "cluster_assignments": CLUSTER_ASSIGNMENTS_SCHEMA,
    "cluster_centers": CLUSTER_CENTERS_SCHEMA,
    "date_counts": DATE_COUNTS_SCHEMA,
    "reachable": REACHABLE_SCHEMA,
}


def get_schema(name: str) -> Schema:
    """Get a registered schema by name."""
    if name not in SCHEMAS:
        raise KeyError(f"Unknown schema: {name}. Available: {list(SCHEMAS.keys())}")
    return SCHEMAS[name]
