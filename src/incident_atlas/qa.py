"""
Quality assurance checks for incident data and analysis results.

- Coordinate bounds sanity checks (EPSG:4326 lat/lon, EPSG:3435 x/y feet).
- CRS mismatches are hard errors; no silent overrides.
- Clustering coverage: every point in exactly one cluster.
"""

from typing import Any, Dict, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS
from sklearn.metrics import silhouette_score

from incident_atlas.io_utils import read_yaml
from incident_atlas.kmeans import ClusteringResult
from incident_atlas.paths import PARAMS_FILE


# Chicago incident exports: lat/lon in WGS84, x/y in Illinois StatePlane East (US ft)
LATLON_EPSG = 4326
STATEPLANE_EPSG = 3435


# =============================================================================
# Load bounds config
# =============================================================================

def _load_bounds_config() -> dict:
    """Load bounds check configuration from params.yml."""
    if not PARAMS_FILE.exists():
        return {}
    params = read_yaml(PARAMS_FILE)
    return params.get("bounds_checks", {}) or {}


class CRSError(Exception):
    """Raised when CRS validation fails."""
    pass


class BoundsError(Exception):
    """Raised when bounds validation fails."""
    pass


class ClusterQAError(Exception):
    """Raised when a clustering result does not partition its points."""
    pass


# =============================================================================
# CRS Validation
# =============================================================================

def assert_crs_not_none(gdf: gpd.GeoDataFrame, context: str = "") -> None:
    """
    Assert that the GeoDataFrame has a CRS set.

    Raises:
        CRSError: If CRS is None
    """
    if gdf.crs is None:
        msg = "GeoDataFrame has no CRS set"
        if context:
            msg = f"{msg} ({context})"
        raise CRSError(msg)


def assert_expected_crs(
    gdf: gpd.GeoDataFrame,
    expected_epsg: int,
    context: str = "",
) -> None:
    """
    Assert that the GeoDataFrame has the expected CRS.

    Raises:
        CRSError: If CRS is None or doesn't match expected
    """
    assert_crs_not_none(gdf, context)

    expected_crs = CRS.from_epsg(expected_epsg)

    if not gdf.crs.equals(expected_crs):
        msg = f"CRS mismatch: expected EPSG:{expected_epsg}, got {gdf.crs}"
        if context:
            msg = f"{msg} ({context})"
        raise CRSError(msg)


def incidents_to_gdf(
    df: pd.DataFrame,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> gpd.GeoDataFrame:
    """
    Build a point GeoDataFrame (EPSG:4326) from rows that have lat/lon.

    Rows missing either coordinate are dropped; the caller logs how many.
    """
    located = df[df[lon_col].notna() & df[lat_col].notna()].copy()
    gdf = gpd.GeoDataFrame(
        located,
        geometry=gpd.points_from_xy(located[lon_col], located[lat_col]),
        crs=f"EPSG:{LATLON_EPSG}",
    )
    assert_expected_crs(gdf, LATLON_EPSG, "incident points")
    return gdf


# =============================================================================
# Bounds Validation
# =============================================================================

def _column_range(df: pd.DataFrame, col: str):
    values = df[col].dropna()
    if values.empty:
        return None
    return float(values.min()), float(values.max())


def check_bounds_epsg4326(
    df: pd.DataFrame,
    lon_min: float = -87.95,
    lon_max: float = -87.50,
    lat_min: float = 41.60,
    lat_max: float = 42.05,
    context: str = "",
) -> bool:
    """
    Check that latitude/longitude values are plausible for Chicago.

    Absent coordinates are ignored.

    Returns:
        True if bounds are plausible

    Raises:
        BoundsError: If values fall outside the expected range
    """
    errors = []

    lon_range = _column_range(df, "longitude")
    if lon_range and (lon_range[0] < lon_min or lon_range[1] > lon_max):
        errors.append(f"Longitude out of range: [{lon_range[0]}, {lon_range[1]}] not in [{lon_min}, {lon_max}]")

    lat_range = _column_range(df, "latitude")
    if lat_range and (lat_range[0] < lat_min or lat_range[1] > lat_max):
        errors.append(f"Latitude out of range: [{lat_range[0]}, {lat_range[1]}] not in [{lat_min}, {lat_max}]")

    if errors:
        msg = "EPSG:4326 bounds check failed: " + "; ".join(errors)
        if context:
            msg = f"{msg} ({context})"
        raise BoundsError(msg)

    return True


def check_bounds_epsg3435(
    df: pd.DataFrame,
    x_min: float = 1090000,
    x_max: float = 1210000,
    y_min: float = 1810000,
    y_max: float = 1960000,
    context: str = "",
) -> bool:
    """
    Check that x/y coordinates are plausible for Chicago in EPSG:3435 (US ft).

    Absent coordinates are ignored.

    Raises:
        BoundsError: If values fall outside the expected range
    """
    errors = []

    x_range = _column_range(df, "x_coordinate")
    if x_range and (x_range[0] < x_min or x_range[1] > x_max):
        errors.append(f"X out of range: [{x_range[0]}, {x_range[1]}] not in [{x_min}, {x_max}]")

    y_range = _column_range(df, "y_coordinate")
    if y_range and (y_range[0] < y_min or y_range[1] > y_max):
        errors.append(f"Y out of range: [{y_range[0]}, {y_range[1]}] not in [{y_min}, {y_max}]")

    if errors:
        msg = "EPSG:3435 bounds check failed: " + "; ".join(errors)
        if context:
            msg = f"{msg} ({context})"
        raise BoundsError(msg)

    return True


def validate_bounds(df: pd.DataFrame, context: str = "") -> bool:
    """
    Run both coordinate bounds checks with limits from params.yml.

    Raises:
        BoundsError: If either check fails
    """
    bounds_config = _load_bounds_config()

    latlon = bounds_config.get("epsg_4326", {}) or {}
    check_bounds_epsg4326(df, context=context, **latlon)

    stateplane = bounds_config.get("epsg_3435", {}) or {}
    check_bounds_epsg3435(df, context=context, **stateplane)

    return True


def _outside(values: pd.Series, lo: float, hi: float) -> pd.Series:
    return values.notna() & ((values < lo) | (values > hi))


def count_out_of_bounds(df: pd.DataFrame, bounds_config: Optional[dict] = None) -> Dict[str, int]:
    """
    Count rows whose coordinates parse but fall outside the Chicago box.

    Report-only: exports carry rows geocoded to (0, 0) or outside the city,
    and those rows are still valid records.

    Args:
        df: Incidents frame
        bounds_config: bounds_checks mapping (default: from params.yml)

    Returns:
        {"epsg_4326": rows with lat or lon outside, "epsg_3435": rows with x or y outside}
    """
    if bounds_config is None:
        bounds_config = _load_bounds_config()

    latlon = {"lon_min": -87.95, "lon_max": -87.50, "lat_min": 41.60, "lat_max": 42.05}
    latlon.update(bounds_config.get("epsg_4326", {}) or {})
    stateplane = {"x_min": 1090000, "x_max": 1210000, "y_min": 1810000, "y_max": 1960000}
    stateplane.update(bounds_config.get("epsg_3435", {}) or {})

    latlon_mask = (
        _outside(df["longitude"], latlon["lon_min"], latlon["lon_max"])
        | _outside(df["latitude"], latlon["lat_min"], latlon["lat_max"])
    )
    stateplane_mask = (
        _outside(df["x_coordinate"], stateplane["x_min"], stateplane["x_max"])
        | _outside(df["y_coordinate"], stateplane["y_min"], stateplane["y_max"])
    )
    return {
        "epsg_4326": int(latlon_mask.sum()),
        "epsg_3435": int(stateplane_mask.sum()),
    }


# =============================================================================
# Data Quality Summaries
# =============================================================================

def compute_na_rates(df: pd.DataFrame) -> dict[str, float]:
    """
    Compute NA rates for all columns in a DataFrame.

    Returns:
        Dictionary of column_name -> NA rate (0-1)
    """
    if len(df) == 0:
        return {col: 0.0 for col in df.columns}
    return {col: float(rate) for col, rate in (df.isna().sum() / len(df)).items()}


def compute_coordinate_coverage(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Summarize how many incidents can be clustered and mapped.

    Returns:
        Dictionary with totals and rates for x/y and lat/lon completeness
    """
    n_total = len(df)
    has_xy = df["x_coordinate"].notna() & df["y_coordinate"].notna()
    has_latlon = df["latitude"].notna() & df["longitude"].notna()
    return {
        "n_total": n_total,
        "n_with_xy": int(has_xy.sum()),
        "n_with_latlon": int(has_latlon.sum()),
        "xy_coverage_rate": float(has_xy.mean()) if n_total else 0.0,
        "latlon_coverage_rate": float(has_latlon.mean()) if n_total else 0.0,
    }


# =============================================================================
# Clustering QA
# =============================================================================

def assert_cluster_coverage(result: ClusteringResult, n_points: int, context: str = "") -> None:
    """
    Assert that clusters partition range(n_points): each index exactly once.

    Raises:
        ClusterQAError: On a missing, duplicated, or out-of-range member
    """
    ctx = f" ({context})" if context else ""
    members = [i for cluster in result.clusters for i in cluster.members]

    if len(members) != n_points:
        raise ClusterQAError(
            f"Cluster membership total {len(members)} != point count {n_points}{ctx}"
        )
    if sorted(members) != list(range(n_points)):
        raise ClusterQAError(f"Cluster members are not a partition of the input points{ctx}")

    for cluster in result.clusters:
        for i in cluster.members:
            if result.labels[i] != cluster.index:
                raise ClusterQAError(
                    f"Point {i} listed in cluster {cluster.index} but labelled {result.labels[i]}{ctx}"
                )


def compute_cluster_quality(
    result: ClusteringResult,
    points: Sequence[Sequence[float]],
) -> Dict[str, Optional[float]]:
    """
    Quality metrics for the run log.

    Silhouette needs at least two occupied clusters and fewer occupied
    clusters than points; otherwise it is reported as None.
    """
    X = np.asarray(points, dtype=float)
    labels = np.asarray(result.labels)
    occupied = len(np.unique(labels))

    silhouette = None
    if 2 <= occupied < len(X):
        silhouette = float(silhouette_score(X, labels))

    sizes = [c.size for c in result.clusters]
    return {
        "inertia": result.inertia,
        "silhouette_score": silhouette,
        "occupied_clusters": occupied,
        "empty_clusters": sum(1 for s in sizes if s == 0),
        "cluster_size_min": min(sizes),
        "cluster_size_max": max(sizes),
    }
