"""
File I/O for the pipeline: atomic writes and typed reads.

Writers go through a temp file in the target's directory followed by
Path.replace, so a stage that fails mid-write leaves the previous output
(or nothing) in place. Raw incident CSVs are read as strings only; typing
happens in incident_atlas.records.
"""

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import geopandas as gpd
import pandas as pd
import yaml


PathLike = Union[str, Path]

DF_WRITERS = (".csv", ".parquet")
GDF_WRITERS = (".parquet", ".geojson")


# =============================================================================
# Atomic Writes
# =============================================================================

def _temp_sibling(target_path: Path, suffix: Optional[str] = None) -> Path:
    """Create an empty temp file next to target_path and return its path."""
    fd, temp_path = tempfile.mkstemp(
        suffix=suffix if suffix is not None else target_path.suffix.lower(),
        prefix=f".{target_path.stem}_",
        dir=target_path.parent,
    )
    os.close(fd)
    return Path(temp_path)


def _replace_atomically(
    target_path: PathLike,
    write: Callable[[Path], None],
    suffix: Optional[str] = None,
) -> None:
    """Call write(temp_path), then move the temp file onto target_path."""
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _temp_sibling(target_path, suffix)
    try:
        write(temp_path)
        temp_path.replace(target_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


@contextmanager
def atomic_write(
    target_path: PathLike,
    mode: str = "w",
    suffix: Optional[str] = None,
):
    """
    Context manager yielding a handle to a temp file that replaces target_path on exit.

    If the block raises, the temp file is removed and target_path is untouched.

    Args:
        target_path: Final destination path
        mode: 'w' for text, 'wb' for binary (e.g. a matplotlib PNG)
        suffix: Temp file suffix (default: the target's)

    Example:
        with atomic_write(FIGURES_DIR / "temporal_trends.png", mode="wb") as f:
            fig.savefig(f, format="png")
    """
    target_path = Path(target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _temp_sibling(target_path, suffix or target_path.suffix or ".tmp")

    try:
        encoding = None if "b" in mode else "utf-8"
        with open(temp_path, mode, encoding=encoding) as f:
            yield f
        temp_path.replace(target_path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write_df(df: pd.DataFrame, target_path: PathLike, **kwargs) -> None:
    """
    Atomically write a DataFrame; format from the extension (.csv or .parquet).

    CSV output omits the index unless index=True is passed.

    Raises:
        ValueError: On any other extension
    """
    suffix = Path(target_path).suffix.lower()
    if suffix not in DF_WRITERS:
        raise ValueError(f"Unsupported format: {suffix}")

    if suffix == ".parquet":
        _replace_atomically(target_path, lambda tmp: df.to_parquet(tmp, **kwargs))
    else:
        kwargs.setdefault("index", False)
        _replace_atomically(target_path, lambda tmp: df.to_csv(tmp, **kwargs))


def atomic_write_gdf(gdf: gpd.GeoDataFrame, target_path: PathLike, **kwargs) -> None:
    """
    Atomically write a GeoDataFrame as GeoParquet or GeoJSON.

    Raises:
        ValueError: On any other extension
    """
    suffix = Path(target_path).suffix.lower()
    if suffix not in GDF_WRITERS:
        raise ValueError(f"Unsupported geo format: {suffix}")

    def to_geojson(tmp: Path) -> None:
        # OGR drivers refuse to open the empty placeholder as an existing dataset
        tmp.unlink()
        gdf.to_file(tmp, driver="GeoJSON", **kwargs)

    if suffix == ".parquet":
        _replace_atomically(target_path, lambda tmp: gdf.to_parquet(tmp, **kwargs))
    else:
        _replace_atomically(target_path, to_geojson)


def atomic_write_json(data: Any, target_path: PathLike, **kwargs) -> None:
    """Atomically write JSON (indent=2; non-JSON values via str)."""
    kwargs.setdefault("indent", 2)
    kwargs.setdefault("default", str)
    with atomic_write(target_path, mode="w", suffix=".json") as f:
        json.dump(data, f, **kwargs)


# =============================================================================
# Reads
# =============================================================================

def read_yaml(path: PathLike) -> dict:
    """Read a YAML file; an empty file reads as {}."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def read_json(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def read_df(path: PathLike, **kwargs) -> pd.DataFrame:
    """Read a .csv or .parquet table."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(path, **kwargs)
    if suffix == ".csv":
        return pd.read_csv(path, **kwargs)
    raise ValueError(f"Unsupported format: {suffix}")


def read_incident_rows(path: PathLike) -> List[Dict[str, str]]:
    """
    Read a raw incident CSV into a list of string-valued rows.

    Every cell is kept as the literal string from the file: empty cells stay
    "" (no NaN coercion) and tokens such as "TRUE" are not converted, so the
    normalizer sees exactly what the source contained.

    Args:
        path: Path to the CSV file

    Returns:
        List of {column name: raw string} mappings, in file order

    Raises:
        FileNotFoundError: If path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Incident CSV not found: {path}")

    df = pd.read_csv(path, dtype=str, keep_default_na=False, na_filter=False)
    return df.to_dict(orient="records")
