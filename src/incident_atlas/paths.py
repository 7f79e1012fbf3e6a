"""
Canonical path resolution for the Incident Atlas project.

This module is the single source of truth for every path the pipeline
reads from or writes to. Scripts import paths from here instead of building
relative '../' paths.

- Detect root via `.project-root` (primary) and fallback markers
- Expose canonical Paths: RAW_DIR, PROCESSED_DIR, LOGS_DIR, etc.
"""

from pathlib import Path
from typing import Optional

# Markers to detect project root (in priority order)
ROOT_MARKERS = [".project-root", "pyproject.toml", ".git"]


def find_project_root(start_path: Optional[Path] = None) -> Path:
    """
    Find the project root by searching upward for marker files.

    Args:
        start_path: Starting directory for search. Defaults to this file's location.

    Returns:
        Path to project root directory.

    Raises:
        FileNotFoundError: If no root marker is found.
    """
    if start_path is None:
        start_path = Path(__file__).resolve().parent

    current = start_path

    while current != current.parent:
        for marker in ROOT_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent

    for marker in ROOT_MARKERS:
        if (current / marker).exists():
            return current

    raise FileNotFoundError(
        f"Could not find project root. Searched for markers {ROOT_MARKERS} "
        f"starting from {start_path}"
    )


# =============================================================================
# Canonical paths (resolved at import time)
# =============================================================================

PROJECT_ROOT = find_project_root()

# Config
CONFIG_DIR = PROJECT_ROOT / "configs"
PARAMS_FILE = CONFIG_DIR / "params.yml"

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

# Default raw input
RAW_INCIDENTS_CSV = RAW_DIR / "incidents.csv"

# Processed subdirectories (one per pipeline stage)
INCIDENTS_DIR = PROCESSED_DIR / "incidents"
CLUSTERS_DIR = PROCESSED_DIR / "clusters"
GRAPH_DIR = PROCESSED_DIR / "graph"
TEMPORAL_DIR = PROCESSED_DIR / "temporal"
METADATA_DIR = PROCESSED_DIR / "metadata"

# Logs
LOGS_DIR = PROJECT_ROOT / "logs"

# Figures
FIGURES_DIR = PROJECT_ROOT / "reports" / "figures"


if __name__ == "__main__":
    print(f"PROJECT_ROOT:  {PROJECT_ROOT}")
    print(f"RAW_DIR:       {RAW_DIR}")
    print(f"PROCESSED_DIR: {PROCESSED_DIR}")
    print(f"CONFIG_DIR:    {CONFIG_DIR}")
    print(f"LOGS_DIR:      {LOGS_DIR}")
