"""
Provenance sidecars for pipeline outputs.

Every table or figure a script writes gets a JSON sidecar in
data/processed/metadata/ recording:
  - sha256 of each input and of the output itself
  - config digest (and the config)
  - git commit / dirty flag of the checkout
  - library versions, run_id, UTC timestamp
Sidecars describe a run; nothing reads them back as cache state.
"""

import hashlib
import json
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from incident_atlas.io_utils import atomic_write_json, read_json
from incident_atlas.logging_utils import get_versions
from incident_atlas.paths import METADATA_DIR, PROJECT_ROOT


CHUNK_SIZE = 1 << 16


# =============================================================================
# Digests
# =============================================================================

def hash_file(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """
    Hex digest of a file's bytes, read in chunks.

    Raises:
        FileNotFoundError: If path does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cannot hash non-existent file: {path}")

    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        while True:
            chunk = f.read(CHUNK_SIZE)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def hash_string(s: str, algorithm: str = "sha256") -> str:
    return hashlib.new(algorithm, s.encode("utf-8")).hexdigest()


def hash_dict(d: Dict[str, Any], algorithm: str = "sha256") -> str:
    """
    Digest of a config dict.

    Keys are sorted, so two configs that differ only in key order share a digest.
    """
    return hash_string(json.dumps(d, sort_keys=True, default=str), algorithm)


def _file_entry(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        return {"path": str(path), "hash": None, "missing": True}
    return {"path": str(path), "hash": hash_file(path), "bytes": path.stat().st_size}


# =============================================================================
# Git
# =============================================================================

def _git(*args: str) -> Optional[str]:
    """Run a git command in the project root; None outside a checkout."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=PROJECT_ROOT,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()


def get_git_info() -> Dict[str, Any]:
    """Commit hash and dirty flag, both None when git is unavailable."""
    commit = _git("rev-parse", "HEAD")
    status = _git("status", "--porcelain")
    return {
        "commit": commit,
        "dirty": None if status is None else bool(status),
    }


# =============================================================================
# Sidecars
# =============================================================================

def create_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the sidecar dictionary for one output.

    Args:
        output_path: Output the sidecar describes (hashed if it already exists)
        inputs: Input name -> path
        config: Parameters the run used
        run_id: Run identifier shared with the JSONL log
        extra: Stage-specific details (k, start id, skipped rows, ...)

    Returns:
        Metadata dictionary
    """
    metadata = {
        "output": _file_entry(output_path),
        "run_id": run_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "inputs": {name: _file_entry(path) for name, path in inputs.items()},
        "config_digest": hash_dict(config),
        "config": config,
        "git": get_git_info(),
        "versions": get_versions(),
    }
    if extra:
        metadata["extra"] = extra
    return metadata


def sidecar_path_for(output_path: Union[str, Path], metadata_dir: Optional[Path] = None) -> Path:
    """data/processed/clusters/cluster_centers.csv -> metadata/cluster_centers_metadata.json"""
    if metadata_dir is None:
        metadata_dir = METADATA_DIR
    return Path(metadata_dir) / f"{Path(output_path).stem}_metadata.json"


def write_metadata_sidecar(
    output_path: Union[str, Path],
    inputs: Dict[str, str],
    config: Dict[str, Any],
    run_id: str,
    extra: Optional[Dict[str, Any]] = None,
    metadata_dir: Optional[Path] = None,
) -> Path:
    """
    Write the sidecar for output_path atomically.

    Call after the output itself is written so its hash is recorded.

    Returns:
        Path to the sidecar file
    """
    metadata = create_metadata_sidecar(output_path, inputs, config, run_id, extra)
    sidecar_path = sidecar_path_for(output_path, metadata_dir)
    atomic_write_json(metadata, sidecar_path)
    return sidecar_path


def read_metadata_sidecar(
    output_path: Union[str, Path],
    metadata_dir: Optional[Path] = None,
) -> Optional[Dict[str, Any]]:
    """Sidecar contents for output_path, or None if no sidecar was written."""
    sidecar_path = sidecar_path_for(output_path, metadata_dir)
    if not sidecar_path.exists():
        return None
    return read_json(sidecar_path)
