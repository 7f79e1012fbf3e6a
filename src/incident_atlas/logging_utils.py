"""
Structured JSONL run logs.

Each script run writes logs/{script_name}_{run_id}.jsonl. Every line is one
JSON object with timestamp, script_name, run_id, level, message and an
optional extra payload (config, inputs, outputs, metrics, skipped rows,
cluster and graph statistics). Messages are mirrored to stdout through the
standard logging module.
"""

import importlib
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from incident_atlas.paths import LOGS_DIR


# (distribution name, import name) of the libraries whose versions are logged
TRACKED_LIBRARIES = [
    ("pandas", "pandas"),
    ("numpy", "numpy"),
    ("pyarrow", "pyarrow"),
    ("geopandas", "geopandas"),
    ("shapely", "shapely"),
    ("pyproj", "pyproj"),
    ("scikit-learn", "sklearn"),
    ("matplotlib", "matplotlib"),
]


def generate_run_id() -> str:
    """UTC timestamp plus 8 hex chars, e.g. 20240101_120000_1a2b3c4d."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def get_versions() -> dict[str, str]:
    """Versions of python and the tracked libraries that are importable."""
    versions = {"python": sys.version.split()[0]}
    for dist_name, module_name in TRACKED_LIBRARIES:
        try:
            module = importlib.import_module(module_name)
        except ImportError:
            continue
        versions[dist_name] = getattr(module, "__version__", "unknown")
    return versions


class JSONLLogger:
    """
    Structured JSONL logger for pipeline scripts.

    Usage:
        with get_logger("02_cluster_incidents") as logger:
            logger.info("Clustering", extra={"k": 3})
            logger.log_cluster_stats({"iterations": 4, "converged": True})
    """

    def __init__(
        self,
        script_name: str,
        run_id: Optional[str] = None,
        log_dir: Optional[Path] = None,
        console: bool = True,
    ):
        """
        Open the run's log file.

        Args:
            script_name: Script stem, used in the file name and every record
            run_id: Run identifier; generated when omitted
            log_dir: Directory for the .jsonl file (default LOGS_DIR)
            console: Mirror messages at INFO and above to stdout
        """
        self.script_name = script_name
        self.run_id = run_id or generate_run_id()
        self.log_dir = Path(log_dir) if log_dir is not None else LOGS_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_file = self.log_dir / f"{script_name}_{self.run_id}.jsonl"
        self._file_handle = open(self.log_file, "a", encoding="utf-8")

        self._logger = logging.getLogger(f"incident_atlas.{script_name}")
        self._logger.setLevel(logging.DEBUG)
        self._console_handler = None
        if console:
            self._console_handler = logging.StreamHandler(sys.stdout)
            self._console_handler.setLevel(logging.INFO)
            self._console_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
            )
            self._logger.addHandler(self._console_handler)

        self._write_record("INFO", "Logger initialized", {
            "log_file": str(self.log_file),
            "versions": get_versions(),
        })

    def _write_record(self, level: str, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "script_name": self.script_name,
            "run_id": self.run_id,
            "level": level,
            "message": message,
        }
        if extra:
            record["extra"] = extra
        # default=str covers dates, paths and numpy scalars
        self._file_handle.write(json.dumps(record, default=str) + "\n")
        self._file_handle.flush()

    def _log(self, level: int, message: str, extra: Optional[dict[str, Any]]) -> None:
        self._write_record(logging.getLevelName(level), message, extra)
        self._logger.log(level, message)

    def debug(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log(logging.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log(logging.INFO, message, extra)

    def warning(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log(logging.WARNING, message, extra)

    def error(self, message: str, extra: Optional[dict[str, Any]] = None) -> None:
        self._log(logging.ERROR, message, extra)

    # Structured sections: file only, not echoed to the console

    def log_config(self, config: dict[str, Any], config_digest: Optional[str] = None) -> None:
        self._write_record("INFO", "Configuration loaded", {"config": config, "config_digest": config_digest})

    def log_inputs(self, inputs: dict[str, str]) -> None:
        self._write_record("INFO", "Inputs registered", {"inputs": inputs})

    def log_outputs(self, outputs: dict[str, str]) -> None:
        self._write_record("INFO", "Outputs registered", {"outputs": outputs})

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        """Row counts, coverage rates and other per-stage numbers."""
        self._write_record("INFO", "Metrics recorded", {"metrics": metrics})

    def log_skipped_rows(self, skipped: list[dict[str, Any]]) -> None:
        """Rows dropped by the ingestion skip policy."""
        self._write_record("WARNING", "Skipped malformed rows", {
            "skipped_count": len(skipped),
            "skipped": skipped,
        })

    def log_cluster_stats(self, cluster_stats: dict[str, Any]) -> None:
        """k, iterations, convergence, sizes and quality of a k-means run."""
        self._write_record("INFO", "Cluster stats recorded", {"cluster_stats": cluster_stats})

    def log_graph_stats(self, graph_stats: dict[str, Any]) -> None:
        """Node/edge counts and reachability results."""
        self._write_record("INFO", "Graph stats recorded", {"graph_stats": graph_stats})

    def close(self) -> None:
        self._write_record("INFO", "Logger closing")
        self._file_handle.close()
        if self._console_handler is not None:
            self._logger.removeHandler(self._console_handler)

    def __enter__(self) -> "JSONLLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.error(f"Exception occurred: {exc_type.__name__}: {exc_val}")
        self.close()


def get_logger(script_name: str, run_id: Optional[str] = None) -> JSONLLogger:
    """JSONLLogger writing to LOGS_DIR with console output."""
    return JSONLLogger(script_name=script_name, run_id=run_id)
