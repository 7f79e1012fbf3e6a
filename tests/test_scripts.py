"""
Tests that run pipeline scripts end to end against temporary output paths.
"""

import functools
import importlib.util
import json
import sys

import pytest

from incident_atlas.hashing import read_metadata_sidecar, write_metadata_sidecar
from incident_atlas.io_utils import read_df
from incident_atlas.logging_utils import JSONLLogger
from incident_atlas.paths import PROJECT_ROOT


# Well-formed row geocoded far outside Chicago, with x/y of 0
OUT_OF_BOX_ROW = (
    "10007,JA100007,01/04/20 10:00,0000X S STATE LINE RD,0820,THEFT,$500 AND UNDER,"
    "STREET,FALSE,FALSE,1123,011,28,25,06,0,0,2020,01/10/20 15:50,36.619,-91.686,"
)


def load_script(stem):
    """Import scripts/<stem>.py as a module."""
    path = PROJECT_ROOT / "scripts" / f"{stem}.py"
    spec = importlib.util.spec_from_file_location(f"script_{stem}", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def normalize_script(tmp_path, monkeypatch):
    """01_normalize_incidents with outputs, logs and sidecars under tmp_path."""
    module = load_script("01_normalize_incidents")
    monkeypatch.setattr(module, "OUTPUT_PARQUET", tmp_path / "out" / "incidents_clean.parquet")
    monkeypatch.setattr(module, "OUTPUT_CSV", tmp_path / "out" / "incidents_clean.csv")
    monkeypatch.setattr(
        module,
        "get_logger",
        lambda name: JSONLLogger(name, log_dir=tmp_path / "logs", console=False),
    )
    monkeypatch.setattr(
        module,
        "write_metadata_sidecar",
        functools.partial(write_metadata_sidecar, metadata_dir=tmp_path / "metadata"),
    )
    return module


def read_log_records(log_dir):
    (log_file,) = log_dir.glob("*.jsonl")
    return [json.loads(line) for line in log_file.read_text().splitlines()]


class TestNormalizeScript:
    """Tests for 01_normalize_incidents.py."""

    def test_sample_export(self, normalize_script, sample_csv, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["01_normalize_incidents.py", "--input", str(sample_csv)])
        normalize_script.main()

        df = read_df(normalize_script.OUTPUT_PARQUET)
        assert len(df) == 6
        assert normalize_script.OUTPUT_CSV.exists()

        metadata = read_metadata_sidecar(normalize_script.OUTPUT_PARQUET, metadata_dir=tmp_path / "metadata")
        assert metadata["extra"]["out_of_bounds"] == {"epsg_4326": 0, "epsg_3435": 0}

    def test_out_of_box_row_is_kept(self, normalize_script, sample_csv, tmp_path, monkeypatch):
        raw = tmp_path / "incidents.csv"
        raw.write_text(sample_csv.read_text().rstrip("\n") + "\n" + OUT_OF_BOX_ROW + "\n")
        monkeypatch.setattr(sys, "argv", ["01_normalize_incidents.py", "--input", str(raw)])

        normalize_script.main()

        df = read_df(normalize_script.OUTPUT_PARQUET)
        assert len(df) == 7
        kept = df[df["id"] == "10007"].iloc[0]
        assert kept["latitude"] == pytest.approx(36.619)
        assert kept["longitude"] == pytest.approx(-91.686)
        assert kept["x_coordinate"] == 0.0

        metadata = read_metadata_sidecar(normalize_script.OUTPUT_PARQUET, metadata_dir=tmp_path / "metadata")
        assert metadata["extra"]["out_of_bounds"] == {"epsg_4326": 1, "epsg_3435": 1}

        records = read_log_records(tmp_path / "logs")
        warnings = [r["message"] for r in records if r["level"] == "WARNING"]
        assert any("bounds check failed" in m for m in warnings)
        metrics = next(r for r in records if r["message"] == "Metrics recorded")
        assert metrics["extra"]["metrics"]["out_of_bounds"]["epsg_4326"] == 1
        assert records[-1]["message"] == "Logger closing"
        assert any(r["message"].startswith("SUCCESS") for r in records)
