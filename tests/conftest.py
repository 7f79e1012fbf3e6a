"""
Shared fixtures for the incident atlas tests.
"""

from pathlib import Path

import pytest

from incident_atlas.io_utils import read_incident_rows
from incident_atlas.records import normalize_row


FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CSV = FIXTURES_DIR / "incidents_sample.csv"


@pytest.fixture
def sample_csv():
    """Path to the six-row sample export."""
    return SAMPLE_CSV


@pytest.fixture
def sample_rows():
    """Raw string rows from the sample export."""
    return read_incident_rows(SAMPLE_CSV)


@pytest.fixture
def make_row():
    """Factory for raw rows with the export's column headers."""
    def _make_row(record_id="1", date="01/01/20 12:00", x="", y="", **overrides):
        row = {
            "ID": record_id,
            "Case Number": f"JA{record_id}",
            "Date": date,
            "Primary Type": "THEFT",
            "Arrest": "FALSE",
            "Domestic": "FALSE",
            "X Coordinate": x,
            "Y Coordinate": y,
            "Latitude": "",
            "Longitude": "",
        }
        row.update(overrides)
        return row
    return _make_row


@pytest.fixture
def make_record(make_row):
    """Factory for normalized records."""
    def _make_record(record_id="1", date="01/01/20 12:00", x="", y="", **overrides):
        return normalize_row(make_row(record_id, date, x, y, **overrides))
    return _make_record
