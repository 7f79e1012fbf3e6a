"""
Per-day incident counts for trend reporting.
"""

from collections import Counter
from datetime import date
from typing import Dict, List, Mapping, Sequence, Tuple

import pandas as pd

from incident_atlas.records import IncidentRecord


def count_by_date(records: Sequence[IncidentRecord]) -> Dict[date, int]:
    """
    Count incidents per calendar date.

    Returns:
        date -> count, with keys inserted in ascending date order
    """
    counts = Counter(record.date for record in records)
    return {day: counts[day] for day in sorted(counts)}


def sorted_dates(date_counts: Mapping[date, int]) -> List[date]:
    """Distinct dates in ascending order."""
    return sorted(date_counts)


def date_count_pairs(records: Sequence[IncidentRecord]) -> List[Tuple[date, int]]:
    """Ordered (date, count) pairs, ready for a chart."""
    return list(count_by_date(records).items())


def date_counts_frame(date_counts: Mapping[date, int]) -> pd.DataFrame:
    """Two-column frame (date, count) sorted by date."""
    days = sorted_dates(date_counts)
    return pd.DataFrame({
        "date": pd.to_datetime(days),
        "count": pd.Series([date_counts[d] for d in days], dtype="int64"),
    })
