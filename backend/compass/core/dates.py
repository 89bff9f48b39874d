"""
Calendar-day helpers. All ROI dates are UTC calendar dates keyed as 'YYYY-MM-DD'.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List


def to_date_key(value: date) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def parse_date_key(value: str) -> date:
    return date.fromisoformat(value[:10])


def list_dates(start_date: date, end_date: date) -> List[date]:
    """Inclusive list of calendar days between start_date and end_date."""
    dates = []
    cursor = start_date
    while cursor <= end_date:
        dates.append(cursor)
        cursor += timedelta(days=1)
    return dates


def utc_today() -> date:
    return datetime.now(timezone.utc).date()
