# FILE: pharmacy_pos/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date, time, timedelta
from typing import Tuple
from zoneinfo import ZoneInfo

# store business day; expiry, bill prefixes and report windows follow it
IST = ZoneInfo("Asia/Kolkata")


def now_ist() -> datetime:
    """Naive datetime in IST (DateTime columns are naive)."""
    return datetime.now(IST).replace(tzinfo=None)


def today_ist() -> date:
    return now_ist().date()


def day_bounds(start: date, end: date) -> Tuple[datetime, datetime]:
    """[start 00:00, end+1 00:00) as naive datetimes for range filters."""
    return (
        datetime.combine(start, time.min),
        datetime.combine(end + timedelta(days=1), time.min),
    )
