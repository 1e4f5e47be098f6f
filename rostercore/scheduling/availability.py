"""
Utility functions for time-window checks.
All datetimes are naive UTC.
"""
from datetime import date, datetime, time, timedelta


def overlaps(a_start: datetime, a_end: datetime,
             b_start: datetime, b_end: datetime) -> bool:
    """Half-open windows [start, end) share at least one instant."""
    return a_start < b_end and b_start < a_end


def covers(block_start: datetime, block_end: datetime,
           start: datetime, end: datetime) -> bool:
    """Block fully contains [start, end)."""
    return block_start <= start and end <= block_end


def day_bounds(d: date) -> tuple[datetime, datetime]:
    """date → [00:00, next day 00:00)"""
    start = datetime.combine(d, time.min)
    return start, start + timedelta(days=1)


def week_bounds(dt: datetime) -> tuple[datetime, datetime]:
    """ISO week containing dt → [Monday 00:00, next Monday 00:00)"""
    monday = dt.date() - timedelta(days=dt.weekday())
    start = datetime.combine(monday, time.min)
    return start, start + timedelta(days=7)
