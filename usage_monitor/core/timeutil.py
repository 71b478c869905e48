"""
Millisecond timestamp helpers.

Snapshots carry epoch milliseconds; bucketing works in local time.
"""

import time
from datetime import date, datetime, time as dt_time
from typing import Union

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR


def now_millis() -> int:
    return int(time.time() * 1000)


def to_millis(moment: datetime) -> int:
    return int(round(moment.timestamp() * 1000))


def from_millis(timestamp: Union[int, float]) -> datetime:
    """Local datetime for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp / 1000)


def start_of_day(day: Union[date, datetime]) -> datetime:
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, dt_time.min)


def end_of_day(day: Union[date, datetime]) -> datetime:
    """Last representable millisecond of the day."""
    if isinstance(day, datetime):
        day = day.date()
    return datetime.combine(day, dt_time(23, 59, 59, 999000))
