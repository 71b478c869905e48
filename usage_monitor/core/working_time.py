"""
Working-time calculations.

Places the current moment relative to today's work window.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class WorkingTimeStatus:
    """Where ``now`` sits relative to today's work window."""
    is_before_work: bool
    is_during_work: bool
    is_after_work: bool
    elapsed_work_hours: float
    remaining_work_hours: float
    current_hour: float
    work_start: int
    work_end: int


def format_hour(hour: int) -> str:
    """Format an hour of day as ``"09:00"``."""
    return f"{hour:02d}:00"


def describe_work_time(work_start: int, work_end: int) -> str:
    return f"{format_hour(work_start)} - {format_hour(work_end)}"


def validate_working_hours(start: int, end: int) -> bool:
    """Check that a work window fits in one day and is not empty."""
    return start >= 0 and end <= 24 and start < end


def get_working_time_status(
    work_start: int,
    work_end: int,
    now: Optional[datetime] = None
) -> WorkingTimeStatus:
    """Compute elapsed and remaining work hours for today.

    An end hour of 24 closes the window at 23:59:59.999 so it never rolls
    into the next day. The window is assumed valid (start < end); that is
    checked when the configuration is saved.

    Args:
        work_start: First work hour (0-24)
        work_end: Hour the work window closes (0-24)
        now: Moment to evaluate, defaults to the local wall clock

    Returns:
        WorkingTimeStatus with exactly one of before/during/after set
    """
    now = now or datetime.now()
    current_hour = now.hour + now.minute / 60

    window_start = now.replace(hour=work_start, minute=0, second=0, microsecond=0)
    if work_end == 24:
        window_end = now.replace(hour=23, minute=59, second=59, microsecond=999000)
    else:
        window_end = now.replace(hour=work_end, minute=0, second=0, microsecond=0)

    is_before_work = now < window_start
    is_after_work = now > window_end
    is_during_work = not is_before_work and not is_after_work

    elapsed = 0.0
    remaining = 0.0
    if is_during_work:
        elapsed = (now - window_start).total_seconds() / 3600
        remaining = (window_end - now).total_seconds() / 3600
    elif is_after_work:
        elapsed = float(work_end - work_start)

    return WorkingTimeStatus(
        is_before_work=is_before_work,
        is_during_work=is_during_work,
        is_after_work=is_after_work,
        elapsed_work_hours=max(0.0, elapsed),
        remaining_work_hours=max(0.0, remaining),
        current_hour=current_hour,
        work_start=work_start,
        work_end=work_end,
    )
