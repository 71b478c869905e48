"""
Single-day hourly aggregation.

Buckets one calendar day of snapshots into 24 hour-of-day slots and
derives usage, per-hour spend increase and summary statistics.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from .numeric import safe_number
from .timeutil import end_of_day, from_millis, start_of_day, to_millis
from .working_time import format_hour
from usage_monitor.storage.models import Snapshot

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


@dataclass
class HourlyBucket:
    """Latest reading observed in one hour of the day."""
    hour: int
    hour_label: str
    spent: float = 0.0
    budget: float = 0.0
    usage: float = 0.0
    timestamp: int = 0
    spent_increase: float = 0.0
    increase_percent: float = 0.0
    has_data: bool = False


@dataclass(frozen=True)
class TimelineStats:
    """Summary of a day's buckets."""
    latest_spent: float = 0.0
    active_hours: int = 0
    peak_hour: int = 0
    peak_spent: float = 0.0
    avg_usage: float = 0.0
    avg_spent_per_active_hour: float = 0.0
    max_increase: float = 0.0
    avg_consumption_rate: float = 0.0
    peak_increase_hour: int = 0


@dataclass
class DailyTimeline:
    """24 hourly buckets for one date."""
    date: date
    buckets: List[HourlyBucket]
    stats: TimelineStats = field(default_factory=TimelineStats)
    has_any_data: bool = False


def _empty_buckets() -> List[HourlyBucket]:
    return [HourlyBucket(hour=hour, hour_label=format_hour(hour)) for hour in range(HOURS_PER_DAY)]


def _previous_nonzero_spent(buckets: List[HourlyBucket], index: int) -> float:
    for previous in reversed(buckets[:index]):
        if previous.spent > 0:
            return previous.spent
    return 0.0


def build_daily_timeline(
    snapshots: Sequence[Snapshot],
    selected_date: Optional[Union[date, datetime]] = None
) -> DailyTimeline:
    """Aggregate one day of snapshots into hourly buckets.

    Within an hour the latest snapshot wins. ``spent_increase`` is the
    spend growth observed in the hour: last minus first reading when the
    hour has two or more, otherwise the growth over the most recent
    earlier hour with spend. ``increase_percent`` is relative to that
    earlier hour.

    Malformed input never raises; it produces an empty timeline.

    Args:
        snapshots: Snapshot history, any order
        selected_date: Day to aggregate, defaults to today

    Returns:
        DailyTimeline with 24 buckets and stats
    """
    if selected_date is None:
        selected_date = datetime.now()
    day = selected_date.date() if isinstance(selected_date, datetime) else selected_date

    try:
        if not isinstance(snapshots, (list, tuple)):
            raise TypeError(f"expected a list of snapshots, got {type(snapshots).__name__}")

        day_start = to_millis(start_of_day(day))
        day_end = to_millis(end_of_day(day))
        day_points = sorted(
            (point for point in snapshots if day_start <= point.timestamp <= day_end),
            key=lambda point: point.timestamp
        )

        buckets = _empty_buckets()
        points_by_hour: Dict[int, List[Snapshot]] = {}

        for point in day_points:
            hour = from_millis(point.timestamp).hour
            points_by_hour.setdefault(hour, []).append(point)

            bucket = buckets[hour]
            if not bucket.has_data or point.timestamp > bucket.timestamp:
                bucket.spent = safe_number(point.daily_spent)
                bucket.budget = safe_number(point.daily_budget)
                bucket.usage = safe_number(bucket.spent / bucket.budget * 100) if bucket.budget > 0 else 0.0
                bucket.timestamp = point.timestamp
                bucket.has_data = True

        for index, bucket in enumerate(buckets):
            if not bucket.has_data or bucket.spent <= 0:
                continue

            hour_points = points_by_hour.get(bucket.hour, [])
            previous_spent = _previous_nonzero_spent(buckets, index)

            if len(hour_points) >= 2:
                first, last = hour_points[0], hour_points[-1]
                bucket.spent_increase = max(
                    0.0, safe_number(last.daily_spent) - safe_number(first.daily_spent)
                )
            elif len(hour_points) == 1:
                bucket.spent_increase = max(0.0, bucket.spent - previous_spent)

            if previous_spent > 0:
                bucket.increase_percent = safe_number(
                    (bucket.spent - previous_spent) / previous_spent * 100
                )

        return DailyTimeline(
            date=day,
            buckets=buckets,
            stats=compute_timeline_stats(buckets),
            has_any_data=any(bucket.has_data for bucket in buckets),
        )

    except Exception:
        logger.exception("Error processing hourly data for %s", day)
        return DailyTimeline(date=day, buckets=_empty_buckets())


def compute_timeline_stats(buckets: List[HourlyBucket]) -> TimelineStats:
    """Summarise hourly buckets.

    The peak hour is the first hour reaching the maximum spend.
    """
    if not buckets:
        return TimelineStats()

    active = [bucket for bucket in buckets if bucket.spent > 0]

    peak = buckets[0]
    for bucket in buckets:
        if bucket.spent > peak.spent:
            peak = bucket

    avg_usage = sum(bucket.usage for bucket in active) / len(active) if active else 0.0
    avg_spent = sum(bucket.spent for bucket in active) / len(active) if active else 0.0

    increasing = [bucket for bucket in buckets if bucket.spent_increase > 0]
    max_increase = 0.0
    avg_rate = 0.0
    peak_increase_hour = 0
    if increasing:
        peak_increase = increasing[0]
        for bucket in increasing:
            if bucket.spent_increase > peak_increase.spent_increase:
                peak_increase = bucket
        max_increase = peak_increase.spent_increase
        avg_rate = sum(bucket.spent_increase for bucket in increasing) / len(increasing)
        peak_increase_hour = peak_increase.hour

    return TimelineStats(
        latest_spent=safe_number(active[-1].spent) if active else 0.0,
        active_hours=len(active),
        peak_hour=peak.hour,
        peak_spent=safe_number(peak.spent),
        avg_usage=safe_number(avg_usage),
        avg_spent_per_active_hour=safe_number(avg_spent),
        max_increase=safe_number(max_increase),
        avg_consumption_rate=safe_number(avg_rate),
        peak_increase_hour=peak_increase_hour,
    )
