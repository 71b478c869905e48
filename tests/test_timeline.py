"""
Tests for the single-day hourly timeline.
"""

from datetime import date, datetime

import pytest

from usage_monitor.core.timeline import build_daily_timeline, compute_timeline_stats
from usage_monitor.core.timeutil import to_millis
from usage_monitor.storage.models import Snapshot

DAY = date(2024, 6, 11)


def snapshot_at(hour, minute, spent, budget=50.0, day=DAY):
    """Create a snapshot at a local time on ``day``."""
    moment = datetime(day.year, day.month, day.day, hour, minute)
    return Snapshot(timestamp=to_millis(moment), daily_budget=budget, daily_spent=spent)


class TestDailyTimeline:
    """Test hourly bucketing."""

    def test_worked_example(self):
        """Three readings across two hours."""
        snapshots = [
            snapshot_at(9, 0, 10),
            snapshot_at(9, 30, 25),
            snapshot_at(14, 0, 40),
        ]

        result = build_daily_timeline(snapshots, DAY)
        nine = result.buckets[9]
        two_pm = result.buckets[14]

        assert result.has_any_data
        assert nine.spent == 25
        assert nine.usage == pytest.approx(50.0)
        assert nine.spent_increase == pytest.approx(15)
        assert two_pm.spent == 40
        assert two_pm.usage == pytest.approx(80.0)
        assert two_pm.spent_increase == pytest.approx(15)
        assert two_pm.increase_percent == pytest.approx(60.0)

        stats = result.stats
        assert stats.latest_spent == 40
        assert stats.active_hours == 2
        assert stats.peak_hour == 14
        assert stats.peak_spent == 40
        assert stats.avg_usage == pytest.approx(65.0)
        assert stats.avg_spent_per_active_hour == pytest.approx(32.5)
        assert stats.max_increase == pytest.approx(15)
        assert stats.peak_increase_hour == 9
        assert stats.avg_consumption_rate == pytest.approx(15)

    def test_latest_snapshot_in_hour_wins(self):
        snapshots = [snapshot_at(2, 40, 7), snapshot_at(2, 10, 5)]

        result = build_daily_timeline(snapshots, DAY)

        assert result.buckets[2].spent == 7
        assert result.buckets[2].has_data
        for bucket in result.buckets:
            if bucket.hour != 2:
                assert bucket.spent == 0
                assert not bucket.has_data

    def test_other_days_are_ignored(self):
        snapshots = [
            snapshot_at(10, 0, 30, day=date(2024, 6, 10)),
            snapshot_at(11, 0, 5),
        ]

        result = build_daily_timeline(snapshots, DAY)

        assert result.buckets[10].has_data is False
        assert result.buckets[11].spent == 5
        assert result.buckets[11].spent_increase == 5

    def test_zero_budget_gives_zero_usage(self):
        result = build_daily_timeline([snapshot_at(8, 0, 12, budget=0)], DAY)

        assert result.buckets[8].usage == 0

    def test_datetime_selection(self):
        result = build_daily_timeline([snapshot_at(8, 0, 12)], datetime(2024, 6, 11, 17, 45))

        assert result.date == DAY
        assert result.buckets[8].spent == 12

    def test_bucket_labels(self):
        result = build_daily_timeline([], DAY)

        assert len(result.buckets) == 24
        assert result.buckets[0].hour_label == "00:00"
        assert result.buckets[23].hour_label == "23:00"
        assert not result.has_any_data

    @pytest.mark.parametrize("bad_input", [None, "not a list", [object()], [None]])
    def test_malformed_input_degrades_to_empty(self, bad_input):
        result = build_daily_timeline(bad_input, DAY)

        assert len(result.buckets) == 24
        assert not result.has_any_data
        assert all(bucket.spent == 0 for bucket in result.buckets)


class TestTimelineStats:
    """Test summary statistics."""

    def test_empty(self):
        stats = compute_timeline_stats([])
        assert stats.active_hours == 0
        assert stats.peak_hour == 0

    def test_no_activity(self):
        stats = compute_timeline_stats(build_daily_timeline([], DAY).buckets)

        assert stats.latest_spent == 0
        assert stats.avg_usage == 0
        assert stats.max_increase == 0
