"""
Tests for burn-rate alert classification.
"""

from datetime import datetime

import pytest

from usage_monitor.core.alerts import (
    AlertLevel,
    AlertThresholds,
    classify_alert_level,
    classify_burn_rate,
    current_burn_rate,
    required_burn_rate,
)
from usage_monitor.core.working_time import get_working_time_status


class TestBurnRates:
    """Test rate helpers."""

    def test_current_rate(self):
        assert current_burn_rate(40, 4) == 10
        assert current_burn_rate(40, 0) == 0

    def test_required_rate(self):
        assert required_burn_rate(60, 4) == 15
        assert required_burn_rate(60, 0) == 0
        assert required_burn_rate(-5, 4) == 0


class TestAlertClassification:
    """Test alert level selection."""

    def setup_method(self):
        # 9-17 window at 13:00: 4 hours elapsed, 4 remaining
        self.during = get_working_time_status(9, 17, datetime(2024, 6, 11, 13, 0))
        self.before = get_working_time_status(9, 17, datetime(2024, 6, 11, 7, 0))
        self.after = get_working_time_status(9, 17, datetime(2024, 6, 11, 20, 0))

    def test_exceeded_regardless_of_rate(self):
        result = classify_burn_rate(150, 100, self.during)

        assert result.level == AlertLevel.EXCEEDED
        assert result.remaining_budget == -50
        assert result.style.color == "magenta"

    def test_outside_work_window_wins(self):
        assert classify_burn_rate(150, 100, self.before).level == AlertLevel.BEFORE_WORK
        assert classify_burn_rate(10, 100, self.after).level == AlertLevel.AFTER_WORK

    def test_danger(self):
        result = classify_burn_rate(70, 100, self.during)

        assert result.current_rate == pytest.approx(17.5)
        assert result.required_rate == pytest.approx(7.5)
        assert result.level == AlertLevel.DANGER

    def test_conservative(self):
        result = classify_burn_rate(40, 100, self.during)

        assert result.ratio == pytest.approx(10 / 15)
        assert result.level == AlertLevel.CONSERVATIVE
        assert result.message == "Spending slowly, room to use more"

    def test_ratio_at_danger_falls_to_warning(self):
        result = classify_burn_rate(60, 100, self.during)

        assert result.ratio == pytest.approx(1.5)
        assert result.level == AlertLevel.WARNING

    @pytest.mark.parametrize("current,expected", [
        (1.2, AlertLevel.CAUTION),
        (1.0, AlertLevel.NORMAL),
        (0.8, AlertLevel.NORMAL),
        (0.5, AlertLevel.CONSERVATIVE),
        (1.3, AlertLevel.WARNING),
    ])
    def test_band_boundaries(self, current, expected):
        """A ratio equal to a threshold lands in the band below it."""
        level = classify_alert_level(current, 1.0, 10, self.during)
        assert level == expected

    def test_custom_thresholds(self):
        thresholds = AlertThresholds(danger=3.0, warning=2.5, caution=2.0, normal_min=0.5)
        result = classify_burn_rate(70, 100, self.during, thresholds)

        assert result.level == AlertLevel.CAUTION

    def test_inverted_thresholds_are_not_rejected(self):
        """Misordered thresholds still classify; the first band that matches wins."""
        thresholds = AlertThresholds(danger=0.5, warning=2.0, caution=3.0, normal_min=4.0)
        result = classify_burn_rate(50, 100, self.during, thresholds)

        assert result.ratio == pytest.approx(1.0)
        assert result.level == AlertLevel.DANGER
