"""
Burn-rate alert classification.

Compares how fast the daily budget is being spent with how fast it may
be spent for the rest of the work day.

Decision Order:
1. Outside the work window - before-work / after-work
2. Budget exhausted - exceeded, whatever the rate
3. Rate ratio against the danger, warning, caution and normal bands
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .working_time import WorkingTimeStatus


class AlertLevel(Enum):
    """Discrete alert levels, most specific first."""
    BEFORE_WORK = "before-work"
    AFTER_WORK = "after-work"
    EXCEEDED = "exceeded"
    DANGER = "danger"
    WARNING = "warning"
    CAUTION = "caution"
    NORMAL = "normal"
    CONSERVATIVE = "conservative"


@dataclass(frozen=True)
class AlertThresholds:
    """Ratio thresholds (current rate / required rate).

    Expected to satisfy danger >= warning >= caution >= normal_min; the
    classifier does not check the ordering.
    """
    danger: float = 1.5
    warning: float = 1.2
    caution: float = 1.0
    normal_min: float = 0.8


@dataclass(frozen=True)
class AlertStyle:
    """Presentation hints for an alert level."""
    message: str
    color: str
    emphasis: str = ""


ALERT_STYLES: Dict[AlertLevel, AlertStyle] = {
    AlertLevel.BEFORE_WORK: AlertStyle("Work has not started", "blue"),
    AlertLevel.AFTER_WORK: AlertStyle("Work has ended", "grey62"),
    AlertLevel.EXCEEDED: AlertStyle("Budget exceeded", "magenta", "bold blink"),
    AlertLevel.DANGER: AlertStyle("Spending too fast, cut back now", "red", "bold"),
    AlertLevel.WARNING: AlertStyle("Spending a little fast, ease off", "dark_orange", "bold"),
    AlertLevel.CAUTION: AlertStyle("Spending on the fast side, watch the pace", "yellow"),
    AlertLevel.NORMAL: AlertStyle("Spending pace is healthy", "green"),
    AlertLevel.CONSERVATIVE: AlertStyle("Spending slowly, room to use more", "blue"),
}


@dataclass(frozen=True)
class BurnRateAssessment:
    """Classification result with the figures it was derived from."""
    level: AlertLevel
    remaining_budget: float
    current_rate: float
    required_rate: float
    ratio: float
    work_status: WorkingTimeStatus

    @property
    def style(self) -> AlertStyle:
        return ALERT_STYLES[self.level]

    @property
    def message(self) -> str:
        return self.style.message


def current_burn_rate(daily_spent: float, elapsed_work_hours: float) -> float:
    """Spend per elapsed work hour."""
    return daily_spent / elapsed_work_hours if elapsed_work_hours > 0 else 0.0


def required_burn_rate(remaining_budget: float, remaining_work_hours: float) -> float:
    """Spend per remaining work hour that would use up the budget exactly."""
    if remaining_work_hours <= 0 or remaining_budget <= 0:
        return 0.0
    return remaining_budget / remaining_work_hours


def classify_alert_level(
    current_rate: float,
    required_rate: float,
    remaining_budget: float,
    work_status: WorkingTimeStatus,
    thresholds: Optional[AlertThresholds] = None
) -> AlertLevel:
    """Pick the alert level; the first matching rule wins.

    Rate bands use strict ``>`` except the normal floor, so a ratio equal
    to a threshold falls into the band below it.
    """
    thresholds = thresholds or AlertThresholds()

    if work_status.is_before_work:
        return AlertLevel.BEFORE_WORK
    if work_status.is_after_work:
        return AlertLevel.AFTER_WORK
    if remaining_budget <= 0:
        return AlertLevel.EXCEEDED

    ratio = current_rate / required_rate if required_rate > 0 else 0.0

    if ratio > thresholds.danger:
        return AlertLevel.DANGER
    if ratio > thresholds.warning:
        return AlertLevel.WARNING
    if ratio > thresholds.caution:
        return AlertLevel.CAUTION
    if ratio >= thresholds.normal_min:
        return AlertLevel.NORMAL
    return AlertLevel.CONSERVATIVE


def classify_burn_rate(
    daily_spent: float,
    daily_budget: float,
    work_status: WorkingTimeStatus,
    thresholds: Optional[AlertThresholds] = None
) -> BurnRateAssessment:
    """Classify today's spending pace.

    Args:
        daily_spent: Amount spent today
        daily_budget: Today's budget
        work_status: Current working-time status
        thresholds: Ratio thresholds, defaults when omitted

    Returns:
        BurnRateAssessment with level, rates and ratio
    """
    remaining_budget = daily_budget - daily_spent
    current_rate = current_burn_rate(daily_spent, work_status.elapsed_work_hours)
    required_rate = required_burn_rate(remaining_budget, work_status.remaining_work_hours)
    ratio = current_rate / required_rate if required_rate > 0 else 0.0

    level = classify_alert_level(
        current_rate, required_rate, remaining_budget, work_status, thresholds
    )

    return BurnRateAssessment(
        level=level,
        remaining_budget=remaining_budget,
        current_rate=current_rate,
        required_rate=required_rate,
        ratio=ratio,
        work_status=work_status,
    )
