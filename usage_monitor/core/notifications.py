"""
Budget threshold notifications.

Builds warning messages and decides whether one may be sent, so the
same budget warning is not repeated within a period.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from .timeutil import MS_PER_MINUTE, now_millis
from usage_monitor.storage.models import NotificationStatus

logger = logging.getLogger(__name__)

MIN_NOTIFICATION_INTERVAL_MS = 30 * MS_PER_MINUTE


class NotificationType(Enum):
    """Budgets that can trigger a notification."""
    DAILY_BUDGET = "dailyBudget"
    MONTHLY_BUDGET = "monthlyBudget"


_PERIOD_NAMES = {
    NotificationType.DAILY_BUDGET: "Daily",
    NotificationType.MONTHLY_BUDGET: "Monthly",
}


@dataclass(frozen=True)
class BudgetNotification:
    type: NotificationType
    title: str
    message: str


NotificationSink = Callable[[BudgetNotification], None]


def create_budget_warning(
    notification_type: NotificationType,
    usage_percentage: float,
    threshold: float
) -> BudgetNotification:
    """Warning for a budget at or above its threshold."""
    period = _PERIOD_NAMES[notification_type]
    if usage_percentage >= 100:
        message = f"Your {period.lower()} budget is exceeded. Current usage: {usage_percentage:.1f}%"
    else:
        message = (
            f"Your {period.lower()} budget usage reached {usage_percentage:.1f}%, "
            f"above the {threshold:g}% threshold"
        )
    return BudgetNotification(
        type=notification_type,
        title=f"{period} budget warning",
        message=message,
    )


def can_send_notification(
    status: NotificationStatus,
    notification_type: NotificationType,
    now: int
) -> bool:
    """Whether a notification of this type may go out now.

    Any notification blocks all others for 30 minutes; after that each
    type is sent at most once until its period is reset.
    """
    if now - status.last_notification_time < MIN_NOTIFICATION_INTERVAL_MS:
        return False
    if notification_type is NotificationType.DAILY_BUDGET:
        return not status.daily_budget
    return not status.monthly_budget


def mark_notification_sent(
    status: NotificationStatus,
    notification_type: NotificationType,
    now: int
) -> NotificationStatus:
    if notification_type is NotificationType.DAILY_BUDGET:
        return replace(status, daily_budget=True, last_notification_time=now)
    return replace(status, monthly_budget=True, last_notification_time=now)


class NotificationDispatcher:
    """Delivers notifications to a sink, applying the dedup rules."""

    def __init__(self, repository, sink: NotificationSink):
        self.repository = repository
        self.sink = sink

    def send(self, notification: BudgetNotification, now: Optional[int] = None) -> bool:
        """Send unless a recent notification suppresses it.

        Returns:
            True if the sink was called successfully
        """
        now = now if now is not None else now_millis()
        status = self.repository.get_notification_status()

        if not can_send_notification(status, notification.type, now):
            logger.info("Notification of type %s was sent recently, skipping", notification.type.value)
            return False

        try:
            self.sink(notification)
        except Exception:
            logger.exception("Error sending %s notification", notification.type.value)
            return False

        self.repository.set_notification_status(mark_notification_sent(status, notification.type, now))
        logger.info("Notification sent: %s", notification.type.value)
        return True

    def reset(self, notification_type: NotificationType) -> None:
        """Allow this type to be sent again (new day or month)."""
        status = self.repository.get_notification_status()
        if notification_type is NotificationType.DAILY_BUDGET:
            status = replace(status, daily_budget=False)
        else:
            status = replace(status, monthly_budget=False)
        self.repository.set_notification_status(status)
