"""
Polling and budget checks.

Fetches the budget API, records a snapshot of the mapped values and
raises threshold notifications. Replaces the periodic background job.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from .notifications import (
    BudgetNotification,
    NotificationDispatcher,
    NotificationType,
    create_budget_warning,
)
from .numeric import extract_number
from usage_monitor.config.loader import FieldMapping, NotificationThresholds, Settings
from usage_monitor.storage.models import BudgetValues, Snapshot
from usage_monitor.storage.repository import (
    LAST_CHECK_DATE_KEY,
    LAST_CHECK_MONTH_KEY,
    StateRepository,
)

logger = logging.getLogger(__name__)


class MonitorNotConfigured(Exception):
    """Raised when polling is attempted before the API or mapping is set up."""


def has_valid_mapping(mapping: FieldMapping) -> bool:
    """At least one spent field and one budget field must be mapped."""
    has_spent = bool(mapping.daily_spent.strip() or mapping.monthly_spent.strip())
    has_budget = bool(mapping.daily_budget.strip() or mapping.monthly_budget.strip())
    return has_spent and has_budget


def extract_budget_values(data: Any, mapping: FieldMapping) -> BudgetValues:
    """Read the four metrics from an API response; unresolved paths give 0."""
    return BudgetValues(
        daily_budget=extract_number(data, mapping.daily_budget),
        daily_spent=extract_number(data, mapping.daily_spent),
        monthly_budget=extract_number(data, mapping.monthly_budget),
        monthly_spent=extract_number(data, mapping.monthly_spent),
    )


def usage_percentage(spent: float, budget: float) -> float:
    return spent / budget * 100 if budget > 0 else 0.0


def evaluate_budget_usage(
    values: BudgetValues,
    thresholds: NotificationThresholds
) -> List[BudgetNotification]:
    """Warnings for each budget whose usage is at or above its threshold.

    Budgets of zero or less are skipped.
    """
    notifications = []

    if values.daily_budget > 0 and values.daily_spent >= 0:
        daily_usage = usage_percentage(values.daily_spent, values.daily_budget)
        if daily_usage >= thresholds.daily_budget:
            notifications.append(create_budget_warning(
                NotificationType.DAILY_BUDGET, daily_usage, thresholds.daily_budget
            ))

    if values.monthly_budget > 0 and values.monthly_spent >= 0:
        monthly_usage = usage_percentage(values.monthly_spent, values.monthly_budget)
        if monthly_usage >= thresholds.monthly_budget:
            notifications.append(create_budget_warning(
                NotificationType.MONTHLY_BUDGET, monthly_usage, thresholds.monthly_budget
            ))

    return notifications


class BudgetMonitor:
    """Poll loop around the API client, repository and notifications.

    Subscribes to settings changes so the polling interval follows the
    stored configuration.
    """

    def __init__(self, repository: StateRepository, client, dispatcher: Optional[NotificationDispatcher] = None):
        self.repository = repository
        self.client = client
        self.dispatcher = dispatcher
        self.interval_minutes: Optional[int] = None
        self._configure(repository.get_settings())
        self._unsubscribe = repository.subscribe(self._configure)

    def close(self) -> None:
        self._unsubscribe()

    def _configure(self, settings: Settings) -> None:
        if not settings.notifications.enabled:
            logger.info("Notifications disabled, budget checks paused")
            self.interval_minutes = None
        elif not settings.api_url or not settings.token:
            logger.info("API not configured, budget checks paused")
            self.interval_minutes = None
        elif not has_valid_mapping(settings.mapping):
            logger.info("Field mapping not configured, budget checks paused")
            self.interval_minutes = None
        else:
            self.interval_minutes = settings.notifications.query_interval
            logger.info("Budget checks every %d minutes", self.interval_minutes)

    def _ready_settings(self) -> Settings:
        settings = self.repository.get_settings()
        if not settings.api_url or not settings.token:
            raise MonitorNotConfigured("Configure the API URL and token first")
        if not has_valid_mapping(settings.mapping):
            raise MonitorNotConfigured("Configure the field mapping first")
        return settings

    def poll(self, now: Optional[int] = None) -> BudgetValues:
        """Fetch the API and record a snapshot.

        Raises:
            MonitorNotConfigured: If the API or mapping is missing
            ApiError: If the request fails
        """
        settings = self._ready_settings()
        data = self.client.fetch_api_data(settings)
        values = extract_budget_values(data, settings.mapping)

        try:
            self.repository.append_or_merge_snapshot(values, now=now)
        except Exception:
            logger.exception("Error saving historical data")

        return values

    def refresh(self, now: Optional[int] = None) -> BudgetValues:
        """Poll while bypassing the response cache."""
        self.repository.clear_cache()
        return self.poll(now=now)

    def check_budgets(self, now: Optional[int] = None) -> List[BudgetNotification]:
        """Poll and send any due threshold notifications.

        Returns:
            Notifications that were actually delivered
        """
        if not self.repository.get_settings().notifications.enabled:
            logger.info("Notifications disabled, skipping check")
            return []
        return self.notify(self.poll(now=now), now=now)

    def notify(self, values: BudgetValues, now: Optional[int] = None) -> List[BudgetNotification]:
        """Send the threshold notifications due for ``values``."""
        settings = self.repository.get_settings()
        if not settings.notifications.enabled or self.dispatcher is None:
            return []

        sent = []
        for notification in evaluate_budget_usage(values, settings.notifications.thresholds):
            if self.dispatcher.send(notification, now=now):
                sent.append(notification)
        return sent

    def check_for_new_period(self, now: Optional[datetime] = None) -> List[NotificationType]:
        """Re-arm notifications when a new day or month has started.

        Returns:
            Notification types that were reset
        """
        now = now or datetime.now()
        today = now.date().isoformat()
        current_month = f"{now.year}-{now.month:02d}"
        reset = []

        if self.repository.get_value(LAST_CHECK_DATE_KEY) != today:
            if self.dispatcher is not None:
                self.dispatcher.reset(NotificationType.DAILY_BUDGET)
            self.repository.set_value(LAST_CHECK_DATE_KEY, today)
            reset.append(NotificationType.DAILY_BUDGET)
            logger.info("New day detected, daily notification status reset")

        if self.repository.get_value(LAST_CHECK_MONTH_KEY) != current_month:
            if self.dispatcher is not None:
                self.dispatcher.reset(NotificationType.MONTHLY_BUDGET)
            self.repository.set_value(LAST_CHECK_MONTH_KEY, current_month)
            reset.append(NotificationType.MONTHLY_BUDGET)
            logger.info("New month detected, monthly notification status reset")

        return reset

    def latest_snapshot(self) -> Optional[Snapshot]:
        snapshots = self.repository.load_snapshots()
        return snapshots[-1] if snapshots else None
