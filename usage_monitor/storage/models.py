"""
Data models for storage layer.

Defines the persisted records and their JSON shapes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from usage_monitor.core.numeric import safe_number


@dataclass(frozen=True)
class Snapshot:
    """One timestamped reading of daily and monthly budget and spend.

    Timestamps are milliseconds since the epoch. Snapshots are
    append-only; the only in-place change is a merge of a reading taken
    within the dedup interval.
    """
    timestamp: int
    daily_budget: float = 0.0
    daily_spent: float = 0.0
    monthly_budget: float = 0.0
    monthly_spent: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "dailyBudget": self.daily_budget,
            "dailySpent": self.daily_spent,
            "monthlyBudget": self.monthly_budget,
            "monthlySpent": self.monthly_spent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Snapshot":
        return cls(
            timestamp=int(safe_number(data.get("timestamp"))),
            daily_budget=safe_number(data.get("dailyBudget")),
            daily_spent=safe_number(data.get("dailySpent")),
            monthly_budget=safe_number(data.get("monthlyBudget")),
            monthly_spent=safe_number(data.get("monthlySpent")),
        )


@dataclass(frozen=True)
class BudgetValues:
    """The four metrics extracted from one API response."""
    daily_budget: float
    daily_spent: float
    monthly_budget: float
    monthly_spent: float


@dataclass
class HistoricalData:
    """Rolling snapshot store, sorted ascending by timestamp."""
    data: List[Snapshot] = field(default_factory=list)
    last_updated: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [snapshot.to_dict() for snapshot in self.data],
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoricalData":
        return cls(
            data=[Snapshot.from_dict(item) for item in data.get("data") or []],
            last_updated=int(safe_number(data.get("lastUpdated"))),
        )


@dataclass(frozen=True)
class CachedResponse:
    """API response body and the time it was cached (ms)."""
    data: Dict[str, Any]
    timestamp: int


@dataclass(frozen=True)
class NotificationStatus:
    """Which budget notifications went out in the current period."""
    daily_budget: bool = False
    monthly_budget: bool = False
    last_notification_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyBudget": self.daily_budget,
            "monthlyBudget": self.monthly_budget,
            "lastNotificationTime": self.last_notification_time,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NotificationStatus":
        return cls(
            daily_budget=bool(data.get("dailyBudget", False)),
            monthly_budget=bool(data.get("monthlyBudget", False)),
            last_notification_time=int(safe_number(data.get("lastNotificationTime"))),
        )
