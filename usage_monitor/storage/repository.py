"""
Repository pattern for data access.

Handles the key-value state store: settings, snapshot history, the API
response cache and notification dedup state.
"""

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from .db import default_db_path, get_connection
from .models import BudgetValues, CachedResponse, HistoricalData, NotificationStatus, Snapshot
from usage_monitor.config.loader import (
    DEFAULT_SETTINGS,
    FieldMapping,
    Settings,
    settings_from_dict,
    settings_to_dict,
    validate_settings,
)
from usage_monitor.core.alerts import AlertThresholds
from usage_monitor.core.timeutil import (
    MS_PER_DAY,
    MS_PER_MINUTE,
    from_millis,
    now_millis,
    start_of_day,
    to_millis,
)

logger = logging.getLogger(__name__)

SETTINGS_KEY = "plugin_settings"
CACHE_KEY = "api_cache"
NOTIFICATION_STATUS_KEY = "notification_status"
HISTORICAL_DATA_KEY = "historical_data"
LAST_CHECK_DATE_KEY = "last_check_date"
LAST_CHECK_MONTH_KEY = "last_check_month"

CACHE_TTL_SECONDS = 5 * 60
MAX_HISTORICAL_DAYS = 30
MAX_DATA_POINTS_PER_DAY = 288  # one every 5 minutes
DEDUP_INTERVAL_MS = 5 * MS_PER_MINUTE

SettingsListener = Callable[[Settings], None]


def initialize_schema(db_path: Optional[str] = None) -> None:
    """Create the key-value table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path or default_db_path())
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
    finally:
        conn.close()


class StateRepository:
    """Persistent application state on top of a SQLite key-value table.

    Every read-modify-write runs inside one ``BEGIN IMMEDIATE``
    transaction while holding a process-local lock, so concurrent
    pollers cannot lose each other's updates.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the repository and make sure the schema exists.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path or default_db_path()
        self._lock = threading.RLock()
        self._listeners: List[SettingsListener] = []
        initialize_schema(self.db_path)

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        with self._lock:
            conn = get_connection(self.db_path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()

    @staticmethod
    def _read(conn, key: str) -> Any:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else None

    @staticmethod
    def _write(conn, key: str, value: Any) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )

    @staticmethod
    def _delete(conn, *keys: str) -> None:
        for key in keys:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def get_value(self, key: str, default: Any = None) -> Any:
        with self._transaction() as conn:
            value = self._read(conn, key)
        return default if value is None else value

    def set_value(self, key: str, value: Any) -> None:
        with self._transaction() as conn:
            self._write(conn, key, value)

    # Snapshot history

    def _load_historical(self, conn) -> HistoricalData:
        raw = self._read(conn, HISTORICAL_DATA_KEY)
        if not raw:
            return HistoricalData()
        return HistoricalData.from_dict(raw)

    def get_historical_data(self) -> HistoricalData:
        with self._transaction() as conn:
            return self._load_historical(conn)

    def load_snapshots(self) -> List[Snapshot]:
        """All stored snapshots, ascending by timestamp."""
        return self.get_historical_data().data

    def get_snapshots_for_period(self, days: int, now: Optional[int] = None) -> List[Snapshot]:
        now = now if now is not None else now_millis()
        cutoff = now - days * MS_PER_DAY
        return [snapshot for snapshot in self.load_snapshots() if snapshot.timestamp > cutoff]

    def append_or_merge_snapshot(self, values: BudgetValues, now: Optional[int] = None) -> Snapshot:
        """Record a reading, merging it into one taken in the last 5 minutes.

        After the update, snapshots older than 30 days are dropped,
        today's snapshots are capped at the most recent 288 and the
        store is re-sorted.

        Args:
            values: Budget figures extracted from the API
            now: Current time in ms, defaults to the wall clock

        Returns:
            The snapshot that was written or updated
        """
        now = now if now is not None else now_millis()

        with self._transaction() as conn:
            data = list(self._load_historical(conn).data)

            recent_cutoff = now - DEDUP_INTERVAL_MS
            recent_index = next(
                (index for index, point in enumerate(data) if point.timestamp > recent_cutoff),
                None
            )

            if recent_index is not None:
                snapshot = replace(
                    data[recent_index],
                    daily_budget=values.daily_budget,
                    daily_spent=values.daily_spent,
                    monthly_budget=values.monthly_budget,
                    monthly_spent=values.monthly_spent,
                )
                data[recent_index] = snapshot
            else:
                snapshot = Snapshot(
                    timestamp=now,
                    daily_budget=values.daily_budget,
                    daily_spent=values.daily_spent,
                    monthly_budget=values.monthly_budget,
                    monthly_spent=values.monthly_spent,
                )
                data.append(snapshot)

            retention_cutoff = now - MAX_HISTORICAL_DAYS * MS_PER_DAY
            data = sorted(
                (point for point in data if point.timestamp > retention_cutoff),
                key=lambda point: point.timestamp
            )

            today_start = to_millis(start_of_day(from_millis(now)))
            today = [point for point in data if point.timestamp >= today_start]
            if len(today) > MAX_DATA_POINTS_PER_DAY:
                earlier = [point for point in data if point.timestamp < today_start]
                data = earlier + today[-MAX_DATA_POINTS_PER_DAY:]
                data.sort(key=lambda point: point.timestamp)

            self._write(conn, HISTORICAL_DATA_KEY, HistoricalData(data=data, last_updated=now).to_dict())

        return snapshot

    def clear_historical_data(self) -> None:
        with self._transaction() as conn:
            self._delete(conn, HISTORICAL_DATA_KEY)

    # API response cache

    def get_cached_response(
        self,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        now: Optional[int] = None
    ) -> Optional[CachedResponse]:
        """Return the cached API response unless it is older than the TTL.

        Expired entries are removed.
        """
        now = now if now is not None else now_millis()
        with self._transaction() as conn:
            raw = self._read(conn, CACHE_KEY)
            if not raw:
                return None
            if now - int(raw.get("timestamp", 0)) > ttl_seconds * 1000:
                self._delete(conn, CACHE_KEY)
                return None
        return CachedResponse(data=raw.get("data") or {}, timestamp=int(raw["timestamp"]))

    def set_cached_response(self, data: Dict[str, Any], now: Optional[int] = None) -> None:
        now = now if now is not None else now_millis()
        with self._transaction() as conn:
            self._write(conn, CACHE_KEY, {"data": data, "timestamp": now})

    def clear_cache(self) -> None:
        with self._transaction() as conn:
            self._delete(conn, CACHE_KEY)

    # Settings

    def has_settings(self) -> bool:
        return self.get_value(SETTINGS_KEY) is not None

    def get_raw_settings(self) -> Optional[Dict[str, Any]]:
        return self.get_value(SETTINGS_KEY)

    def get_settings(self) -> Settings:
        """Stored settings merged over the defaults."""
        raw = self.get_value(SETTINGS_KEY)
        if not raw:
            return DEFAULT_SETTINGS
        return settings_from_dict(raw)

    def save_settings(self, settings: Settings) -> None:
        """Validate and persist settings, then notify subscribers.

        Raises:
            ValueError: If the settings are invalid; nothing is written
        """
        validate_settings(settings)
        self.set_value(SETTINGS_KEY, settings_to_dict(settings))
        self._notify(settings)

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Call ``listener`` after every successful settings write.

        Returns:
            A function that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, settings: Settings) -> None:
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception:
                logger.exception("Settings listener %r failed", listener)

    def get_mapping(self) -> FieldMapping:
        return self.get_settings().mapping

    def set_mapping(self, mapping: FieldMapping) -> None:
        self.save_settings(replace(self.get_settings(), mapping=mapping))

    def get_alert_thresholds(self) -> AlertThresholds:
        return self.get_settings().alert_thresholds

    def set_alert_thresholds(self, thresholds: AlertThresholds) -> None:
        self.save_settings(replace(self.get_settings(), alert_thresholds=thresholds))

    # Notification dedup state

    def get_notification_status(self) -> NotificationStatus:
        raw = self.get_value(NOTIFICATION_STATUS_KEY)
        return NotificationStatus.from_dict(raw) if raw else NotificationStatus()

    def set_notification_status(self, status: NotificationStatus) -> None:
        self.set_value(NOTIFICATION_STATUS_KEY, status.to_dict())

    def reset_notification_status(self) -> None:
        with self._transaction() as conn:
            self._delete(conn, NOTIFICATION_STATUS_KEY)

    # Bulk operations

    def replace_state(
        self,
        raw_settings: Mapping[str, Any],
        snapshots: Sequence[Snapshot],
        now: Optional[int] = None
    ) -> None:
        """Overwrite settings and history in one transaction and drop the cache."""
        now = now if now is not None else now_millis()
        history = HistoricalData(
            data=sorted(snapshots, key=lambda point: point.timestamp),
            last_updated=now,
        )
        with self._transaction() as conn:
            self._write(conn, SETTINGS_KEY, dict(raw_settings))
            self._write(conn, HISTORICAL_DATA_KEY, history.to_dict())
            self._delete(conn, CACHE_KEY)
        self._notify(self.get_settings())

    def clear_all_data(self) -> None:
        """Remove settings, history, cache and notification state."""
        with self._transaction() as conn:
            self._delete(conn, SETTINGS_KEY, HISTORICAL_DATA_KEY, CACHE_KEY, NOTIFICATION_STATUS_KEY)


# Global repository instance
_default_repository: Optional[StateRepository] = None


def get_repository(db_path: Optional[str] = None) -> StateRepository:
    """Get a repository instance.

    This function provides a singleton instance of the StateRepository.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of StateRepository
    """
    global _default_repository
    if _default_repository is None:
        _default_repository = StateRepository(db_path)
    return _default_repository
