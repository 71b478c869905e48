"""
Backup export and import.

Serialises settings and snapshot history into a versioned JSON envelope
and restores it after structural validation. Imports are all or
nothing.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Union

from .models import Snapshot
from .repository import StateRepository
from usage_monitor.config.loader import settings_from_dict, validate_settings
from usage_monitor.core.timeutil import now_millis
from usage_monitor.core.working_time import validate_working_hours

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"
FILENAME_TEMPLATE = "cc-usage-backup-{date}.json"

REQUIRED_MAPPING_KEYS = ("monthlyBudget", "monthlySpent", "dailyBudget", "dailySpent")
THRESHOLD_KEYS = ("dailyBudget", "monthlyBudget")
ALERT_THRESHOLD_KEYS = ("danger", "warning", "caution", "normalMin")
SNAPSHOT_FIELDS = ("timestamp", "dailyBudget", "dailySpent", "monthlyBudget", "monthlySpent")


class DataExportError(Exception):
    """Raised when there is nothing to export."""


class ImportValidationError(ValueError):
    """Raised when an import file is not a valid backup envelope."""


@dataclass(frozen=True)
class ExportResult:
    """Suggested file name and UTF-8 encoded JSON content."""
    filename: str
    content: bytes


def _iso(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_export_envelope(repository: StateRepository, now: Optional[int] = None) -> dict:
    """Assemble the export envelope from the repository.

    Raises:
        DataExportError: If settings have never been saved
    """
    now = now if now is not None else now_millis()

    settings = repository.get_raw_settings()
    if not settings:
        raise DataExportError("No settings found to export")

    snapshots = repository.load_snapshots()
    if snapshots:
        timestamps = [snapshot.timestamp for snapshot in snapshots]
        date_range = {"start": _iso(min(timestamps)), "end": _iso(max(timestamps))}
    else:
        date_range = {"start": _iso(now), "end": _iso(now)}

    return {
        "exportVersion": EXPORT_VERSION,
        "exportDate": _iso(now)[:10],
        "settings": settings,
        "historicalData": [snapshot.to_dict() for snapshot in snapshots],
        "metadata": {
            "totalDataPoints": len(snapshots),
            "dateRange": date_range,
            "exportedAt": now,
        },
    }


def export_all_data(repository: StateRepository, now: Optional[int] = None) -> ExportResult:
    """Serialise settings and history for download.

    Args:
        repository: State repository to read from
        now: Export time in ms, defaults to the wall clock

    Returns:
        ExportResult with a ``cc-usage-backup-<date>.json`` file name

    Raises:
        DataExportError: If settings have never been saved
    """
    envelope = build_export_envelope(repository, now)
    content = json.dumps(envelope, indent=2, ensure_ascii=False).encode("utf-8")
    filename = FILENAME_TEMPLATE.format(date=envelope["exportDate"])
    logger.info("Exported %d snapshots", envelope["metadata"]["totalDataPoints"])
    return ExportResult(filename=filename, content=content)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_import_data(data: Any) -> None:
    """Check that ``data`` has the shape of an export envelope.

    Raises:
        ImportValidationError: Naming the first structural problem found
    """
    if not isinstance(data, Mapping):
        raise ImportValidationError("Backup must be a JSON object")

    for key in ("exportVersion", "exportDate", "settings", "metadata"):
        if not data.get(key):
            raise ImportValidationError(f"Backup is missing '{key}'")

    settings = data["settings"]
    if not isinstance(settings, Mapping):
        raise ImportValidationError("'settings' must be an object")
    if not settings.get("apiUrl"):
        raise ImportValidationError("'settings.apiUrl' is required")
    if "token" not in settings:
        raise ImportValidationError("'settings.token' is required")
    for key in ("workingHours", "mapping", "notifications"):
        if not isinstance(settings.get(key), Mapping) or not settings.get(key):
            raise ImportValidationError(f"'settings.{key}' is required")

    mapping = settings["mapping"]
    for key in REQUIRED_MAPPING_KEYS:
        if key not in mapping:
            raise ImportValidationError(f"'settings.mapping.{key}' is required")

    working_hours = settings["workingHours"]
    start, end = working_hours.get("start"), working_hours.get("end")
    if not _is_number(start) or not _is_number(end):
        raise ImportValidationError("'settings.workingHours' start and end must be numbers")
    if not validate_working_hours(start, end):
        raise ImportValidationError("'settings.workingHours' must satisfy 0 <= start < end <= 24")

    notifications = settings["notifications"]
    if not isinstance(notifications.get("enabled"), bool):
        raise ImportValidationError("'settings.notifications.enabled' must be a boolean")
    if not _is_number(notifications.get("queryInterval")):
        raise ImportValidationError("'settings.notifications.queryInterval' must be a number")
    thresholds = notifications.get("thresholds")
    if not thresholds or not isinstance(thresholds, Mapping):
        raise ImportValidationError("'settings.notifications.thresholds' is required")
    for key in THRESHOLD_KEYS:
        if key in thresholds and not _is_number(thresholds[key]):
            raise ImportValidationError(f"'settings.notifications.thresholds.{key}' must be a number")

    alerts = settings.get("alertThresholds")
    if alerts is not None:
        if not isinstance(alerts, Mapping):
            raise ImportValidationError("'settings.alertThresholds' must be an object")
        for key in ALERT_THRESHOLD_KEYS:
            if key in alerts and not _is_number(alerts[key]):
                raise ImportValidationError(f"'settings.alertThresholds.{key}' must be a number")

    historical = data.get("historicalData")
    if isinstance(historical, list):
        for index, point in enumerate(historical):
            if not isinstance(point, Mapping):
                raise ImportValidationError(f"historicalData[{index}] must be an object")
            for key in SNAPSHOT_FIELDS:
                if not _is_number(point.get(key)):
                    raise ImportValidationError(f"historicalData[{index}].{key} must be a number")


def parse_import_data(content: Union[bytes, str]) -> dict:
    """Decode and validate a backup file.

    Raises:
        ImportValidationError: If the content is not valid JSON or not a backup
    """
    try:
        if isinstance(content, bytes):
            content = content.decode("utf-8")
        data = json.loads(content)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ImportValidationError(f"Backup is not valid JSON: {e}")

    validate_import_data(data)
    return data


def import_all_data(
    repository: StateRepository,
    content: Union[bytes, str],
    now: Optional[int] = None
) -> int:
    """Restore settings and history from a backup.

    Validation happens before anything is written; a rejected file
    leaves the stored state untouched.

    Args:
        repository: State repository to write to
        content: Backup file content
        now: Import time in ms, defaults to the wall clock

    Returns:
        Number of snapshots imported

    Raises:
        ImportValidationError: If the backup is malformed
    """
    data = parse_import_data(content)
    try:
        validate_settings(settings_from_dict(data["settings"]))
    except ValueError as e:
        raise ImportValidationError(f"Backup settings are invalid: {e}")

    historical = data.get("historicalData")
    snapshots: List[Snapshot] = [
        Snapshot.from_dict(point) for point in historical
    ] if isinstance(historical, list) else []

    repository.replace_state(data["settings"], snapshots, now=now)
    logger.info("Imported backup with %d snapshots", len(snapshots))
    return len(snapshots)
