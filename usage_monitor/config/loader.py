"""
Configuration management and loading.

Defines the settings record, its defaults and its JSON form, and loads
settings from YAML files with strict validation.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from usage_monitor.core.alerts import AlertThresholds
from usage_monitor.core.numeric import safe_number
from usage_monitor.core.working_time import validate_working_hours


@dataclass(frozen=True)
class WorkingHours:
    """Daily work window, in whole hours."""
    start: int = 9
    end: int = 24


# camelCase target name -> attribute name
MAPPING_ATTRIBUTES: Dict[str, str] = {
    "monthlyBudget": "monthly_budget",
    "monthlySpent": "monthly_spent",
    "dailyBudget": "daily_budget",
    "dailySpent": "daily_spent",
}


@dataclass(frozen=True)
class FieldMapping:
    """Source field path for each budget metric; empty means unmapped."""
    monthly_budget: str = ""
    monthly_spent: str = ""
    daily_budget: str = ""
    daily_spent: str = ""

    def get(self, target: str) -> str:
        return getattr(self, MAPPING_ATTRIBUTES[target])

    def with_field(self, target: str, source: str) -> "FieldMapping":
        return replace(self, **{MAPPING_ATTRIBUTES[target]: source})

    def to_dict(self) -> Dict[str, str]:
        return {target: self.get(target) for target in MAPPING_ATTRIBUTES}


@dataclass(frozen=True)
class NotificationThresholds:
    """Usage percentages that trigger budget notifications."""
    daily_budget: float = 80
    monthly_budget: float = 90


@dataclass(frozen=True)
class NotificationSettings:
    """Background polling and notification options."""
    enabled: bool = False
    query_interval: int = 5  # minutes
    thresholds: NotificationThresholds = field(default_factory=NotificationThresholds)


@dataclass(frozen=True)
class Settings:
    """Complete application settings."""
    api_url: str = ""
    token: str = ""
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    mapping: FieldMapping = field(default_factory=FieldMapping)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    alert_thresholds: AlertThresholds = field(default_factory=AlertThresholds)


DEFAULT_SETTINGS = Settings()


def validate_settings(settings: Settings) -> None:
    """Reject settings that must never be stored.

    Raises:
        ValueError: If the working window is invalid
    """
    hours = settings.working_hours
    if not validate_working_hours(hours.start, hours.end):
        raise ValueError(
            f"working hours must satisfy 0 <= start < end <= 24, got {hours.start}-{hours.end}"
        )
    if settings.notifications.query_interval <= 0:
        raise ValueError("query_interval must be > 0")


def settings_to_dict(settings: Settings) -> Dict[str, Any]:
    """Serialise settings with the camelCase keys used in storage and exports."""
    return {
        "apiUrl": settings.api_url,
        "token": settings.token,
        "workingHours": {
            "start": settings.working_hours.start,
            "end": settings.working_hours.end,
        },
        "mapping": settings.mapping.to_dict(),
        "notifications": {
            "enabled": settings.notifications.enabled,
            "queryInterval": settings.notifications.query_interval,
            "thresholds": {
                "dailyBudget": settings.notifications.thresholds.daily_budget,
                "monthlyBudget": settings.notifications.thresholds.monthly_budget,
            },
        },
        "alertThresholds": {
            "danger": settings.alert_thresholds.danger,
            "warning": settings.alert_thresholds.warning,
            "caution": settings.alert_thresholds.caution,
            "normalMin": settings.alert_thresholds.normal_min,
        },
    }


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def settings_from_dict(data: Mapping[str, Any]) -> Settings:
    """Build settings from a stored record, filling gaps with defaults.

    Nested sections are merged key by key so records written before a
    field existed still load. Values that are not numbers fall back to
    the default for that field.
    """
    defaults = DEFAULT_SETTINGS
    hours = _section(data, "workingHours")
    mapping = _section(data, "mapping")
    notifications = _section(data, "notifications")
    thresholds = _section(notifications, "thresholds")
    alerts = _section(data, "alertThresholds")

    return Settings(
        api_url=str(data.get("apiUrl") or defaults.api_url),
        token=str(data.get("token") or defaults.token),
        working_hours=WorkingHours(
            start=int(safe_number(hours.get("start"), defaults.working_hours.start)),
            end=int(safe_number(hours.get("end"), defaults.working_hours.end)),
        ),
        mapping=FieldMapping(**{
            attribute: str(mapping.get(target) or "")
            for target, attribute in MAPPING_ATTRIBUTES.items()
        }),
        notifications=NotificationSettings(
            enabled=bool(notifications.get("enabled", defaults.notifications.enabled)),
            query_interval=int(safe_number(notifications.get("queryInterval"), defaults.notifications.query_interval)),
            thresholds=NotificationThresholds(
                daily_budget=safe_number(thresholds.get("dailyBudget"), defaults.notifications.thresholds.daily_budget),
                monthly_budget=safe_number(thresholds.get("monthlyBudget"), defaults.notifications.thresholds.monthly_budget),
            ),
        ),
        alert_thresholds=AlertThresholds(
            danger=safe_number(alerts.get("danger"), defaults.alert_thresholds.danger),
            warning=safe_number(alerts.get("warning"), defaults.alert_thresholds.warning),
            caution=safe_number(alerts.get("caution"), defaults.alert_thresholds.caution),
            normal_min=safe_number(alerts.get("normalMin"), defaults.alert_thresholds.normal_min),
        ),
    )


def load_settings_file(path: str) -> Settings:
    """Load and validate settings from a YAML file.

    Strict validation ensures no silent misconfigurations; unknown keys
    are errors rather than being ignored.

    Args:
        path: Path to YAML settings file

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If the file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in settings file {path}: {e}")

    if not raw_config:
        raise ValueError("Settings file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Settings file must contain a mapping")

    _check_keys(raw_config, {'api_url', 'token', 'working_hours', 'mapping',
                             'notifications', 'alert_thresholds'}, "settings")

    if 'api_url' not in raw_config:
        raise ValueError("Missing required 'api_url'")
    api_url = raw_config['api_url']
    if not isinstance(api_url, str) or not api_url.strip():
        raise ValueError("'api_url' must be a non-empty string")

    token = raw_config.get('token', "")
    if not isinstance(token, str):
        raise ValueError("'token' must be a string")

    defaults = DEFAULT_SETTINGS

    hours_data = _dict_section(raw_config, 'working_hours')
    _check_keys(hours_data, {'start', 'end'}, "working_hours")
    working_hours = WorkingHours(
        start=_number(hours_data, 'start', "working_hours", defaults.working_hours.start, integer=True),
        end=_number(hours_data, 'end', "working_hours", defaults.working_hours.end, integer=True),
    )

    mapping_data = _dict_section(raw_config, 'mapping')
    _check_keys(mapping_data, set(MAPPING_ATTRIBUTES.values()), "mapping")
    for key, value in mapping_data.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"'mapping.{key}' must be a string")
    mapping = FieldMapping(**{key: value or "" for key, value in mapping_data.items()})

    notifications_data = _dict_section(raw_config, 'notifications')
    _check_keys(notifications_data, {'enabled', 'query_interval', 'thresholds'}, "notifications")
    enabled = notifications_data.get('enabled', defaults.notifications.enabled)
    if not isinstance(enabled, bool):
        raise ValueError("'notifications.enabled' must be true or false")
    thresholds_data = _dict_section(notifications_data, 'thresholds', "notifications.thresholds")
    _check_keys(thresholds_data, {'daily_budget', 'monthly_budget'}, "notifications.thresholds")
    notifications = NotificationSettings(
        enabled=enabled,
        query_interval=_number(notifications_data, 'query_interval', "notifications",
                               defaults.notifications.query_interval, integer=True),
        thresholds=NotificationThresholds(
            daily_budget=_number(thresholds_data, 'daily_budget', "notifications.thresholds",
                                 defaults.notifications.thresholds.daily_budget),
            monthly_budget=_number(thresholds_data, 'monthly_budget', "notifications.thresholds",
                                   defaults.notifications.thresholds.monthly_budget),
        ),
    )

    alerts_data = _dict_section(raw_config, 'alert_thresholds')
    _check_keys(alerts_data, {'danger', 'warning', 'caution', 'normal_min'}, "alert_thresholds")
    alert_thresholds = AlertThresholds(**{
        key: _number(alerts_data, key, "alert_thresholds", getattr(defaults.alert_thresholds, key))
        for key in ('danger', 'warning', 'caution', 'normal_min')
    })

    settings = Settings(
        api_url=api_url.strip(),
        token=token,
        working_hours=working_hours,
        mapping=mapping,
        notifications=notifications,
        alert_thresholds=alert_thresholds,
    )
    validate_settings(settings)
    return settings


def _check_keys(data: Mapping[str, Any], allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _dict_section(data: Mapping[str, Any], key: str, path: str = "") -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{path or key}' must be a dictionary")
    return value


def _number(data: Mapping[str, Any], key: str, path: str, default: float, integer: bool = False):
    if key not in data:
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' in {path} must be a number")
    if value < 0:
        raise ValueError(f"'{key}' in {path} must be >= 0")
    if integer:
        if value != int(value):
            raise ValueError(f"'{key}' in {path} must be a whole number")
        return int(value)
    return float(value)
