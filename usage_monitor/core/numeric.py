"""
Numeric coercion and field path resolution.

Turns arbitrary API values into finite floats and resolves dotted
field paths against nested JSON objects.
"""

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional, Set, Union


def safe_number(value: Any, default: float = 0.0) -> float:
    """Convert a value to a finite float, falling back to ``default``.

    Numeric strings are parsed, booleans count as 1/0 because JSON
    permits them as numbers. None, NaN, infinities, non-numeric
    strings and containers all yield ``default``. Never raises.
    """
    if value is None:
        return default

    if isinstance(value, bool):
        return 1.0 if value else 0.0

    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return default
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    else:
        return default

    if math.isnan(number) or math.isinf(number):
        return default
    return number


@dataclass(frozen=True)
class NumberValue:
    """A resolved numeric leaf."""
    value: float


@dataclass(frozen=True)
class TextValue:
    """A resolved leaf that is a non-numeric string."""
    text: str


@dataclass(frozen=True)
class MissingValue:
    """The path did not resolve to a usable leaf."""


MISSING = MissingValue()

FieldValue = Union[NumberValue, TextValue, MissingValue]


def resolve_field_path(data: Any, path: Optional[str]) -> FieldValue:
    """Resolve a dotted path such as ``"user.budget.monthly"``.

    Traversal stops at the first segment that is absent or whose parent
    is not a mapping.

    Args:
        data: Decoded JSON object
        path: Dotted field path

    Returns:
        NumberValue, TextValue or MISSING
    """
    if not path or not data:
        return MISSING

    value = data
    for key in path.split('.'):
        if isinstance(value, Mapping) and key in value:
            value = value[key]
        else:
            return MISSING

    if isinstance(value, bool):
        return NumberValue(1.0 if value else 0.0)
    if isinstance(value, (int, float, Decimal)):
        number = safe_number(value, default=math.nan)
        return MISSING if math.isnan(number) else NumberValue(number)
    if isinstance(value, str):
        number = safe_number(value, default=math.nan)
        return TextValue(value) if math.isnan(number) else NumberValue(number)
    return MISSING


def coerce_to_zero(field_value: FieldValue) -> float:
    """Policy used in numeric contexts: anything but a number counts as 0."""
    if isinstance(field_value, NumberValue):
        return field_value.value
    return 0.0


def extract_number(
    data: Any,
    path: Optional[str],
    policy: Callable[[FieldValue], float] = coerce_to_zero
) -> float:
    """Resolve ``path`` against ``data`` and reduce it to a float via ``policy``."""
    return policy(resolve_field_path(data, path))


# Parent prefixes with this many segments are not descended into.
MAX_PATH_DEPTH = 3


def extract_field_paths(data: Any) -> List[str]:
    """List every dotted key path in a JSON object, sorted.

    Intermediate objects are listed as well as their children. Lists are
    never descended into.
    """
    keys: Set[str] = set()
    _collect_field_paths(data, "", keys)
    return sorted(keys)


def _collect_field_paths(data: Any, prefix: str, keys: Set[str]) -> None:
    if not isinstance(data, Mapping):
        return

    depth = len(prefix.split('.')) if prefix else 0
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        keys.add(full_key)
        if isinstance(value, Mapping) and value and depth < MAX_PATH_DEPTH:
            _collect_field_paths(value, full_key, keys)
