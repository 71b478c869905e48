"""
Multi-day heatmap aggregation.

Buckets snapshots into a day-of-range x hour-of-day grid for week,
two-week and month views, with min/max normalised intensities.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .numeric import safe_number
from .timeutil import MS_PER_DAY, end_of_day, from_millis, start_of_day, to_millis
from .working_time import format_hour
from usage_monitor.storage.models import Snapshot

logger = logging.getLogger(__name__)

DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
EMPTY_CELL_COLOR = "#1F2937"


class TimeRange(Enum):
    """Heatmap window sizes."""
    WEEK = "week"
    TWO_WEEKS = "2weeks"
    MONTH = "month"


DAY_COUNTS: Dict[TimeRange, int] = {
    TimeRange.WEEK: 7,
    TimeRange.TWO_WEEKS: 14,
    TimeRange.MONTH: 30,
}

COLOR_SCHEMES: Dict[str, Tuple[str, ...]] = {
    "blue": ("#DBEAFE", "#93C5FD", "#60A5FA", "#3B82F6", "#1E3A8A"),
    "green": ("#BBF7D0", "#4ADE80", "#22C55E", "#16A34A", "#14532D"),
    "red": ("#FECACA", "#F87171", "#EF4444", "#DC2626", "#7F1D1D"),
}


@dataclass(frozen=True)
class HeatmapSettings:
    """View options for the heatmap."""
    time_range: TimeRange = TimeRange.WEEK
    color_scheme: str = "green"
    show_weekends: bool = True
    show_empty_hours: bool = True


@dataclass
class HeatmapCell:
    """One (day, hour) bucket."""
    day: int
    hour: int
    timestamp: int
    day_label: str
    hour_label: str
    value: float = 0.0
    intensity: float = 0.0
    has_data: bool = False


@dataclass
class HeatmapData:
    """Grid of cells indexed ``cells[day][hour]``."""
    period_start: datetime
    period_end: datetime
    cells: List[List[HeatmapCell]]
    day_count: int
    daily_labels: List[str]
    max_value: float = 0.0
    min_value: float = 0.0
    total_points: int = 0
    has_any_data: bool = False


@dataclass(frozen=True)
class HeatmapPeak:
    day: int
    hour: int
    value: float


@dataclass(frozen=True)
class HeatmapStats:
    """Summary figures for a heatmap."""
    total_spent: float = 0.0
    average_intensity: float = 0.0
    peak: Optional[HeatmapPeak] = None
    active_hours: int = 0
    data_completeness: float = 0.0


@dataclass(frozen=True)
class CellTooltip:
    time: str
    value: str
    intensity: str
    has_data: bool


def _as_datetime(moment: Union[date, datetime]) -> datetime:
    if isinstance(moment, datetime):
        return moment
    return start_of_day(moment)


def day_label(moment: Union[date, datetime]) -> str:
    # Python weeks start on Monday; labels start on Sunday.
    return DAY_LABELS[(moment.weekday() + 1) % 7]


def get_week_range(center: datetime) -> Tuple[datetime, datetime]:
    """Sunday 00:00 to Saturday 23:59:59.999 of the week containing ``center``."""
    start = start_of_day(center) - timedelta(days=(center.weekday() + 1) % 7)
    end = end_of_day(start + timedelta(days=6))
    return start, end


def get_date_range(center: datetime, time_range: TimeRange) -> Tuple[datetime, datetime]:
    """Resolve the window bounds for a time range."""
    if time_range is TimeRange.WEEK:
        return get_week_range(center)

    day_count = DAY_COUNTS[time_range]
    start = start_of_day(center) - timedelta(days=day_count - 1)
    return start, end_of_day(center)


def generate_daily_labels(period_start: datetime, day_count: int) -> List[str]:
    labels = []
    for offset in range(day_count):
        current = period_start + timedelta(days=offset)
        if day_count <= 7:
            labels.append(day_label(current))
        else:
            labels.append(f"{current:%b} {current.day}")
    return labels


def _empty_cells(period_start: datetime, day_count: int) -> List[List[HeatmapCell]]:
    cells = []
    for day in range(day_count):
        current = period_start + timedelta(days=day)
        row = []
        for hour in range(24):
            row.append(HeatmapCell(
                day=day,
                hour=hour,
                timestamp=to_millis(current.replace(hour=hour)),
                day_label=day_label(current),
                hour_label=format_hour(hour),
            ))
        cells.append(row)
    return cells


def calculate_intensity(value: float, min_value: float, max_value: float) -> float:
    """Normalise ``value`` into [0, 1]; a flat range maps positives to 0.5."""
    if max_value == min_value:
        return 0.5 if value > 0 else 0.0
    return max(0.0, min(1.0, (value - min_value) / (max_value - min_value)))


def _latest_spent(points: List[Snapshot]) -> float:
    latest = points[0]
    for point in points[1:]:
        if point.timestamp > latest.timestamp:
            latest = point
    return safe_number(latest.daily_spent)


def _empty_heatmap(center: datetime) -> HeatmapData:
    start, end = get_week_range(center)
    day_count = DAY_COUNTS[TimeRange.WEEK]
    return HeatmapData(
        period_start=start,
        period_end=end,
        cells=_empty_cells(start, day_count),
        day_count=day_count,
        daily_labels=generate_daily_labels(start, day_count),
    )


def convert_to_heatmap_data(
    snapshots: Sequence[Snapshot],
    settings: Optional[HeatmapSettings] = None,
    center_date: Optional[Union[date, datetime]] = None
) -> HeatmapData:
    """Build a heatmap grid from snapshot history.

    Each (day, hour) cell takes the daily spend of its latest snapshot.
    Intensities are scaled between the smallest and largest positive
    values in the window. Any failure is logged and yields an empty week
    grid around ``center_date``.

    Args:
        snapshots: Snapshot history, any order
        settings: View options, defaults when omitted
        center_date: Anchor date, defaults to now

    Returns:
        HeatmapData for the resolved window
    """
    settings = settings or HeatmapSettings()
    center = _as_datetime(center_date) if center_date is not None else datetime.now()

    try:
        if not isinstance(snapshots, (list, tuple)):
            raise TypeError(f"expected a list of snapshots, got {type(snapshots).__name__}")

        period_start, period_end = get_date_range(center, settings.time_range)
        day_count = DAY_COUNTS[settings.time_range]
        start_ms = to_millis(period_start)
        end_ms = to_millis(period_end)

        groups: Dict[Tuple[int, int], List[Snapshot]] = {}
        for point in snapshots:
            if not start_ms <= point.timestamp <= end_ms:
                continue
            day_offset = (point.timestamp - start_ms) // MS_PER_DAY
            if 0 <= day_offset < day_count:
                hour = from_millis(point.timestamp).hour
                groups.setdefault((int(day_offset), hour), []).append(point)

        values = {key: _latest_spent(points) for key, points in groups.items()}
        positive = [value for value in values.values() if value > 0]
        max_value = max(positive) if positive else 0.0
        min_value = min(positive) if positive else 0.0

        cells = _empty_cells(period_start, day_count)
        for (day, hour), value in values.items():
            cell = cells[day][hour]
            cell.value = safe_number(value)
            cell.intensity = safe_number(calculate_intensity(value, min_value, max_value))
            cell.has_data = True

        if not settings.show_weekends and settings.time_range is TimeRange.WEEK:
            for day in (0, 6):
                for cell in cells[day]:
                    cell.value = 0.0
                    cell.intensity = 0.0
                    cell.has_data = False

        total_points = sum(1 for row in cells for cell in row if cell.has_data)

        return HeatmapData(
            period_start=period_start,
            period_end=period_end,
            cells=cells,
            day_count=day_count,
            daily_labels=generate_daily_labels(period_start, day_count),
            max_value=safe_number(max_value),
            min_value=safe_number(min_value),
            total_points=total_points,
            has_any_data=total_points > 0,
        )

    except Exception:
        logger.exception("Error converting snapshots to heatmap data")
        return _empty_heatmap(center)


def heatmap_stats(heatmap: HeatmapData) -> HeatmapStats:
    """Totals, peak cell and completeness for a heatmap.

    The peak is the first cell holding the largest value, scanning days
    then hours.
    """
    try:
        total_spent = 0.0
        total_intensity = 0.0
        active_hours = 0
        peak: Optional[HeatmapPeak] = None

        for day in range(heatmap.day_count):
            for cell in heatmap.cells[day]:
                if not cell.has_data:
                    continue
                total_spent += cell.value
                total_intensity += cell.intensity
                active_hours += 1
                if cell.value > 0 and (peak is None or cell.value > peak.value):
                    peak = HeatmapPeak(day=day, hour=cell.hour, value=cell.value)

        possible_hours = heatmap.day_count * 24
        return HeatmapStats(
            total_spent=safe_number(total_spent),
            average_intensity=safe_number(total_intensity / active_hours) if active_hours else 0.0,
            peak=peak,
            active_hours=active_hours,
            data_completeness=safe_number(active_hours / possible_hours * 100) if possible_hours else 0.0,
        )

    except Exception:
        logger.exception("Error calculating heatmap stats")
        return HeatmapStats()


def heatmap_color(intensity: float, has_data: bool, color_scheme: str = "blue") -> str:
    """Hex colour for a cell, five steps per scheme."""
    if not has_data or intensity == 0:
        return EMPTY_CELL_COLOR

    palette = COLOR_SCHEMES.get(color_scheme)
    if palette is None:
        return "#374151"

    clamped = max(0.0, min(1.0, intensity))
    step = min(int(clamped * 5), 4)
    return palette[step]


def format_cell_tooltip(cell: HeatmapCell) -> CellTooltip:
    return CellTooltip(
        time=f"{cell.day_label} {cell.hour_label}",
        value=f"${cell.value:.2f}" if cell.has_data else "No data",
        intensity=f"{cell.intensity * 100:.1f}%" if cell.has_data else "0%",
        has_data=cell.has_data,
    )
