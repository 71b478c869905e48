"""
CLI interface for Usage Monitor.

Provides command-line access to configuration, polling and the derived
views (timeline, heatmap, burn-rate alert) plus backup export/import.
"""

import logging
import sys
import time
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from usage_monitor.config.loader import load_settings_file
from usage_monitor.core.alerts import classify_burn_rate
from usage_monitor.core.field_matcher import (
    TARGET_FIELDS,
    apply_matches,
    auto_match_fields,
    match_quality,
)
from usage_monitor.core.heatmap import (
    HeatmapSettings,
    TimeRange,
    convert_to_heatmap_data,
    heatmap_color,
    heatmap_stats,
)
from usage_monitor.core.monitor import BudgetMonitor, has_valid_mapping
from usage_monitor.core.notifications import BudgetNotification, NotificationDispatcher
from usage_monitor.core.timeline import build_daily_timeline
from usage_monitor.core.timeutil import from_millis, start_of_day, to_millis
from usage_monitor.core.working_time import describe_work_time, get_working_time_status
from usage_monitor.sdk.api_client import UsageApiClient
from usage_monitor.storage.backup import export_all_data, import_all_data
from usage_monitor.storage.repository import get_repository, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _print_notification(notification: BudgetNotification) -> None:
    console.print(f"[bold yellow]{notification.title}:[/] {notification.message}")


def _build_monitor(repository) -> BudgetMonitor:
    return BudgetMonitor(
        repository,
        UsageApiClient(repository),
        NotificationDispatcher(repository, _print_notification),
    )


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Usage Monitor CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("Usage Monitor - Use --help to see available commands")


@app.command()
def init():
    """Initialize the Usage Monitor database."""
    try:
        initialize_schema()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def status():
    """Show the current configuration and stored history."""
    try:
        repository = get_repository()
        settings = repository.get_settings()
        history = repository.get_historical_data()

        if not repository.has_settings():
            console.print("[yellow]Not configured.[/] Run `usage-monitor configure --file settings.yaml`")
            sys.exit(EXIT_CODE_PASS)

        console.print("\n[bold]Usage Monitor Status[/bold]")
        console.print("-" * 40)
        console.print(f"API URL: {settings.api_url or '[dim]not set[/]'}")
        console.print(f"Token: {'set' if settings.token else '[dim]not set[/]'}")
        console.print(f"Working hours: {describe_work_time(settings.working_hours.start, settings.working_hours.end)}")

        for target in TARGET_FIELDS:
            console.print(f"  {target}: {settings.mapping.get(target) or '[dim]unmapped[/]'}")
        if not has_valid_mapping(settings.mapping):
            console.print("[yellow]Field mapping incomplete[/]")

        notifications = settings.notifications
        state = "enabled" if notifications.enabled else "disabled"
        console.print(
            f"Notifications: {state} (every {notifications.query_interval} min, "
            f"daily {notifications.thresholds.daily_budget:g}%, "
            f"monthly {notifications.thresholds.monthly_budget:g}%)"
        )
        console.print(f"Snapshots stored: {len(history.data)}")
        if history.last_updated:
            console.print(f"Last updated: {from_millis(history.last_updated):%Y-%m-%d %H:%M}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def configure(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="YAML settings file"
    )
):
    """Validate a YAML settings file and store it."""
    try:
        settings = load_settings_file(str(file))
        get_repository().save_settings(settings)
        console.print("[green]✓[/] Settings saved")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Invalid settings:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("test-connection")
def test_connection(
    apply: bool = typer.Option(
        True,
        "--apply/--no-apply",
        help="Store confident field suggestions in the mapping"
    )
):
    """Query the API, list its fields and suggest a field mapping."""
    try:
        repository = get_repository()
        settings = repository.get_settings()
        client = UsageApiClient(repository)
        result = client.test_connection(settings.api_url, settings.token)

        if not result.success:
            console.print(f"[red]Connection failed:[/] {result.error}")
            sys.exit(EXIT_CODE_FAIL)

        console.print(f"[green]✓[/] Connected, {len(result.field_keys)} fields found")
        matches = auto_match_fields(result.field_keys)

        table = Table(title="Suggested field mapping")
        table.add_column("Target")
        table.add_column("Field")
        table.add_column("Confidence", justify="right")
        table.add_column("Reason")
        for target in TARGET_FIELDS:
            match = matches.get(target)
            if match is None:
                table.add_row(target, "[dim]no match[/]", "", "")
                continue
            quality = match_quality(match.confidence)
            table.add_row(
                target,
                match.field,
                f"[{quality.color}]{match.confidence}%[/]",
                match.reason,
            )
        console.print(table)

        if apply:
            mapping, applied = apply_matches(settings.mapping, matches)
            if applied:
                repository.set_mapping(mapping)
                console.print(f"[green]✓[/] Applied mapping for: {', '.join(applied)}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def poll(
    refresh: bool = typer.Option(
        False,
        "--refresh",
        help="Ignore the cached API response"
    )
):
    """Fetch the API once, record a snapshot and send due notifications."""
    try:
        repository = get_repository()
        monitor = _build_monitor(repository)
        try:
            monitor.check_for_new_period()
            values = monitor.refresh() if refresh else monitor.poll()
            monitor.notify(values)
        finally:
            monitor.close()

        console.print(
            f"Daily: {_format_currency(values.daily_spent)} of {_format_currency(values.daily_budget)}"
        )
        console.print(
            f"Monthly: {_format_currency(values.monthly_spent)} of {_format_currency(values.monthly_budget)}"
        )
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def watch(
    iterations: int = typer.Option(
        0,
        "--iterations",
        "-n",
        help="Stop after this many checks (0 runs until interrupted)"
    )
):
    """Run budget checks at the configured query interval."""
    repository = get_repository()
    monitor = _build_monitor(repository)
    try:
        if monitor.interval_minutes is None:
            console.print("[yellow]Budget checks are paused.[/] Enable notifications and configure the API first")
            sys.exit(EXIT_CODE_FAIL)

        completed = 0
        while not iterations or completed < iterations:
            monitor.check_for_new_period()
            try:
                monitor.check_budgets()
            except Exception as e:
                console.print(f"[red]Check failed:[/] {str(e)}")
            completed += 1
            if iterations and completed >= iterations:
                break
            time.sleep((monitor.interval_minutes or 1) * 60)
    except KeyboardInterrupt:
        console.print("Stopped")
    finally:
        monitor.close()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def timeline(
    day: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Day to show (YYYY-MM-DD), defaults to today"
    )
):
    """Show spend per hour for one day."""
    try:
        repository = get_repository()
        result = build_daily_timeline(repository.load_snapshots(), _parse_date(day))

        console.print(f"\n[bold]Hourly timeline for {result.date.isoformat()}[/bold]")
        if not result.has_any_data:
            console.print("[dim]No data for this day.[/]")
            sys.exit(EXIT_CODE_PASS)

        table = Table()
        table.add_column("Hour")
        table.add_column("Spent", justify="right")
        table.add_column("Usage", justify="right")
        table.add_column("Increase", justify="right")
        for bucket in result.buckets:
            if not bucket.has_data:
                continue
            table.add_row(
                bucket.hour_label,
                _format_currency(bucket.spent),
                f"{bucket.usage:.1f}%",
                f"+{_format_currency(bucket.spent_increase)}",
            )
        console.print(table)

        stats = result.stats
        console.print(f"Latest spent: {_format_currency(stats.latest_spent)}")
        console.print(f"Active hours: {stats.active_hours}")
        console.print(f"Peak hour: {stats.peak_hour:02d}:00 ({_format_currency(stats.peak_spent)})")
        console.print(f"Average usage: {stats.avg_usage:.1f}%")
        console.print(f"Average per active hour: {_format_currency(stats.avg_spent_per_active_hour)}")
        console.print(
            f"Largest increase: {_format_currency(stats.max_increase)} at {stats.peak_increase_hour:02d}:00"
        )
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def heatmap(
    time_range: str = typer.Option(
        "week",
        "--range",
        "-r",
        help="week, 2weeks or month"
    ),
    day: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Anchor date (YYYY-MM-DD), defaults to today"
    ),
    hide_weekends: bool = typer.Option(
        False,
        "--hide-weekends",
        help="Blank out Saturday and Sunday in the week view"
    ),
    scheme: str = typer.Option(
        "green",
        "--scheme",
        help="Colour scheme: blue, green or red"
    )
):
    """Show spend by day and hour."""
    try:
        settings = HeatmapSettings(
            time_range=TimeRange(time_range),
            color_scheme=scheme,
            show_weekends=not hide_weekends,
        )
        repository = get_repository()
        data = convert_to_heatmap_data(repository.load_snapshots(), settings, _parse_date(day))

        console.print(
            f"\n[bold]Usage heatmap {data.period_start:%Y-%m-%d} to {data.period_end:%Y-%m-%d}[/bold]"
        )
        if not data.has_any_data:
            console.print("[dim]No data in this period.[/]")
            sys.exit(EXIT_CODE_PASS)

        header = Text(" " * 7)
        for hour in range(0, 24, 6):
            header.append(f"{hour:02d}".ljust(12))
        console.print(header)
        for label, row in zip(data.daily_labels, data.cells):
            line = Text(label.ljust(7))
            for cell in row:
                line.append("■ ", style=heatmap_color(cell.intensity, cell.has_data, settings.color_scheme))
            console.print(line)

        stats = heatmap_stats(data)
        console.print(f"Total spent: {_format_currency(stats.total_spent)}")
        console.print(f"Active hours: {stats.active_hours}")
        console.print(f"Data completeness: {stats.data_completeness:.1f}%")
        if stats.peak is not None:
            console.print(
                f"Peak: {data.daily_labels[stats.peak.day]} {stats.peak.hour:02d}:00 "
                f"({_format_currency(stats.peak.value)})"
            )
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def alert():
    """Classify today's spending pace from today's latest snapshot."""
    try:
        repository = get_repository()
        settings = repository.get_settings()
        now = datetime.now()
        today_start = to_millis(start_of_day(now))
        todays = [point for point in repository.load_snapshots() if point.timestamp >= today_start]
        if not todays:
            console.print("[dim]No data yet.[/] Run `usage-monitor poll` first")
            sys.exit(EXIT_CODE_PASS)

        latest = todays[-1]
        work_status = get_working_time_status(
            settings.working_hours.start, settings.working_hours.end, now
        )
        assessment = classify_burn_rate(
            latest.daily_spent,
            latest.daily_budget,
            work_status,
            settings.alert_thresholds,
        )

        style = assessment.style
        console.print(assessment.message, style=f"{style.emphasis} {style.color}".strip())
        console.print(f"Level: {assessment.level.value}")
        console.print(f"Remaining budget: {_format_currency(assessment.remaining_budget)}")
        console.print(f"Current rate: {_format_currency(assessment.current_rate)}/h")
        console.print(f"Required rate: {_format_currency(assessment.required_rate)}/h")
        console.print(
            f"Work time: {work_status.elapsed_work_hours:.1f}h elapsed, "
            f"{work_status.remaining_work_hours:.1f}h remaining"
        )
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def export(
    output: Path = typer.Option(
        Path("."),
        "--output",
        "-o",
        help="Directory to write the backup file to"
    )
):
    """Export settings and history to a JSON backup."""
    try:
        result = export_all_data(get_repository())
        output.mkdir(parents=True, exist_ok=True)
        target = output / result.filename
        target.write_bytes(result.content)
        console.print(f"[green]✓[/] Exported to {target}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Export failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("import")
def import_data(
    file: Path = typer.Argument(..., help="Backup file to restore")
):
    """Replace settings and history with a JSON backup."""
    try:
        count = import_all_data(get_repository(), file.read_bytes())
        console.print(f"[green]✓[/] Imported {count} snapshots")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Import failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


if __name__ == "__main__":
    app()
