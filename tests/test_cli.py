"""
Tests for the CLI interface.
"""
import json
from datetime import datetime
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from usage_monitor.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from usage_monitor.config.loader import FieldMapping, NotificationSettings, Settings
from usage_monitor.core.timeutil import MS_PER_DAY, now_millis, to_millis
from usage_monitor.sdk.api_client import ApiTestResult
from usage_monitor.storage.models import Snapshot
from usage_monitor.storage.repository import StateRepository

runner = CliRunner()

SETTINGS = Settings(
    api_url="https://api.example.com/usage",
    token="secret",
    mapping=FieldMapping(daily_spent="daily.spent", daily_budget="daily.budget"),
)


@pytest.fixture
def repository(tmp_path):
    """Real repository on a temporary database, injected into the CLI."""
    repo = StateRepository(str(tmp_path / "cli.db"))
    with patch('usage_monitor.cli.main.get_repository', return_value=repo):
        yield repo


@pytest.fixture
def mock_client():
    """Mock the API client class used by the CLI."""
    with patch('usage_monitor.cli.main.UsageApiClient') as mock:
        yield mock.return_value


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_banner(self, repository):
        result = runner.invoke(app, [])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage Monitor" in result.output

    def test_status_unconfigured(self, repository):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Not configured" in result.output

    def test_status_configured(self, repository):
        repository.save_settings(SETTINGS)

        result = runner.invoke(app, ["status"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "09:00 - 24:00" in result.output
        assert "Snapshots stored: 0" in result.output

    def test_configure_from_yaml(self, repository, tmp_path):
        config_path = tmp_path / "settings.yaml"
        config_path.write_text(yaml.dump({
            "api_url": "https://api.example.com/usage",
            "token": "secret",
            "working_hours": {"start": 8, "end": 18},
        }))

        result = runner.invoke(app, ["configure", "--file", str(config_path)])

        assert result.exit_code == EXIT_CODE_PASS
        assert repository.get_settings().working_hours.end == 18

    def test_configure_invalid_yaml(self, repository, tmp_path):
        config_path = tmp_path / "settings.yaml"
        config_path.write_text(yaml.dump({"api_url": "https://x", "unknown": 1}))

        result = runner.invoke(app, ["configure", "--file", str(config_path)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid settings" in result.output
        assert not repository.has_settings()

    def test_test_connection_applies_mapping(self, repository, mock_client):
        mock_client.test_connection.return_value = ApiTestResult(
            success=True,
            data={},
            field_keys=["daily_budget", "daily_spent", "monthly_budget", "monthly_spent"],
        )

        result = runner.invoke(app, ["test-connection"])

        assert result.exit_code == EXIT_CODE_PASS
        mapping = repository.get_mapping()
        assert mapping.daily_spent == "daily_spent"
        assert mapping.monthly_budget == "monthly_budget"

    def test_test_connection_failure(self, repository, mock_client):
        mock_client.test_connection.return_value = ApiTestResult(success=False, error="401 Unauthorized")

        result = runner.invoke(app, ["test-connection"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Connection failed" in result.output

    def test_poll_records_snapshot(self, repository, mock_client):
        repository.save_settings(SETTINGS)
        mock_client.fetch_api_data.return_value = {"daily": {"spent": 25, "budget": 50}}

        result = runner.invoke(app, ["poll"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Daily: $25.00 of $50.00" in result.output
        assert len(repository.load_snapshots()) == 1

    def test_poll_unconfigured_fails(self, repository, mock_client):
        result = runner.invoke(app, ["poll"])

        assert result.exit_code == EXIT_CODE_FAIL
        mock_client.fetch_api_data.assert_not_called()

    def test_watch_single_iteration(self, repository, mock_client):
        repository.save_settings(Settings(
            api_url=SETTINGS.api_url,
            token=SETTINGS.token,
            mapping=SETTINGS.mapping,
            notifications=NotificationSettings(enabled=True),
        ))
        mock_client.fetch_api_data.return_value = {"daily": {"spent": 45, "budget": 50}}

        with patch('usage_monitor.cli.main.time.sleep') as sleep:
            result = runner.invoke(app, ["watch", "--iterations", "1"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Daily budget warning" in result.output
        sleep.assert_not_called()

    def test_watch_paused(self, repository, mock_client):
        result = runner.invoke(app, ["watch", "--iterations", "1"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "paused" in result.output

    def test_timeline(self, repository):
        repository.replace_state({"apiUrl": SETTINGS.api_url}, [
            Snapshot(timestamp=to_millis(datetime(2024, 6, 11, 9, 0)), daily_budget=50, daily_spent=10),
            Snapshot(timestamp=to_millis(datetime(2024, 6, 11, 14, 0)), daily_budget=50, daily_spent=40),
        ])

        result = runner.invoke(app, ["timeline", "--date", "2024-06-11"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "2024-06-11" in result.output
        assert "14:00" in result.output
        assert "Active hours: 2" in result.output
        assert "Average per active hour: $25.00" in result.output

    def test_timeline_invalid_date(self, repository):
        result = runner.invoke(app, ["timeline", "--date", "11/06/2024"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid date" in result.output

    def test_heatmap(self, repository):
        repository.replace_state({"apiUrl": SETTINGS.api_url}, [
            Snapshot(timestamp=to_millis(datetime(2024, 6, 12, 15, 0)), daily_budget=50, daily_spent=40),
        ])

        result = runner.invoke(app, ["heatmap", "--date", "2024-06-12"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Wed" in result.output
        assert "Active hours: 1" in result.output

    def test_heatmap_empty(self, repository):
        result = runner.invoke(app, ["heatmap", "--range", "month", "--date", "2024-06-12"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No data in this period" in result.output

    def test_heatmap_invalid_range(self, repository):
        result = runner.invoke(app, ["heatmap", "--range", "year"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_alert_without_data(self, repository):
        result = runner.invoke(app, ["alert"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No data yet" in result.output

    def test_alert_with_data(self, repository):
        repository.replace_state({"apiUrl": SETTINGS.api_url}, [
            Snapshot(timestamp=now_millis(), daily_budget=50, daily_spent=60),
        ])

        result = runner.invoke(app, ["alert"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Level:" in result.output
        assert "Remaining budget: $-10.00" in result.output

    def test_alert_ignores_earlier_days(self, repository):
        repository.replace_state({"apiUrl": SETTINGS.api_url}, [
            Snapshot(timestamp=now_millis() - MS_PER_DAY, daily_budget=50, daily_spent=60),
        ])

        result = runner.invoke(app, ["alert"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No data yet" in result.output
        assert "Level:" not in result.output

    def test_export_and_import(self, repository, tmp_path):
        repository.save_settings(SETTINGS)
        repository.replace_state(repository.get_raw_settings(), [
            Snapshot(timestamp=to_millis(datetime(2024, 6, 11, 9, 0)), daily_spent=10),
            Snapshot(timestamp=to_millis(datetime(2024, 6, 11, 10, 0)), daily_spent=20),
        ])

        result = runner.invoke(app, ["export", "--output", str(tmp_path / "out")])
        assert result.exit_code == EXIT_CODE_PASS

        exported = list((tmp_path / "out").glob("cc-usage-backup-*.json"))
        assert len(exported) == 1
        assert json.loads(exported[0].read_text())["metadata"]["totalDataPoints"] == 2

        repository.clear_all_data()
        result = runner.invoke(app, ["import", str(exported[0])])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Imported 2 snapshots" in result.output
        assert repository.get_settings() == SETTINGS

    def test_export_without_settings(self, repository, tmp_path):
        result = runner.invoke(app, ["export", "--output", str(tmp_path)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Export failed" in result.output

    def test_import_invalid_file(self, repository, tmp_path):
        backup = tmp_path / "backup.json"
        backup.write_text(json.dumps({"exportVersion": "1.0.0"}))

        result = runner.invoke(app, ["import", str(backup)])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Import failed" in result.output
        assert not repository.has_settings()
