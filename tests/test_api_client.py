"""
Unit tests for the budget API client.

Tests caching, error mapping, connection testing and request sharing.
"""

import os
import tempfile
import threading
import time
from unittest.mock import Mock

import pytest
import requests

from usage_monitor.config.loader import Settings
from usage_monitor.sdk.api_client import (
    ApiError,
    RequestCoordinator,
    UsageApiClient,
    request_key,
)
from usage_monitor.storage.repository import StateRepository

SETTINGS = Settings(api_url="https://api.example.com/usage", token="secret")
PAYLOAD = {"daily": {"spent": 12.5, "budget": 50}, "monthly_budget": 500}


def make_response(ok=True, status_code=200, reason="OK", payload=None):
    response = Mock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = PAYLOAD if payload is None else payload
    return response


class TestUsageApiClient:
    """Test UsageApiClient behaviour."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.repo = StateRepository(os.path.join(self.temp_dir, "test.db"))
        self.session = Mock()
        self.client = UsageApiClient(self.repo, session=self.session)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_fetch_sends_bearer_token(self):
        self.session.get.return_value = make_response()

        data = self.client.fetch_api_data(SETTINGS)

        assert data == PAYLOAD
        args, kwargs = self.session.get.call_args
        assert args[0] == "https://api.example.com/usage"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 10.0

    def test_second_fetch_uses_cache(self):
        self.session.get.return_value = make_response()

        self.client.fetch_api_data(SETTINGS)
        self.client.fetch_api_data(SETTINGS)

        assert self.session.get.call_count == 1
        assert self.repo.get_cached_response().data == PAYLOAD

    def test_missing_configuration(self):
        with pytest.raises(ApiError, match="not configured"):
            self.client.fetch_api_data(Settings(api_url="https://api.example.com"))
        self.session.get.assert_not_called()

    def test_http_error(self):
        self.session.get.return_value = make_response(ok=False, status_code=500, reason="Server Error")

        with pytest.raises(ApiError, match="500 Server Error"):
            self.client.fetch_api_data(SETTINGS)
        assert self.repo.get_cached_response() is None

    def test_network_error(self):
        self.session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ApiError, match="refused"):
            self.client.fetch_api_data(SETTINGS)

    def test_invalid_json(self):
        response = make_response()
        response.json.side_effect = ValueError("bad json")
        self.session.get.return_value = response

        with pytest.raises(ApiError, match="not valid JSON"):
            self.client.fetch_api_data(SETTINGS)

    def test_non_object_body(self):
        self.session.get.return_value = make_response(payload=[1, 2])

        with pytest.raises(ApiError, match="JSON object"):
            self.client.fetch_api_data(SETTINGS)

    def test_connection_success_lists_fields(self):
        self.repo.set_cached_response({"cached": True})
        self.session.get.return_value = make_response()

        result = self.client.test_connection("https://api.example.com/usage", "secret")

        assert result.success
        assert result.data == PAYLOAD
        assert result.field_keys == ["daily", "daily.budget", "daily.spent", "monthly_budget"]
        self.session.get.assert_called_once()

    def test_connection_failure_is_reported(self):
        self.session.get.return_value = make_response(ok=False, status_code=401, reason="Unauthorized")

        result = self.client.test_connection("https://api.example.com/usage", "wrong")

        assert not result.success
        assert "401" in result.error
        assert result.field_keys == []

    def test_connection_requires_inputs(self):
        result = self.client.test_connection("", "secret")

        assert not result.success
        assert result.error == "API URL and token must not be empty"
        self.session.get.assert_not_called()


class TestRequestCoordinator:
    """Test sharing of in-flight requests."""

    def test_request_key(self):
        assert request_key("https://a", "t") == "https://a_t"

    def test_concurrent_callers_share_one_request(self):
        coordinator = RequestCoordinator()
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []

        def slow_request():
            calls.append(1)
            started.set()
            release.wait(5)
            return {"value": 1}

        def caller():
            results.append(coordinator.run("key", slow_request))

        first = threading.Thread(target=caller)
        first.start()
        assert started.wait(5)
        assert coordinator.in_flight("key")

        second = threading.Thread(target=caller)
        second.start()
        time.sleep(0.2)
        release.set()
        first.join(5)
        second.join(5)

        assert len(calls) == 1
        assert results == [{"value": 1}, {"value": 1}]
        assert not coordinator.in_flight("key")

    def test_failure_propagates_and_clears(self):
        coordinator = RequestCoordinator()

        def failing():
            raise ApiError("down")

        with pytest.raises(ApiError, match="down"):
            coordinator.run("key", failing)

        assert not coordinator.in_flight("key")
        assert coordinator.run("key", lambda: 42) == 42

    def test_distinct_keys_run_separately(self):
        coordinator = RequestCoordinator()

        assert coordinator.run("a", lambda: 1) == 1
        assert coordinator.run("b", lambda: 2) == 2
