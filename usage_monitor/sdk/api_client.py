"""
Budget API client.

Fetches the user's budget endpoint, shares in-flight requests between
concurrent callers and caches responses in the state repository.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config.loader import Settings
from ..core.numeric import extract_field_paths
from ..storage.repository import StateRepository

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ApiError(Exception):
    """Raised when the budget API cannot be queried."""


@dataclass(frozen=True)
class ApiTestResult:
    """Outcome of a connection test; never raised, always returned."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    field_keys: List[str] = field(default_factory=list)


def request_key(api_url: str, token: str) -> str:
    return f"{api_url}_{token}"


class RequestCoordinator:
    """Runs at most one request per key at a time.

    Callers arriving while a request for the same key is in flight wait
    for it and receive its result or exception.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[str, Future] = {}

    def run(self, key: str, request: Callable[[], Any]) -> Any:
        with self._lock:
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future

        if not owner:
            logger.debug("Joining in-flight request %s", key)
            return future.result()

        try:
            result = request()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._pending


class UsageApiClient:
    """Client for a user-configured budget endpoint.

    Responses are cached in the repository; repeated fetches inside the
    cache TTL do not touch the network.
    """

    def __init__(
        self,
        repository: StateRepository,
        coordinator: Optional[RequestCoordinator] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        """Initialize the client.

        Args:
            repository: State repository holding the response cache
            coordinator: Shared request coordinator; a private one is
                created when omitted
            session: HTTP session, mainly for tests
            timeout: Request timeout in seconds
        """
        self.repository = repository
        self.coordinator = coordinator or RequestCoordinator()
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_api_data(self, settings: Settings) -> Dict[str, Any]:
        """Return the API response, from cache when still fresh.

        Raises:
            ApiError: If the API is not configured or the request fails
        """
        key = request_key(settings.api_url, settings.token)
        return self.coordinator.run(key, lambda: self._cached_or_fetch(settings))

    def _cached_or_fetch(self, settings: Settings) -> Dict[str, Any]:
        cached = self.repository.get_cached_response()
        if cached is not None:
            logger.debug("Using cached API response from %d", cached.timestamp)
            return cached.data

        data = self._request(settings.api_url, settings.token)
        self.repository.set_cached_response(data)
        return data

    def _request(self, api_url: str, token: str) -> Dict[str, Any]:
        if not api_url or not token:
            raise ApiError("API URL or token is not configured")

        try:
            response = self.session.get(
                api_url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"API request failed: {e}") from e

        if not response.ok:
            raise ApiError(f"API request failed: {response.status_code} {response.reason}")

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError("API response is not valid JSON") from e

        if not isinstance(data, dict):
            raise ApiError("API response must be a JSON object")
        return data

    def test_connection(self, api_url: str, token: str) -> ApiTestResult:
        """Query the API directly and list its field paths.

        Bypasses the cache. Failures are reported in the result.
        """
        if not api_url or not token:
            return ApiTestResult(success=False, error="API URL and token must not be empty")

        try:
            data = self._request(api_url, token)
        except ApiError as e:
            logger.info("Connection test failed: %s", e)
            return ApiTestResult(success=False, error=str(e))

        return ApiTestResult(success=True, data=data, field_keys=extract_field_paths(data))
