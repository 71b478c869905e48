"""
SDK for Usage Monitor.

Provides programmatic access to the budget API.
"""

from .api_client import ApiError, ApiTestResult, RequestCoordinator, UsageApiClient

__all__ = ["ApiError", "ApiTestResult", "RequestCoordinator", "UsageApiClient"]
