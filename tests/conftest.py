"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app import so settings are built
from test values.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore


@pytest.fixture
def clock() -> Mock:
    """Controllable millisecond clock starting at t=0."""
    return Mock(return_value=0)


@pytest.fixture
def store(clock: Mock) -> InMemoryRateLimitStore:
    """Fresh store with the probabilistic sweep disabled."""
    return InMemoryRateLimitStore(clock_ms=clock, sweep_probability=0.0)


@pytest.fixture
def valid_api_key_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}
