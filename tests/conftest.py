"""
Pytest configuration and shared fixtures for supplygraph_middleware tests.
"""

import pytest

from supplygraph_middleware.config import IdempotencyConfig
from supplygraph_middleware.storage.memory import MemoryIdempotencyStore


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "test-key-12345"


@pytest.fixture
def sample_request_body() -> dict:
    """Provide a sample parsed request body for tests."""
    return {"name": "acme"}


@pytest.fixture
def store() -> MemoryIdempotencyStore:
    """Create a fresh in-memory store for each test."""
    return MemoryIdempotencyStore()


@pytest.fixture
def fast_config() -> IdempotencyConfig:
    """Config with a short poll interval so waiting tests run quickly."""
    return IdempotencyConfig(poll_interval_ms=10, max_poll_attempts=50)
