"""Shared test fixtures.

Required settings are given dummy values before anything imports
config.settings, so the suite runs without a .env file.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("GATEWAY_KEY_SECRET", "gw_secret")
os.environ.setdefault("GATEWAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("GATEWAY_WEBHOOK_SECRET", "wh_secret")
os.environ.setdefault("SWEEP_ENABLED", "false")

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture
def db() -> MagicMock:
    """Stand-in AsyncSession: execute/commit/rollback are awaitable mocks."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session
