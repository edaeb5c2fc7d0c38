"""
O2 Gateway — Test Fixtures
===========================
Shared pytest fixtures.

REST backends are exercised through ``httpx.MockTransport``; cluster and
cloud backends through the in-memory mock integration clients.
"""

from __future__ import annotations

import os

import pytest


# ── Settings ─────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Ensure a fresh Settings instance for each test."""
    from o2gateway.core.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Return a settings instance with test defaults."""
    os.environ.setdefault("O2GW_ENVIRONMENT", "development")
    os.environ.setdefault("O2GW_LOG_LEVEL", "DEBUG")
    os.environ.setdefault("O2GW_LOG_FORMAT", "console")
    from o2gateway.core.config import get_settings
    return get_settings()
