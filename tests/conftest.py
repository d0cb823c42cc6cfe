"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and small factories
for adapter configs. Fixtures here are autouse unless noted.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import pytest

from aigateway.config import ProviderConfig
from aigateway.constants import API_KEY_ENV_VARS
from aigateway.retry import RetryPolicy

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    monkeypatch.setattr(
        "aigateway.config.load_dotenv", lambda *_args, **_kwargs: False
    )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears every provider API key variable to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in API_KEY_ENV_VARS.values():
        monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Retry Timing
# =============================================================================


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    """Record retry delays instead of sleeping (not autouse)."""
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr("aigateway.retry._sleep", fake_sleep)
    return recorded


# =============================================================================
# Config Factories
# =============================================================================

FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0, max_delay_s=0.0)


def make_config(provider: str, model: str, **overrides: Any) -> ProviderConfig:
    """Build a config with a dummy key and instant retries."""
    overrides.setdefault("api_key", "test-key")
    overrides.setdefault("retry", FAST_RETRY)
    return ProviderConfig(provider=provider, model=model, **overrides)  # type: ignore[arg-type]


def pytest_report_header() -> str:
    keys = [k for k in API_KEY_ENV_VARS.values() if os.getenv(k)]
    return f"aigateway: provider keys present (isolated per test): {keys or 'none'}"
