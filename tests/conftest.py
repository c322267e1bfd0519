from __future__ import annotations

import logging
import os

import pytest

from cache_resilience.config import ResilienceConfig, reset_config


@pytest.fixture(autouse=True)
def reset_global_config(monkeypatch):
    """Isolate every test from process config and stray environment."""
    for key in list(os.environ):
        if key.startswith("CACHE_RESILIENCE_"):
            monkeypatch.delenv(key, raising=False)
    reset_config()
    package_logger = logging.getLogger("cache_resilience")
    propagate = package_logger.propagate
    yield
    package_logger.propagate = propagate
    reset_config()


@pytest.fixture
def resilience_config() -> ResilienceConfig:
    """Fast config: no real backoff, breaker trips after 5 of 5 failures."""
    return ResilienceConfig(
        retry={"max_attempts": 3, "base_delay_ms": 0, "max_delay_ms": 0, "jitter": False},
        circuit_breaker={"failure_threshold": 5, "minimum_requests": 5, "recovery_timeout_ms": 50},
    )
