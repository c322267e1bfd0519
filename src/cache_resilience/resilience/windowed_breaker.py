# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Windowed circuit breaker.

Counts failures inside a sliding monitoring window and opens once the window
holds `failure_threshold` failures. Used to stop runaway loops (mutation
retries, state update thrashing) rather than to shed load from a backend.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from pydantic import BaseModel, Field

from cache_resilience.exception.circuit_breaker import CircuitBreakerError, CircuitState

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Successes needed in HALF_OPEN before closing
HALF_OPEN_SUCCESS_THRESHOLD = 2


class WindowedBreakerConfig(BaseModel):
    """Windowed breaker configuration."""

    failure_threshold: int = Field(default=3, ge=1, description="Failures in window that open the breaker")
    reset_timeout_ms: int = Field(default=5000, ge=0, description="OPEN duration before a trial")
    monitoring_window_ms: int = Field(default=30000, gt=0, description="Sliding failure window")
    name: str | None = Field(default=None, description="Breaker name for logs")


BREAKER_PRESETS: dict[str, WindowedBreakerConfig] = {
    # mutations that may loop on failure
    "mutation": WindowedBreakerConfig(failure_threshold=3, reset_timeout_ms=5000, monitoring_window_ms=30000),
    # cache writes that may fail repeatedly
    "cache": WindowedBreakerConfig(failure_threshold=5, reset_timeout_ms=2000, monitoring_window_ms=10000),
    "api": WindowedBreakerConfig(failure_threshold=3, reset_timeout_ms=10000, monitoring_window_ms=60000),
}


def preset(kind: str, **overrides: Any) -> WindowedBreakerConfig:
    """Copy of a named preset with field overrides."""
    base = BREAKER_PRESETS.get(kind)
    if base is None:
        raise KeyError(f"Unknown breaker preset: {kind!r}. Available: {', '.join(BREAKER_PRESETS)}")
    return base.model_copy(update=overrides)


def _iso(epoch_ms: float) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


class WindowedCircuitBreaker:
    """Sliding-window circuit breaker."""

    def __init__(
        self,
        config: WindowedBreakerConfig | None = None,
        *,
        feature: str = "circuit-breaker",
    ) -> None:
        self.config = config or WindowedBreakerConfig()
        self.feature = feature
        self._state = CircuitState.CLOSED
        self._failures: list[float] = []
        self._last_failure_time = 0.0
        self._next_attempt_time = 0.0
        self._success_count = 0

    @property
    def name(self) -> str:
        return self.config.name or "operation"

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, fn: Callable[[], Awaitable[T] | T]) -> T:
        self._before_call()
        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def execute_sync(self, fn: Callable[[], T]) -> T:
        self._before_call()
        try:
            result = fn()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def get_status(self) -> dict[str, Any]:
        now = self._now_ms()
        return {
            "state": self._state,
            "failure_count": len(self._failures),
            "failure_threshold": self.config.failure_threshold,
            "last_failure_time": self._last_failure_time,
            "next_attempt_time": self._next_attempt_time,
            "is_open": self._state == CircuitState.OPEN,
            "can_attempt": self._state != CircuitState.OPEN or now >= self._next_attempt_time,
        }

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = []
        self._last_failure_time = 0.0
        self._next_attempt_time = 0.0
        self._success_count = 0

    def force_open(self, duration_ms: int | None = None) -> None:
        """Open the breaker for `duration_ms` (default: reset timeout)."""
        self._state = CircuitState.OPEN
        self._next_attempt_time = self._now_ms() + (
            duration_ms if duration_ms is not None else self.config.reset_timeout_ms
        )
        logger.warning(
            "[WindowedCircuitBreaker:%s] forced OPEN until %s",
            self.name,
            _iso(self._next_attempt_time),
            extra={"event": "circuit.opened", "operation": self.name},
        )

    def _now_ms(self) -> float:
        return time.time() * 1000

    def _before_call(self) -> None:
        if self._state != CircuitState.OPEN:
            return
        if self._now_ms() < self._next_attempt_time:
            raise CircuitBreakerError(
                f"Circuit breaker is OPEN for {self.name}. "
                f"Next attempt allowed at {_iso(self._next_attempt_time)}",
                circuit_state=self._state,
                operation=self.name,
                feature=self.feature,
                metadata={
                    "circuit_breaker_state": self._state.value,
                    "failure_count": len(self._failures),
                    "last_failure_time": self._last_failure_time,
                    "next_attempt_time": self._next_attempt_time,
                },
            )
        self._state = CircuitState.HALF_OPEN
        self._success_count = 0
        logger.info(
            "[WindowedCircuitBreaker:%s] OPEN -> HALF_OPEN",
            self.name,
            extra={"event": "circuit.half_open", "operation": self.name},
        )

    def _on_success(self) -> None:
        self._failures = []
        self._last_failure_time = 0.0

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= HALF_OPEN_SUCCESS_THRESHOLD:
                self._state = CircuitState.CLOSED
                logger.info(
                    "[WindowedCircuitBreaker:%s] HALF_OPEN -> CLOSED",
                    self.name,
                    extra={"event": "circuit.closed", "operation": self.name},
                )

    def _on_failure(self) -> None:
        now = self._now_ms()
        window = self.config.monitoring_window_ms
        self._failures = [ts for ts in self._failures if now - ts < window]
        self._failures.append(now)
        self._last_failure_time = now

        if len(self._failures) >= self.config.failure_threshold:
            self._state = CircuitState.OPEN
            self._next_attempt_time = now + self.config.reset_timeout_ms
            logger.warning(
                "[WindowedCircuitBreaker:%s] OPEN (failures: %s/%s)",
                self.name,
                len(self._failures),
                self.config.failure_threshold,
                extra={"event": "circuit.opened", "operation": self.name},
            )
        elif self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._next_attempt_time = now + self.config.reset_timeout_ms


def with_circuit_breaker(breaker: WindowedCircuitBreaker):
    """Async circuit breaker decorator."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await breaker.execute(lambda: func(*args, **kwargs))

        return wrapper

    return decorator


def with_circuit_breaker_sync(breaker: WindowedCircuitBreaker):
    """Sync circuit breaker decorator."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return breaker.execute_sync(lambda: func(*args, **kwargs))

        return wrapper

    return decorator
