# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Circuit breaker.

Guards one (feature, operation) pair. Opens on failure rate rather than on a
raw failure count, so a burst of failures among many successes does not trip it.

State transitions:
- CLOSED -> OPEN: after a failure, once `minimum_requests` were seen and
  failures / requests >= failure_threshold / minimum_requests
- OPEN -> HALF_OPEN: on the first call after `recovery_timeout_ms`
- HALF_OPEN -> CLOSED: the single trial call succeeds (counters reset)
- HALF_OPEN -> OPEN: the trial call fails (counters kept)

Bookkeeping runs synchronously around the awaited operation; a call's
contribution is applied exactly once, in the continuation that observes
its outcome.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, TypeVar

from cache_resilience.exception.circuit_breaker import CircuitBreakerError, CircuitState
from cache_resilience.resilience.config import CircuitBreakerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CircuitBreakerStatus:
    """Point-in-time breaker snapshot."""

    state: CircuitState
    failure_count: int
    request_count: int
    success_count: int
    failure_rate: float

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class CircuitBreaker:
    """Failure-rate circuit breaker for one (feature, operation) pair."""

    def __init__(
        self,
        operation: str,
        feature: str,
        config: CircuitBreakerConfig | None = None,
    ) -> None:
        self.operation = operation
        self.feature = feature
        self.config = config or CircuitBreakerConfig()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._request_count = 0
        self._success_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

    @property
    def name(self) -> str:
        return f"{self.feature}-{self.operation}"

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_time(self) -> int | None:
        """Epoch milliseconds of the last recorded failure."""
        if self._last_failure_time is None:
            return None
        return int(self._last_failure_time * 1000)

    async def execute(self, operation: Callable[[], Awaitable[T] | T]) -> T:
        """Run `operation` (sync or async) under breaker protection."""
        self._before_call()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            self._release_trial()
            raise
        self._on_success()
        return result

    def execute_sync(self, operation: Callable[[], T]) -> T:
        """Run a plain callable under breaker protection."""
        self._before_call()
        try:
            result = operation()
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            self._release_trial()
            raise
        self._on_success()
        return result

    def get_status(self) -> CircuitBreakerStatus:
        return CircuitBreakerStatus(
            state=self._state,
            failure_count=self._failure_count,
            request_count=self._request_count,
            success_count=self._success_count,
            failure_rate=(
                self._failure_count / self._request_count if self._request_count > 0 else 0.0
            ),
        )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._reset_counters()
        self._last_failure_time = None
        self._trial_in_flight = False

    # === State machine ===

    def _before_call(self) -> None:
        if self._state == CircuitState.OPEN:
            if not self._recovery_elapsed():
                raise self._rejection(f"Circuit breaker is OPEN for {self.name}")
            self._state = CircuitState.HALF_OPEN
            logger.info(
                "[CircuitBreaker:%s] OPEN -> HALF_OPEN",
                self.name,
                extra=self._log_extra("circuit.half_open"),
            )

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise self._rejection(f"Circuit breaker for {self.name} is HALF_OPEN with a trial in flight")
            self._trial_in_flight = True

    def _on_success(self) -> None:
        self._trial_in_flight = False
        self._request_count += 1
        self._success_count += 1

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.CLOSED
            self._reset_counters()
            logger.info(
                "[CircuitBreaker:%s] HALF_OPEN -> CLOSED (recovered)",
                self.name,
                extra=self._log_extra("circuit.closed"),
            )
            return

        if self._millis_since_last_failure() >= self.config.monitoring_period_ms:
            self._reset_counters()

    def _on_failure(self) -> None:
        self._trial_in_flight = False
        self._request_count += 1
        self._failure_count += 1
        self._last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "[CircuitBreaker:%s] HALF_OPEN -> OPEN (trial failed)",
                self.name,
                extra=self._log_extra("circuit.opened"),
            )
        elif self._state == CircuitState.CLOSED and self._should_open():
            self._state = CircuitState.OPEN
            logger.warning(
                "[CircuitBreaker:%s] CLOSED -> OPEN (failures=%s requests=%s)",
                self.name,
                self._failure_count,
                self._request_count,
                extra=self._log_extra("circuit.opened"),
            )

    def _release_trial(self) -> None:
        self._trial_in_flight = False

    def _should_open(self) -> bool:
        if self._request_count < self.config.minimum_requests:
            return False
        failure_rate = self._failure_count / self._request_count
        return failure_rate >= self.config.failure_rate_threshold

    def _recovery_elapsed(self) -> bool:
        return self._millis_since_last_failure() >= self.config.recovery_timeout_ms

    def _millis_since_last_failure(self) -> float:
        if self._last_failure_time is None:
            return float("inf")
        return (time.time() - self._last_failure_time) * 1000

    def _reset_counters(self) -> None:
        self._failure_count = 0
        self._request_count = 0
        self._success_count = 0

    def _rejection(self, message: str) -> CircuitBreakerError:
        return CircuitBreakerError(
            message,
            circuit_state=self._state,
            operation=self.operation,
            feature=self.feature,
            metadata={
                "circuit_breaker_state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure_time": self.last_failure_time,
            },
        )

    def _log_extra(self, event: str) -> dict[str, Any]:
        return {
            "event": event,
            "feature": self.feature,
            "operation": self.operation,
            "data": self.get_status().to_dict(),
        }
