# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
State update guard.

Wraps a component's own state transitions in a windowed circuit breaker so a
failing update cannot be re-invoked in a tight loop. Unlike the error manager,
the guard never raises for a failed update: callers inspect a StateUpdateResult.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Generic, ParamSpec, TypeVar

from cache_resilience.exception.circuit_breaker import CircuitBreakerError, CircuitState
from cache_resilience.resilience.config import StateGuardConfig
from cache_resilience.resilience.windowed_breaker import (
    WindowedCircuitBreaker,
    preset,
)

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

STATE_UPDATE_FEATURE = "state-updates"


@dataclass(slots=True)
class StateUpdateResult(Generic[T]):
    """Outcome of a guarded state update."""

    success: bool
    circuit_state: CircuitState
    can_retry: bool
    result: T | None = None
    error: Exception | None = None


@dataclass(slots=True)
class BatchUpdateResult:
    """Outcome of a guarded batch of state updates."""

    success: bool
    circuit_state: CircuitState
    completed: list[Callable[[], Any]] = field(default_factory=list)
    failed: list[Callable[[], Any]] = field(default_factory=list)


class StateUpdateGuard:
    """Circuit breaker protection for one component's state updates."""

    def __init__(
        self,
        component_name: str,
        *,
        user_id: str | None = None,
        failure_threshold: int | None = None,
        recovery_timeout_ms: int | None = None,
        debug: bool = False,
        config: StateGuardConfig | None = None,
    ) -> None:
        if config is None:
            from cache_resilience.config import get_config

            config = get_config().state_guard

        self.component_name = component_name
        self.user_id = user_id
        self.debug = debug
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._breaker = WindowedCircuitBreaker(
            preset(
                "mutation",
                name=f"state-updates-{component_name}",
                failure_threshold=failure_threshold or config.failure_threshold,
                reset_timeout_ms=recovery_timeout_ms or config.recovery_timeout_ms,
                monitoring_window_ms=config.monitoring_window_ms,
            ),
            feature=STATE_UPDATE_FEATURE,
        )

    @property
    def breaker(self) -> WindowedCircuitBreaker:
        return self._breaker

    async def execute_state_update(
        self,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str = "state-update",
    ) -> StateUpdateResult[T]:
        self._trace("Executing %s", operation_name)
        try:
            result = await self._breaker.execute(operation)
        except Exception as e:
            return self._failed(e, operation_name)
        return self._succeeded(result, operation_name)

    def execute_state_update_sync(
        self,
        operation: Callable[[], T],
        operation_name: str = "state-update-sync",
    ) -> StateUpdateResult[T]:
        self._trace("Executing sync %s", operation_name)
        try:
            result = self._breaker.execute_sync(operation)
        except Exception as e:
            return self._failed(e, operation_name)
        return self._succeeded(result, operation_name)

    def can_perform_state_update(self) -> bool:
        return bool(self._breaker.get_status()["can_attempt"])

    def get_status(self) -> dict[str, Any]:
        """Breaker status overlaid with this guard's own counters."""
        return {
            **self._breaker.get_status(),
            "failure_count": self._failure_count,
            "last_failure_time": self._last_failure_time,
            "component_name": self.component_name,
        }

    def reset_circuit_breaker(self) -> None:
        self._breaker.reset()
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trace("Reset circuit breaker")

    def force_open_circuit_breaker(self, duration_ms: int | None = None) -> None:
        self._breaker.force_open(duration_ms)
        self._trace("Forced circuit breaker open")

    def _succeeded(self, result: T, operation_name: str) -> StateUpdateResult[T]:
        self._failure_count = 0
        self._trace("%s succeeded", operation_name)
        return StateUpdateResult(
            success=True,
            result=result,
            circuit_state=self._breaker.state,
            can_retry=True,
        )

    def _failed(self, error: Exception, operation_name: str) -> StateUpdateResult[Any]:
        self._failure_count += 1
        self._last_failure_time = time.time() * 1000

        if isinstance(error, CircuitBreakerError):
            logger.warning(
                "[StateUpdateGuard:%s] %s blocked: %s",
                self.component_name,
                operation_name,
                error,
                extra={
                    "event": "state_guard.blocked",
                    "component": self.component_name,
                    "operation": operation_name,
                    "user_id": self.user_id,
                },
            )
            return StateUpdateResult(
                success=False,
                error=error,
                circuit_state=error.circuit_state,
                can_retry=error.circuit_state != CircuitState.OPEN,
            )

        if self.debug:
            logger.warning(
                "[StateUpdateGuard:%s] %s failed: %s",
                self.component_name,
                operation_name,
                error,
                extra={"component": self.component_name, "operation": operation_name},
            )
        status = self._breaker.get_status()
        return StateUpdateResult(
            success=False,
            error=error,
            circuit_state=status["state"],
            can_retry=status["can_attempt"],
        )

    def _trace(self, message: str, *args: Any) -> None:
        if self.debug:
            logger.debug(
                "[StateUpdateGuard:%s] " + message,
                self.component_name,
                *args,
                extra={"component": self.component_name},
            )


def protect_state_setter(
    setter: Callable[P, T],
    breaker: WindowedCircuitBreaker,
    operation_name: str = "state-update",
) -> Callable[P, T | None]:
    """Wrap a setter; a breaker rejection yields None instead of raising."""

    @wraps(setter)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T | None:
        try:
            return breaker.execute_sync(lambda: setter(*args, **kwargs))
        except CircuitBreakerError as e:
            logger.warning(
                "State update blocked by circuit breaker: %s (%s)",
                operation_name,
                e,
                extra={"event": "state_guard.blocked", "operation": operation_name},
            )
            return None

    return wrapper


async def execute_protected_batch(
    operations: Sequence[Callable[[], Any]],
    breaker: WindowedCircuitBreaker,
    *,
    on_complete: Callable[[], None] | None = None,
    on_error: Callable[[Exception, list[Callable[[], Any]]], None] | None = None,
    on_circuit_open: Callable[[dict[str, Any]], None] | None = None,
) -> BatchUpdateResult:
    """
    Run a batch of state updates as one breaker-guarded unit.

    The batch stops at the first failing operation and the whole batch is
    reported failed. Callbacks run after the breaker has recorded the outcome.
    """
    completed: list[Callable[[], Any]] = []
    failed: list[Callable[[], Any]] = []

    async def run_batch() -> None:
        for operation in operations:
            try:
                result = operation()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                failed.append(operation)
                raise
            completed.append(operation)

    try:
        await breaker.execute(run_batch)
    except CircuitBreakerError:
        if on_circuit_open:
            on_circuit_open(breaker.get_status())
        return BatchUpdateResult(
            success=False,
            completed=completed,
            failed=list(operations),
            circuit_state=breaker.state,
        )
    except Exception as e:
        if on_error:
            on_error(e, failed)
        return BatchUpdateResult(
            success=False,
            completed=completed,
            failed=list(operations),
            circuit_state=breaker.state,
        )

    if on_complete:
        on_complete()
    return BatchUpdateResult(
        success=True,
        completed=completed,
        failed=failed,
        circuit_state=breaker.state,
    )
