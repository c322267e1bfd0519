"""
Retry with exponential backoff.

Delay before attempt N+1 is min(base * multiplier^(N-1), max), optionally
scaled by a random factor in [0.5, 1.0] so concurrent callers spread out.
Only retry-eligible errors are retried; anything surfacing from the last
attempt is a CacheError.

A `should_retry` predicate takes the error, and optionally the 1-based attempt
number as a second positional argument.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, ParamSpec, Protocol, TypeVar

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.classifier import ErrorClassifier
from cache_resilience.exception.types import CacheErrorSeverity
from cache_resilience.resilience.config import RetryConfig

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

ShouldRetry = Callable[[Exception], bool] | Callable[[Exception, int], bool]
OnRetry = Callable[[int, Exception], None]


class RetryConfigLike(Protocol):
    """Config protocol for retry delay calculation."""

    base_delay_ms: int
    max_delay_ms: int
    backoff_multiplier: float
    jitter: bool


def calculate_retry_delay(config: RetryConfigLike, attempt: int) -> float:
    """
    Delay (seconds) to wait after failed attempt `attempt` (1-based).

    Exponential backoff capped at max_delay_ms, with optional jitter.
    """
    delay_ms = config.base_delay_ms * (config.backoff_multiplier ** (attempt - 1))
    delay_ms = min(delay_ms, config.max_delay_ms)

    if config.jitter:
        delay_ms *= random.uniform(0.5, 1.0)

    return max(delay_ms / 1000.0, 0.0)


def _takes_attempt(predicate: Callable[..., bool]) -> bool:
    try:
        params = inspect.signature(predicate).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = 0
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return True
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


def _message(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


def _api_should_retry(error: Exception, attempt: int) -> bool:
    # client errors are final
    message = str(error)
    return not any(code in message for code in ("400", "401", "403", "404"))


def _cache_should_retry(error: Exception, attempt: int) -> bool:
    message = _message(error)
    return "validation" not in message and "TypeError" not in message


def _mutation_should_retry(error: Exception, attempt: int) -> bool:
    # one retry at most
    message = _message(error)
    return (
        attempt == 1
        and "validation" not in message
        and not isinstance(error, RecursionError)
        and "Maximum call stack size exceeded" not in message
    )


@dataclass(frozen=True, slots=True)
class RetryPreset:
    """Retry configuration bundled with the predicate that suits it."""

    config: RetryConfig
    should_retry: Callable[[Exception, int], bool]

    def manager(self) -> RetryManager:
        return RetryManager(self.config)


RETRY_PRESETS: dict[str, RetryPreset] = {
    # API calls with transient network issues
    "api": RetryPreset(
        RetryConfig(max_attempts=3, base_delay_ms=1000, max_delay_ms=10000, backoff_multiplier=2.0, jitter=True),
        _api_should_retry,
    ),
    "cache": RetryPreset(
        RetryConfig(max_attempts=2, base_delay_ms=500, max_delay_ms=2000, backoff_multiplier=2.0, jitter=False),
        _cache_should_retry,
    ),
    # optimistic update conflicts
    "mutation": RetryPreset(
        RetryConfig(max_attempts=2, base_delay_ms=1000, max_delay_ms=3000, backoff_multiplier=1.5, jitter=True),
        _mutation_should_retry,
    ),
}


def retry_preset(kind: str, **overrides: Any) -> RetryPreset:
    """Copy of a named retry preset with RetryConfig field overrides."""
    base = RETRY_PRESETS.get(kind)
    if base is None:
        raise KeyError(f"Unknown retry preset: {kind!r}. Available: {', '.join(RETRY_PRESETS)}")
    if not overrides:
        return base
    return RetryPreset(base.config.model_copy(update=overrides), base.should_retry)


class RetryManager:
    """Bounded retry executor."""

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T] | T],
        operation_name: str,
        feature: str,
        should_retry: ShouldRetry | None = None,
        on_retry: OnRetry | None = None,
    ) -> T:
        """Run `operation` up to `max_attempts` times."""
        max_attempts = self.config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as e:
                if not self._should_continue(e, attempt, should_retry):
                    terminal = self._terminal_error(e, attempt, operation_name, feature)
                    if terminal is e:
                        raise
                    raise terminal from e

                delay = calculate_retry_delay(self.config, attempt)
                self._log_retry(e, attempt, delay, operation_name, feature)
                if on_retry:
                    on_retry(attempt, e)
                await self._sleep(delay)

        raise RuntimeError("Retry exhausted unexpectedly")

    def execute_with_retry_sync(
        self,
        operation: Callable[[], T],
        operation_name: str,
        feature: str,
        should_retry: ShouldRetry | None = None,
        on_retry: OnRetry | None = None,
    ) -> T:
        """Blocking variant for plain callables."""
        max_attempts = self.config.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                return operation()
            except Exception as e:
                if not self._should_continue(e, attempt, should_retry):
                    terminal = self._terminal_error(e, attempt, operation_name, feature)
                    if terminal is e:
                        raise
                    raise terminal from e

                delay = calculate_retry_delay(self.config, attempt)
                self._log_retry(e, attempt, delay, operation_name, feature)
                if on_retry:
                    on_retry(attempt, e)
                time.sleep(delay)

        raise RuntimeError("Retry exhausted unexpectedly")

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def _should_continue(
        self,
        error: Exception,
        attempt: int,
        should_retry: ShouldRetry | None,
    ) -> bool:
        if attempt >= self.config.max_attempts:
            return False
        if should_retry is not None:
            if _takes_attempt(should_retry):
                return should_retry(error, attempt)
            return should_retry(error)
        return ErrorClassifier.is_retry_eligible(error)

    def _terminal_error(
        self,
        error: Exception,
        attempt: int,
        operation_name: str,
        feature: str,
    ) -> CacheError:
        logger.error(
            "[Retry] giving up | feature=%s operation=%s attempts=%s/%s | error=%s",
            feature,
            operation_name,
            attempt,
            self.config.max_attempts,
            error,
            extra={"event": "retry.exhausted", "feature": feature, "operation": operation_name},
        )
        if isinstance(error, CacheError):
            return error

        return CacheError(
            f"Operation failed after {attempt} attempts: {error}",
            type=ErrorClassifier.classify_retry_failure(error),
            severity=CacheErrorSeverity.HIGH,
            operation=operation_name,
            feature=feature,
            original_error=error,
            metadata={
                "attempts": attempt,
                "max_attempts": self.config.max_attempts,
            },
        )

    def _log_retry(
        self,
        error: Exception,
        attempt: int,
        delay: float,
        operation_name: str,
        feature: str,
    ) -> None:
        logger.warning(
            "[Retry] attempt %s/%s failed, retrying in %.2fs | feature=%s operation=%s | error=%s",
            attempt,
            self.config.max_attempts,
            delay,
            feature,
            operation_name,
            error,
            extra={"event": "retry.attempt_failed", "feature": feature, "operation": operation_name},
        )


def with_retry(
    manager: RetryManager,
    operation_name: str,
    feature: str,
    should_retry: ShouldRetry | None = None,
    on_retry: OnRetry | None = None,
):
    """Async retry decorator backed by a RetryManager."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await manager.execute_with_retry(
                lambda: func(*args, **kwargs),
                operation_name,
                feature,
                should_retry=should_retry,
                on_retry=on_retry,
            )

        return wrapper

    return decorator


def with_retry_sync(
    manager: RetryManager,
    operation_name: str,
    feature: str,
    should_retry: ShouldRetry | None = None,
    on_retry: OnRetry | None = None,
):
    """Blocking retry decorator backed by a RetryManager."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return manager.execute_with_retry_sync(
                lambda: func(*args, **kwargs),
                operation_name,
                feature,
                should_retry=should_retry,
                on_retry=on_retry,
            )

        return wrapper

    return decorator
