# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache error manager.

Single entry point for cache-mutating operations:
- retry (inner) and circuit breaker (outer) around the caller's operation
- every surfacing error normalized to CacheError, logged, recorded and re-raised
- bounded error log with aggregate statistics

Construct one instance per application session and pass it to collaborators.
"""

from __future__ import annotations

import inspect
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.mapper import CacheErrorMapper
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType
from cache_resilience.log import error_extra
from cache_resilience.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerStatus
from cache_resilience.resilience.recovery import (
    CacheRecoveryManager,
    CorruptionCheck,
    RecoveryStrategy,
)
from cache_resilience.resilience.retry import RetryManager, ShouldRetry

if TYPE_CHECKING:
    from cache_resilience.config import ResilienceConfig
    from cache_resilience.resilience.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class ErrorStatistics:
    """Aggregate view of the error log."""

    total_errors: int = 0
    errors_by_type: dict[CacheErrorType, int] = field(
        default_factory=lambda: {t: 0 for t in CacheErrorType}
    )
    errors_by_severity: dict[CacheErrorSeverity, int] = field(
        default_factory=lambda: {s: 0 for s in CacheErrorSeverity}
    )
    errors_by_feature: dict[str, int] = field(default_factory=dict)
    recent_errors: list[CacheError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "errors_by_type": {t.value: n for t, n in self.errors_by_type.items()},
            "errors_by_severity": {s.value: n for s, n in self.errors_by_severity.items()},
            "errors_by_feature": dict(self.errors_by_feature),
            "recent_errors": [e.to_dict() for e in self.recent_errors],
        }


class CacheErrorManager:
    """Registry of breakers and recovery managers plus the bounded error log."""

    def __init__(self, config: ResilienceConfig | None = None) -> None:
        if config is None:
            from cache_resilience.config import get_config

            config = get_config()
        self.config = config
        self._circuit_breakers: dict[str, CircuitBreaker] = {}
        self._recovery_managers: dict[str, CacheRecoveryManager] = {}
        self._error_log: deque[CacheError] = deque(maxlen=config.error_log.max_size)

    # === Registries ===

    def get_circuit_breaker(self, operation: str, feature: str) -> CircuitBreaker:
        key = f"{feature}-{operation}"
        breaker = self._circuit_breakers.get(key)
        if breaker is None:
            breaker = CircuitBreaker(operation, feature, self.config.circuit_breaker)
            self._circuit_breakers[key] = breaker
        return breaker

    def get_recovery_manager(self, feature: str) -> CacheRecoveryManager:
        manager = self._recovery_managers.get(feature)
        if manager is None:
            manager = CacheRecoveryManager(feature)
            self._recovery_managers[feature] = manager
        return manager

    def register_corruption_check(self, feature: str, cache_key: str, check: CorruptionCheck) -> None:
        self.get_recovery_manager(feature).register_corruption_check(cache_key, check)

    def register_recovery_strategy(self, feature: str, cache_key: str, recover: RecoveryStrategy) -> None:
        self.get_recovery_manager(feature).register_recovery_strategy(cache_key, recover)

    # === Execution ===

    async def execute_with_error_handling(
        self,
        operation: Callable[[], Awaitable[T] | T],
        *,
        operation_name: str,
        feature: str,
        use_circuit_breaker: bool = True,
        use_retry: bool = True,
        retry_config: RetryConfig | Mapping[str, Any] | None = None,
        should_retry: ShouldRetry | None = None,
        user_id: str | None = None,
        item_id: int | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> T:
        """
        Run `operation` under retry and circuit breaker protection.

        The breaker observes a retry-exhausted failure as a single failure.

        Raises:
            CacheError: on exhaustion, breaker rejection or a non-retryable error
        """
        wrapped: Callable[[], Awaitable[T] | T] = operation
        if use_retry:
            retry_manager = RetryManager(self._resolve_retry_config(retry_config))

            async def retry_wrapped() -> T:
                return await retry_manager.execute_with_retry(
                    operation,
                    operation_name,
                    feature,
                    should_retry=should_retry,
                )

            wrapped = retry_wrapped

        try:
            if use_circuit_breaker:
                breaker = self.get_circuit_breaker(operation_name, feature)
                return await breaker.execute(wrapped)
            result = wrapped()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            cache_error = CacheErrorMapper.unexpected(
                e,
                operation_name,
                feature,
                user_id=user_id,
                item_id=item_id,
                metadata=metadata,
            )
            self._record(cache_error)
            if cache_error is e:
                raise
            raise cache_error from e

    def _resolve_retry_config(self, retry_config: RetryConfig | Mapping[str, Any] | None) -> RetryConfig:
        base = self.config.retry
        if retry_config is None:
            return base
        if isinstance(retry_config, Mapping):
            return type(base).model_validate({**base.model_dump(), **retry_config})
        return retry_config

    def _record(self, error: CacheError) -> None:
        self._error_log.append(error)
        logger.error(
            "[CacheError] %s/%s %s | feature=%s operation=%s | %s",
            error.type.value,
            error.severity.value,
            "retryable" if error.retryable else "final",
            error.feature,
            error.operation,
            error.message,
            extra=error_extra("cache.error", error),
        )

    # === Introspection ===

    def get_error_statistics(self) -> ErrorStatistics:
        stats = ErrorStatistics(total_errors=len(self._error_log))
        for error in self._error_log:
            stats.errors_by_type[error.type] += 1
            stats.errors_by_severity[error.severity] += 1
        stats.errors_by_feature = dict(Counter(error.feature for error in self._error_log))

        recent_size = self.config.error_log.recent_size
        if recent_size:
            stats.recent_errors = list(self._error_log)[-recent_size:]
        return stats

    def get_circuit_breaker_statuses(self) -> dict[str, CircuitBreakerStatus]:
        return {key: breaker.get_status() for key, breaker in self._circuit_breakers.items()}

    def clear_error_log(self) -> None:
        self._error_log.clear()

    def reset_circuit_breakers(self) -> None:
        self._circuit_breakers.clear()
