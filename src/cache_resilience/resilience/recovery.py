# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache corruption detection and recovery.

One manager per feature. Checks return True when the cached unit is healthy;
a check that raises counts as corrupted. Recovery is explicit: a corrupted key
without a registered strategy is a CRITICAL error.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType

logger = logging.getLogger(__name__)

CorruptionCheck = Callable[[], bool]
RecoveryStrategy = Callable[[], Awaitable[None] | None]


@dataclass(slots=True)
class RecoveryReport:
    """Outcome of an auto-recovery pass."""

    recovered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class CacheRecoveryManager:
    """Per-feature registry of corruption checks and recovery strategies."""

    def __init__(self, feature: str) -> None:
        self.feature = feature
        self._checks: dict[str, CorruptionCheck] = {}
        self._strategies: dict[str, RecoveryStrategy] = {}

    def register_corruption_check(self, cache_key: str, check: CorruptionCheck) -> None:
        self._checks[cache_key] = check

    def register_recovery_strategy(self, cache_key: str, recover: RecoveryStrategy) -> None:
        self._strategies[cache_key] = recover

    async def check_cache_integrity(self) -> list[str]:
        """Run every check; return the keys that look corrupted."""
        corrupted: list[str] = []
        for cache_key, check in self._checks.items():
            try:
                healthy = check()
            except Exception as e:
                logger.warning(
                    "[Recovery] corruption check raised | feature=%s key=%s | error=%s",
                    self.feature,
                    cache_key,
                    e,
                    extra={"event": "recovery.check_failed", "feature": self.feature},
                )
                corrupted.append(cache_key)
                continue
            if not healthy:
                corrupted.append(cache_key)
        return corrupted

    async def recover_cache(self, cache_key: str) -> None:
        strategy = self._strategies.get(cache_key)
        if strategy is None:
            raise CacheError(
                f"No recovery strategy found for cache key: {cache_key}",
                type=CacheErrorType.CACHE_CORRUPTION,
                severity=CacheErrorSeverity.CRITICAL,
                operation="recover_cache",
                feature=self.feature,
                metadata={"cache_key": cache_key},
            )

        try:
            result = strategy()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            raise CacheError(
                f"Failed to recover cache for key: {cache_key}",
                type=CacheErrorType.CACHE_CORRUPTION,
                severity=CacheErrorSeverity.CRITICAL,
                operation="recover_cache",
                feature=self.feature,
                metadata={"cache_key": cache_key},
                original_error=e,
            ) from e

        logger.info(
            "[Recovery] recovered | feature=%s key=%s",
            self.feature,
            cache_key,
            extra={"event": "recovery.recovered", "feature": self.feature},
        )

    async def perform_auto_recovery(self) -> RecoveryReport:
        """Check integrity, then recover each corrupted key independently."""
        report = RecoveryReport()
        for cache_key in await self.check_cache_integrity():
            try:
                await self.recover_cache(cache_key)
            except CacheError as e:
                logger.error(
                    "[Recovery] recovery failed | feature=%s key=%s | error=%s",
                    self.feature,
                    cache_key,
                    e,
                    extra={"event": "recovery.failed", "feature": self.feature},
                )
                report.failed.append(cache_key)
            else:
                report.recovered.append(cache_key)
        return report
