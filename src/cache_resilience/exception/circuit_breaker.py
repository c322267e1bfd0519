# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""Circuit breaker rejection."""

from __future__ import annotations

from enum import Enum
from typing import Any

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreakerError(CacheError):
    """Raised instead of invoking an operation while its breaker rejects calls."""

    def __init__(
        self,
        message: str,
        *,
        circuit_state: CircuitState,
        operation: str,
        feature: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            type=CacheErrorType.NETWORK_ERROR,
            severity=CacheErrorSeverity.HIGH,
            operation=operation,
            feature=feature,
            retryable=False,
            metadata=metadata,
        )
        self.circuit_state = circuit_state
