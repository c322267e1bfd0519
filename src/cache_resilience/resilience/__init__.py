# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Resilience primitives: circuit breakers, retry, recovery and the error manager.
"""

from cache_resilience.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerStatus
from cache_resilience.resilience.config import (
    CircuitBreakerConfig,
    ErrorLogConfig,
    RetryConfig,
    StateGuardConfig,
)
from cache_resilience.resilience.manager import CacheErrorManager, ErrorStatistics
from cache_resilience.resilience.recovery import CacheRecoveryManager, RecoveryReport
from cache_resilience.resilience.retry import (
    RETRY_PRESETS,
    RetryManager,
    RetryPreset,
    calculate_retry_delay,
    retry_preset,
    with_retry,
    with_retry_sync,
)
from cache_resilience.resilience.state_guard import (
    BatchUpdateResult,
    StateUpdateGuard,
    StateUpdateResult,
    execute_protected_batch,
    protect_state_setter,
)
from cache_resilience.resilience.windowed_breaker import (
    BREAKER_PRESETS,
    WindowedBreakerConfig,
    WindowedCircuitBreaker,
    preset,
    with_circuit_breaker,
    with_circuit_breaker_sync,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerStatus",
    "CircuitBreakerConfig",
    "ErrorLogConfig",
    "RetryConfig",
    "StateGuardConfig",
    "CacheErrorManager",
    "ErrorStatistics",
    "CacheRecoveryManager",
    "RecoveryReport",
    "RetryManager",
    "calculate_retry_delay",
    "with_retry",
    "with_retry_sync",
    "RETRY_PRESETS",
    "RetryPreset",
    "retry_preset",
    "BatchUpdateResult",
    "StateUpdateGuard",
    "StateUpdateResult",
    "execute_protected_batch",
    "protect_state_setter",
    "BREAKER_PRESETS",
    "WindowedBreakerConfig",
    "WindowedCircuitBreaker",
    "preset",
    "with_circuit_breaker",
    "with_circuit_breaker_sync",
]
