# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache Resilience - error handling for client-side cache operations.

Quick start:
```python
from cache_resilience import CacheErrorManager, CacheError, configure_resilience

configure_resilience(retry={"max_attempts": 3, "base_delay_ms": 200})
manager = CacheErrorManager()

try:
    await manager.execute_with_error_handling(
        lambda: api.add_item(user_id, item),
        operation_name="add_item",
        feature="equipment",
    )
except CacheError as e:
    if e.retryable:
        ...

stats = manager.get_error_statistics()
```

Further building blocks are available from submodules:
- Windowed breaker: `from cache_resilience.resilience import WindowedCircuitBreaker, preset`
- State updates: `from cache_resilience.resilience import StateUpdateGuard`
- Store wrapper: `from cache_resilience.integration import ErrorHandledCache`
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Config
    "ResilienceConfig",
    "configure_resilience",
    # Errors
    "CacheError",
    "CacheErrorType",
    "CacheErrorSeverity",
    "CircuitBreakerError",
    "CircuitState",
    # Core classes
    "CacheErrorManager",
    "CircuitBreaker",
    "RetryManager",
    "CacheRecoveryManager",
    "StateUpdateGuard",
]

_EXPORTS: dict[str, tuple[str, str]] = {
    "ResilienceConfig": ("cache_resilience.config", "ResilienceConfig"),
    "configure_resilience": ("cache_resilience.config", "configure_resilience"),
    "CacheError": ("cache_resilience.exception", "CacheError"),
    "CacheErrorType": ("cache_resilience.exception", "CacheErrorType"),
    "CacheErrorSeverity": ("cache_resilience.exception", "CacheErrorSeverity"),
    "CircuitBreakerError": ("cache_resilience.exception", "CircuitBreakerError"),
    "CircuitState": ("cache_resilience.exception", "CircuitState"),
    "CacheErrorManager": ("cache_resilience.resilience.manager", "CacheErrorManager"),
    "CircuitBreaker": ("cache_resilience.resilience.circuit_breaker", "CircuitBreaker"),
    "RetryManager": ("cache_resilience.resilience.retry", "RetryManager"),
    "CacheRecoveryManager": ("cache_resilience.resilience.recovery", "CacheRecoveryManager"),
    "StateUpdateGuard": ("cache_resilience.resilience.state_guard", "StateUpdateGuard"),
}


def __getattr__(name: str) -> Any:
    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module_name, attr_name = target
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()).union(__all__))
