# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache integration layer.

Wraps an item store so every operation surfaces a classified CacheError, and
wires a corruption check plus recovery strategy for the store into the error
manager.

Example:
```python
manager = CacheErrorManager()
cache = ErrorHandledCache(store, "equipment", manager, validate_item=validate_equipment)

cache.call("add_item", "user-1", {"id": 7, "name": "Laptop"})
await cache.call_async("replace_all_items", "user-1", [])
```
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, Field

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.classifier import ErrorClassifier
from cache_resilience.exception.mapper import CacheErrorMapper
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType
from cache_resilience.log import bind_log_context, error_extra
from cache_resilience.resilience.manager import CacheErrorManager, ErrorStatistics
from cache_resilience.resilience.retry import ShouldRetry

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")

ItemValidator = Callable[[Any], Sequence[str]]
Invalidator = Callable[[str], Awaitable[None] | None]

_SCALAR_TYPES = (str, int, float, bool, type(None))


class CacheStore(Protocol):
    """Item store consumed by ErrorHandledCache."""

    def get_current_items(self, user_id: str) -> list[Any]: ...

    def replace_all_items(self, user_id: str, items: list[Any]) -> None: ...


class ErrorHandlingOptions(BaseModel):
    """Per-cache error handling switches."""

    use_circuit_breaker: bool = True
    use_retry: bool = True
    retry_config: dict[str, Any] | None = Field(
        default=None,
        description="Partial RetryConfig overrides applied on top of the manager defaults",
    )
    enable_corruption_detection: bool = True
    enable_auto_recovery: bool = True


def extract_user_id(args: Sequence[Any]) -> str | None:
    """
    Best-effort user id from positional arguments.

    A string mentioning "user", a mapping/object carrying `user_id`, else the
    first string argument (store methods take the user id first).
    """
    for arg in args:
        if isinstance(arg, str) and "user" in arg:
            return arg
        if isinstance(arg, Mapping) and arg.get("user_id"):
            return arg["user_id"]
        user_id = getattr(arg, "user_id", None)
        if user_id:
            return user_id

    if args and isinstance(args[0], str):
        return args[0]
    return None


def extract_item_id(args: Sequence[Any]) -> int | str | None:
    """Best-effort item id: first int argument, else an `id` on a mapping/object."""
    for arg in args:
        if isinstance(arg, int) and not isinstance(arg, bool):
            return arg
        if isinstance(arg, Mapping) and arg.get("id"):
            return arg["id"]
        item_id = getattr(arg, "id", None)
        if item_id:
            return item_id
    return None


def _sanitize_args(args: Sequence[Any]) -> list[Any]:
    return [arg if isinstance(arg, _SCALAR_TYPES) else "[Object]" for arg in args]


class ErrorHandledCache:
    """Item store wrapper with classified errors and corruption recovery."""

    def __init__(
        self,
        store: CacheStore,
        feature: str,
        manager: CacheErrorManager,
        *,
        validate_item: ItemValidator,
        invalidate: Invalidator | None = None,
        options: ErrorHandlingOptions | None = None,
        custom_retry_logic: ShouldRetry | None = None,
    ) -> None:
        self.store = store
        self.feature = feature or "cache"
        self.manager = manager
        self.options = options or ErrorHandlingOptions()
        self._validate_item = validate_item
        self._invalidate = invalidate
        self._custom_retry_logic = custom_retry_logic
        self._known_users: set[str] = set()

        if self.options.enable_corruption_detection:
            self._setup_corruption_detection()

    @property
    def cache_key(self) -> str:
        return f"{self.feature}-cache"

    # === Operations ===

    def call(self, name: str, *args: Any) -> Any:
        """Run a store method; any failure surfaces as a classified CacheError."""
        try:
            return self._invoke(name, args)
        except CacheError as e:
            logger.error(
                "[Cache:%s] %s failed: %s",
                self.feature,
                name,
                e,
                extra=error_extra("cache.error", e),
            )
            raise

    async def call_async(self, name: str, *args: Any) -> Any:
        """Run a store method through the error manager (retry + breaker)."""
        with bind_log_context(feature=self.feature, operation=name):
            return await self.manager.execute_with_error_handling(
                lambda: self._invoke(name, args),
                operation_name=name,
                feature=self.feature,
                use_circuit_breaker=self.options.use_circuit_breaker,
                use_retry=self.options.use_retry,
                retry_config=self.options.retry_config,
                should_retry=self._custom_retry_logic,
                user_id=extract_user_id(args),
                item_id=extract_item_id(args),
            )

    def _invoke(self, name: str, args: tuple[Any, ...]) -> Any:
        method = getattr(self.store, name)
        user_id = extract_user_id(args)
        if user_id:
            self._known_users.add(user_id)
        try:
            return method(*args)
        except Exception as e:
            raise CacheErrorMapper.from_exception(
                e,
                name,
                self.feature,
                type=ErrorClassifier.classify_operation_error(e, name),
                severity=ErrorClassifier.severity_for(e),
                user_id=user_id,
                item_id=extract_item_id(args),
                metadata={"args": _sanitize_args(args)},
            ) from e

    # === Integrity ===

    async def validate_cache_integrity(self, user_id: str) -> bool:
        """True when every cached item passes validation."""
        try:
            items = self.store.get_current_items(user_id)
            problems = [problem for item in items for problem in self._validate_item(item)]
        except Exception as e:
            raise CacheErrorMapper.from_exception(
                e,
                "validate_cache_integrity",
                self.feature,
                type=CacheErrorType.CACHE_CORRUPTION,
                severity=CacheErrorSeverity.HIGH,
                user_id=user_id,
            ) from e

        if problems:
            logger.warning(
                "Cache integrity issues found for %s: %s",
                self.feature,
                problems,
                extra={
                    "event": "cache.integrity_failed",
                    "feature": self.feature,
                    "user_id": user_id,
                    "data": {"problems": problems},
                },
            )
            return False
        return True

    async def recover_from_corruption(self, user_id: str) -> None:
        """Clear the user's items and ask the owner to refetch them."""
        if not self.options.enable_auto_recovery:
            raise CacheError(
                "Auto-recovery is disabled for this cache",
                type=CacheErrorType.CACHE_CORRUPTION,
                severity=CacheErrorSeverity.HIGH,
                operation="recover_from_corruption",
                feature=self.feature,
                user_id=user_id,
            )

        try:
            self.store.replace_all_items(user_id, [])
            if self._invalidate is not None:
                result = self._invalidate(user_id)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            raise CacheErrorMapper.from_exception(
                e,
                "recover_from_corruption",
                self.feature,
                type=CacheErrorType.CACHE_CORRUPTION,
                severity=CacheErrorSeverity.CRITICAL,
                user_id=user_id,
            ) from e

        logger.info(
            "Cache recovery completed for %s user %s",
            self.feature,
            user_id,
            extra={"event": "recovery.recovered", "feature": self.feature, "user_id": user_id},
        )

    def _setup_corruption_detection(self) -> None:
        self.manager.register_corruption_check(self.feature, self.cache_key, self._items_look_healthy)
        self.manager.register_recovery_strategy(self.feature, self.cache_key, self._recover_known_users)

    def _items_look_healthy(self) -> bool:
        for user_id in self._known_users:
            items = self.store.get_current_items(user_id)
            if not isinstance(items, list):
                return False
            if any(self._validate_item(item) for item in items):
                return False
        return True

    async def _recover_known_users(self) -> None:
        for user_id in sorted(self._known_users):
            await self.recover_from_corruption(user_id)

    # === Administration ===

    def get_error_statistics(self) -> ErrorStatistics:
        return self.manager.get_error_statistics()

    def reset_error_handling(self) -> None:
        self.manager.clear_error_log()
        self.manager.reset_circuit_breakers()


def with_mutation_error_handling(
    mutation_fn: Callable[[V], Awaitable[T]],
    operation: str,
    feature: str,
    manager: CacheErrorManager,
    options: ErrorHandlingOptions | None = None,
    on_error: Callable[[CacheError, V], None] | None = None,
    custom_retry_logic: ShouldRetry | None = None,
) -> Callable[[V], Awaitable[T]]:
    """Route a mutation through the error manager; `on_error` sees the CacheError before it propagates."""
    opts = options or ErrorHandlingOptions()

    async def run(variables: V) -> T:
        try:
            return await manager.execute_with_error_handling(
                lambda: mutation_fn(variables),
                operation_name=operation,
                feature=feature,
                use_circuit_breaker=opts.use_circuit_breaker,
                use_retry=opts.use_retry,
                retry_config=opts.retry_config,
                should_retry=custom_retry_logic,
            )
        except CacheError as e:
            if on_error is not None:
                on_error(e, variables)
            raise

    return run
