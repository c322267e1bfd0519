"""
Cache integration layer tests.

Module under test: cache_resilience.integration
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from cache_resilience.exception import CacheError, CacheErrorSeverity, CacheErrorType
from cache_resilience.integration import (
    ErrorHandledCache,
    ErrorHandlingOptions,
    extract_item_id,
    extract_user_id,
    with_mutation_error_handling,
)
from cache_resilience.resilience.manager import CacheErrorManager


class InMemoryStore:
    """Minimal item store keyed by user id."""

    def __init__(self) -> None:
        self.items: dict[str, list[dict]] = {}
        self.sync_calls = 0

    def get_current_items(self, user_id: str) -> list[dict]:
        return list(self.items.get(user_id, []))

    def replace_all_items(self, user_id: str, items: list[dict]) -> None:
        self.items[user_id] = list(items)

    def add_item(self, user_id: str, item: dict) -> None:
        if "name" not in item:
            raise ValueError("name is required")
        self.items.setdefault(user_id, []).append(item)

    def sync_remote(self, user_id: str) -> None:
        self.sync_calls += 1
        raise ConnectionError("network unreachable")


class BrokenStore(InMemoryStore):
    def get_current_items(self, user_id: str) -> list[dict]:
        raise RuntimeError("store unavailable")


def validate_item(item: dict) -> list[str]:
    return [] if item.get("name") else ["missing name"]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def manager(resilience_config) -> CacheErrorManager:
    return CacheErrorManager(resilience_config)


@pytest.fixture
def cache(store, manager) -> ErrorHandledCache:
    return ErrorHandledCache(store, "equipment", manager, validate_item=validate_item)


class TestErrorHandledCache:
    """ErrorHandledCache tests."""

    def test_call_passes_through(self, cache, store):
        cache.call("add_item", "user-1", {"id": 7, "name": "Laptop"})

        assert store.items["user-1"] == [{"id": 7, "name": "Laptop"}]
        assert cache.call("get_current_items", "user-1") == [{"id": 7, "name": "Laptop"}]

    def test_call_classifies_failures(self, cache):
        with pytest.raises(CacheError) as exc_info:
            cache.call("add_item", "user-1", {"id": 8})

        error = exc_info.value
        assert error.type == CacheErrorType.VALIDATION_ERROR
        assert error.severity == CacheErrorSeverity.LOW
        assert error.operation == "add_item"
        assert error.feature == "equipment"
        assert error.user_id == "user-1"
        assert error.item_id == 8
        assert error.metadata == {"args": ["user-1", "[Object]"]}
        assert error.retryable is False
        assert isinstance(error.original_error, ValueError)

    @pytest.mark.asyncio
    async def test_call_async_retries_transient_failures(self, cache, store, manager):
        with pytest.raises(CacheError) as exc_info:
            await cache.call_async("sync_remote", "user-1")

        assert store.sync_calls == 3
        assert exc_info.value.type == CacheErrorType.NETWORK_ERROR
        assert manager.get_error_statistics().total_errors == 1

    @pytest.mark.asyncio
    async def test_call_async_honours_options(self, store, manager):
        cache = ErrorHandledCache(
            store,
            "equipment",
            manager,
            validate_item=validate_item,
            options=ErrorHandlingOptions(use_retry=False, use_circuit_breaker=False),
        )

        with pytest.raises(CacheError):
            await cache.call_async("sync_remote", "user-1")

        assert store.sync_calls == 1
        assert manager.get_circuit_breaker_statuses() == {}

    @pytest.mark.asyncio
    async def test_custom_retry_logic(self, store, manager):
        cache = ErrorHandledCache(
            store,
            "equipment",
            manager,
            validate_item=validate_item,
            custom_retry_logic=lambda e: False,
        )

        with pytest.raises(CacheError):
            await cache.call_async("sync_remote", "user-1")

        assert store.sync_calls == 1

    @pytest.mark.asyncio
    async def test_validate_cache_integrity(self, cache, store):
        store.replace_all_items("user-1", [{"id": 1, "name": "Desk"}])
        assert await cache.validate_cache_integrity("user-1") is True

        store.replace_all_items("user-1", [{"id": 1, "name": "Desk"}, {"id": 2}])
        assert await cache.validate_cache_integrity("user-1") is False

    @pytest.mark.asyncio
    async def test_validate_cache_integrity_wraps_store_errors(self, manager):
        cache = ErrorHandledCache(BrokenStore(), "equipment", manager, validate_item=validate_item)

        with pytest.raises(CacheError) as exc_info:
            await cache.validate_cache_integrity("user-1")

        assert exc_info.value.type == CacheErrorType.CACHE_CORRUPTION
        assert exc_info.value.severity == CacheErrorSeverity.HIGH

    @pytest.mark.asyncio
    async def test_recover_from_corruption(self, store, manager):
        invalidate = AsyncMock()
        cache = ErrorHandledCache(
            store, "equipment", manager, validate_item=validate_item, invalidate=invalidate
        )
        store.replace_all_items("user-1", [{"id": 2}])

        await cache.recover_from_corruption("user-1")

        assert store.items["user-1"] == []
        invalidate.assert_awaited_once_with("user-1")

    @pytest.mark.asyncio
    async def test_recover_failure_is_critical(self, store, manager):
        cache = ErrorHandledCache(
            store,
            "equipment",
            manager,
            validate_item=validate_item,
            invalidate=MagicMock(side_effect=RuntimeError("refetch failed")),
        )

        with pytest.raises(CacheError) as exc_info:
            await cache.recover_from_corruption("user-1")

        assert exc_info.value.severity == CacheErrorSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_recover_disabled(self, store, manager):
        cache = ErrorHandledCache(
            store,
            "equipment",
            manager,
            validate_item=validate_item,
            options=ErrorHandlingOptions(enable_auto_recovery=False),
        )

        with pytest.raises(CacheError) as exc_info:
            await cache.recover_from_corruption("user-1")

        assert exc_info.value.type == CacheErrorType.CACHE_CORRUPTION
        assert exc_info.value.severity == CacheErrorSeverity.HIGH

    @pytest.mark.asyncio
    async def test_auto_recovery_through_manager(self, cache, store, manager):
        cache.call("add_item", "user-1", {"id": 1, "name": "Desk"})
        store.items["user-1"].append({"id": 2})

        report = await manager.get_recovery_manager("equipment").perform_auto_recovery()

        assert cache.cache_key == "equipment-cache"
        assert report.recovered == ["equipment-cache"]
        assert store.items["user-1"] == []

    @pytest.mark.asyncio
    async def test_detection_disabled_registers_nothing(self, store, manager):
        ErrorHandledCache(
            store,
            "equipment",
            manager,
            validate_item=validate_item,
            options=ErrorHandlingOptions(enable_corruption_detection=False),
        )

        report = await manager.get_recovery_manager("equipment").perform_auto_recovery()

        assert report.recovered == []
        assert report.failed == []

    @pytest.mark.asyncio
    async def test_reset_error_handling(self, cache, manager):
        with pytest.raises(CacheError):
            await cache.call_async("sync_remote", "user-1")

        cache.reset_error_handling()

        assert cache.get_error_statistics().total_errors == 0
        assert manager.get_circuit_breaker_statuses() == {}


class TestArgumentExtraction:
    """User and item id heuristics."""

    def test_user_id(self):
        assert extract_user_id([42, "user-9"]) == "user-9"
        assert extract_user_id([{"user_id": "u1"}]) == "u1"
        assert extract_user_id([SimpleNamespace(user_id="u2")]) == "u2"
        assert extract_user_id(["abc", 3]) == "abc"
        assert extract_user_id([3]) is None

    def test_item_id(self):
        assert extract_item_id(["user-1", 5]) == 5
        assert extract_item_id(["user-1", {"id": "tmp-1"}]) == "tmp-1"
        assert extract_item_id([SimpleNamespace(id=11)]) == 11
        assert extract_item_id([True, "x"]) is None


class TestMutationErrorHandling:
    """with_mutation_error_handling tests."""

    @pytest.mark.asyncio
    async def test_success(self, manager):
        mutation = with_mutation_error_handling(
            AsyncMock(return_value={"id": 3}), "add_item", "equipment", manager
        )

        assert await mutation({"name": "Chair"}) == {"id": 3}

    @pytest.mark.asyncio
    async def test_failure_calls_on_error(self, manager):
        on_error = MagicMock()
        mutation = with_mutation_error_handling(
            AsyncMock(side_effect=PermissionError("unauthorized")),
            "add_item",
            "equipment",
            manager,
            options=ErrorHandlingOptions(use_retry=False),
            on_error=on_error,
        )

        with pytest.raises(CacheError) as exc_info:
            await mutation({"name": "Chair"})

        on_error.assert_called_once_with(exc_info.value, {"name": "Chair"})
        assert manager.get_error_statistics().total_errors == 1
