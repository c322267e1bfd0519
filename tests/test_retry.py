"""
Retry executor tests.

Module under test: cache_resilience.resilience.retry
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from cache_resilience.exception import CacheError, CacheErrorSeverity, CacheErrorType
from cache_resilience.resilience.config import RetryConfig
from cache_resilience.resilience.retry import (
    RETRY_PRESETS,
    RetryManager,
    calculate_retry_delay,
    retry_preset,
    with_retry,
    with_retry_sync,
)


@pytest.fixture
def no_sleep():
    with patch.object(RetryManager, "_sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestCalculateRetryDelay:
    """Backoff delay calculation."""

    def test_exponential_growth_without_jitter(self):
        config = RetryConfig(base_delay_ms=1000, backoff_multiplier=2, jitter=False)

        assert calculate_retry_delay(config, 1) == 1.0
        assert calculate_retry_delay(config, 2) == 2.0
        assert calculate_retry_delay(config, 3) == 4.0

    def test_delay_is_capped(self):
        config = RetryConfig(base_delay_ms=1000, max_delay_ms=5000, jitter=False)

        assert calculate_retry_delay(config, 10) == 5.0

    def test_base_delay_above_max_is_capped(self):
        config = RetryConfig(base_delay_ms=5000, max_delay_ms=2000, jitter=False)

        assert calculate_retry_delay(config, 1) == 2.0

    def test_jitter_stays_within_half_to_full_delay(self):
        config = RetryConfig(base_delay_ms=1000, jitter=True)

        for _ in range(50):
            assert 0.5 <= calculate_retry_delay(config, 1) <= 1.0


class TestRetryManager:
    """RetryManager.execute_with_retry tests."""

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, no_sleep):
        config = RetryConfig(max_attempts=3, base_delay_ms=100, backoff_multiplier=2, jitter=False)
        operation = AsyncMock(side_effect=[ConnectionError("down"), ConnectionError("down"), "third"])

        result = await RetryManager(config).execute_with_retry(operation, "add_item", "equipment")

        assert result == "third"
        assert operation.call_count == 3
        assert no_sleep.await_args_list == [call(0.1), call(0.2)]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_cache_error(self, no_sleep):
        operation = AsyncMock(side_effect=TimeoutError("request timeout"))

        with pytest.raises(CacheError) as exc_info:
            await RetryManager(RetryConfig(max_attempts=3)).execute_with_retry(operation, "add_item", "equipment")

        error = exc_info.value
        assert operation.call_count == 3
        assert error.metadata == {"attempts": 3, "max_attempts": 3}
        assert error.type == CacheErrorType.TIMEOUT_ERROR
        assert error.severity == CacheErrorSeverity.HIGH
        assert error.message == "Operation failed after 3 attempts: request timeout"
        assert isinstance(error.original_error, TimeoutError)

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_fast(self, no_sleep):
        operation = AsyncMock(side_effect=ValueError("bad value"))

        with pytest.raises(CacheError) as exc_info:
            await RetryManager().execute_with_retry(operation, "add_item", "equipment")

        assert operation.call_count == 1
        assert exc_info.value.metadata["attempts"] == 1
        assert exc_info.value.type == CacheErrorType.UNKNOWN_ERROR
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_error_is_raised_unchanged(self, no_sleep):
        original = CacheError(
            "permission denied",
            type=CacheErrorType.PERMISSION_ERROR,
            severity=CacheErrorSeverity.MEDIUM,
            operation="add_item",
            feature="equipment",
        )
        operation = AsyncMock(side_effect=original)

        with pytest.raises(CacheError) as exc_info:
            await RetryManager().execute_with_retry(operation, "add_item", "equipment")

        assert exc_info.value is original
        assert operation.call_count == 1

    @pytest.mark.asyncio
    async def test_custom_predicate_is_authoritative(self, no_sleep):
        operation = AsyncMock(side_effect=ConnectionError("network down"))

        with pytest.raises(CacheError):
            await RetryManager().execute_with_retry(
                operation, "add_item", "equipment", should_retry=lambda e: False
            )

        assert operation.call_count == 1

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, no_sleep):
        error = ConnectionError("network down")
        operation = AsyncMock(side_effect=[error, error, "ok"])
        on_retry = MagicMock()

        await RetryManager().execute_with_retry(operation, "add_item", "equipment", on_retry=on_retry)

        assert on_retry.call_args_list == [call(1, error), call(2, error)]

    @pytest.mark.asyncio
    async def test_accepts_plain_callables(self, no_sleep):
        assert await RetryManager().execute_with_retry(lambda: 5, "get_item", "equipment") == 5

    @pytest.mark.asyncio
    async def test_with_retry_decorator(self, no_sleep):
        attempts = {"count": 0}

        @with_retry(RetryManager(), "save", "equipment")
        async def save(value: str) -> str:
            attempts["count"] += 1
            if attempts["count"] < 2:
                raise ConnectionError("flaky")
            return value

        assert await save("saved") == "saved"
        assert attempts["count"] == 2


def test_sync_retry() -> None:
    config = RetryConfig(max_attempts=3, base_delay_ms=0, max_delay_ms=0)
    operation = MagicMock(side_effect=[TimeoutError("timeout"), "ok"])

    result = RetryManager(config).execute_with_retry_sync(operation, "get_item", "equipment")

    assert result == "ok"
    assert operation.call_count == 2


def test_sync_retry_exhaustion() -> None:
    config = RetryConfig(max_attempts=2, base_delay_ms=0, max_delay_ms=0)
    operation = MagicMock(side_effect=ConnectionError("fetch failed"))

    with pytest.raises(CacheError) as exc_info:
        RetryManager(config).execute_with_retry_sync(operation, "get_item", "equipment")

    assert exc_info.value.type == CacheErrorType.NETWORK_ERROR
    assert exc_info.value.metadata["attempts"] == 2


def test_with_retry_sync_decorator() -> None:
    manager = RetryManager(RetryConfig(max_attempts=3, base_delay_ms=0, max_delay_ms=0))
    attempts = {"count": 0}

    @with_retry_sync(manager, "write_item", "equipment")
    def write_item(item_id: int) -> int:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise ConnectionError("connection reset")
        return item_id

    assert write_item(7) == 7
    assert attempts["count"] == 3
    assert write_item.__name__ == "write_item"


def test_with_retry_sync_decorator_surfaces_cache_error() -> None:
    manager = RetryManager(RetryConfig(max_attempts=2, base_delay_ms=0, max_delay_ms=0))

    @with_retry_sync(manager, "write_item", "equipment", should_retry=lambda e: False)
    def write_item() -> None:
        raise ConnectionError("network down")

    with pytest.raises(CacheError) as exc_info:
        write_item()

    assert exc_info.value.operation == "write_item"
    assert exc_info.value.metadata["attempts"] == 1


class TestRetryPresets:
    """Named retry presets and their predicates."""

    def test_preset_configs(self):
        assert set(RETRY_PRESETS) == {"api", "cache", "mutation"}
        assert RETRY_PRESETS["api"].config.max_attempts == 3
        assert RETRY_PRESETS["cache"].config.max_attempts == 2
        assert RETRY_PRESETS["cache"].config.jitter is False
        assert RETRY_PRESETS["mutation"].config.max_attempts == 2
        assert RETRY_PRESETS["mutation"].config.backoff_multiplier == 1.5

    def test_api_predicate_skips_client_errors(self):
        should_retry = RETRY_PRESETS["api"].should_retry

        assert should_retry(RuntimeError("400 Bad Request"), 1) is False
        assert should_retry(RuntimeError("401 Unauthorized"), 1) is False
        assert should_retry(RuntimeError("500 Internal Server Error"), 1) is True

    def test_cache_predicate_skips_validation_and_type_errors(self):
        should_retry = RETRY_PRESETS["cache"].should_retry

        assert should_retry(ValueError("validation failed"), 1) is False
        assert should_retry(TypeError("bad item"), 1) is False
        assert should_retry(ConnectionError("network error"), 1) is True

    def test_mutation_predicate_retries_once(self):
        should_retry = RETRY_PRESETS["mutation"].should_retry

        assert should_retry(ConnectionError("network error"), 1) is True
        assert should_retry(ConnectionError("network error"), 2) is False
        assert should_retry(RecursionError("Maximum call stack size exceeded"), 1) is False

    def test_unknown_preset(self):
        with pytest.raises(KeyError):
            retry_preset("bulk")

    def test_overrides_copy_the_config(self):
        preset = retry_preset("cache", base_delay_ms=0)

        assert preset.config.base_delay_ms == 0
        assert RETRY_PRESETS["cache"].config.base_delay_ms == 500
        assert preset.should_retry is RETRY_PRESETS["cache"].should_retry

    @pytest.mark.asyncio
    async def test_predicate_receives_attempt_number(self, no_sleep):
        preset = retry_preset("mutation", max_attempts=3)
        operation = AsyncMock(side_effect=ConnectionError("network error"))

        with pytest.raises(CacheError):
            await preset.manager().execute_with_retry(
                operation, "update_item", "equipment", should_retry=preset.should_retry
            )

        # retried after attempt 1 only, although three attempts are allowed
        assert operation.call_count == 2

    def test_sync_preset_stops_on_validation_error(self):
        preset = retry_preset("cache", base_delay_ms=0)
        operation = MagicMock(side_effect=ValueError("validation failed"))

        with pytest.raises(CacheError):
            preset.manager().execute_with_retry_sync(
                operation, "add_item", "equipment", should_retry=preset.should_retry
            )

        assert operation.call_count == 1
