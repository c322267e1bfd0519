# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Exception mapper.

Normalizes arbitrary exceptions raised by cache operations into CacheError.
"""

from __future__ import annotations

from typing import Any

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType


def _extract_message(error: BaseException) -> str:
    message = str(error)
    if message:
        return message
    return error.__class__.__name__


class CacheErrorMapper:
    """Map external exceptions to CacheError."""

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        operation: str,
        feature: str,
        *,
        type: CacheErrorType | None = None,
        severity: CacheErrorSeverity | None = None,
        user_id: str | None = None,
        item_id: int | str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CacheError:
        """Return `error` unchanged if it is already a CacheError, otherwise wrap it."""
        if isinstance(error, CacheError):
            return error

        return CacheError(
            _extract_message(error),
            type=type or CacheErrorType.UNKNOWN_ERROR,
            severity=severity or CacheErrorSeverity.MEDIUM,
            operation=operation,
            feature=feature,
            user_id=user_id,
            item_id=item_id,
            metadata=metadata,
            original_error=error,
        )

    @classmethod
    def unexpected(cls, error: BaseException, operation: str, feature: str, **context: Any) -> CacheError:
        """Wrap an error that escaped every other classification step."""
        return cls.from_exception(
            error,
            operation,
            feature,
            type=CacheErrorType.UNKNOWN_ERROR,
            severity=CacheErrorSeverity.HIGH,
            **context,
        )
