# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache error base type.
"""

from __future__ import annotations

import time
from typing import Any

from cache_resilience.exception.types import (
    CacheErrorSeverity,
    CacheErrorType,
    is_retryable_by_default,
)


class CacheError(Exception):
    """
    Structured failure of a cache operation.

    `type`, `severity`, `retryable` and `timestamp` are fixed at construction.
    `timestamp` is epoch milliseconds.
    """

    def __init__(
        self,
        message: str,
        *,
        type: CacheErrorType,
        severity: CacheErrorSeverity,
        operation: str,
        feature: str,
        user_id: str | None = None,
        item_id: int | str | None = None,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self._type = CacheErrorType(type)
        self._severity = CacheErrorSeverity(severity)
        self._retryable = is_retryable_by_default(self._type) if retryable is None else bool(retryable)
        self._timestamp = int(time.time() * 1000)
        self.operation = operation
        self.feature = feature
        self.user_id = user_id
        self.item_id = item_id
        self.metadata = metadata
        self.original_error = original_error
        if original_error is not None:
            self.__cause__ = original_error

    @property
    def message(self) -> str:
        return str(self)

    @property
    def type(self) -> CacheErrorType:
        return self._type

    @property
    def severity(self) -> CacheErrorSeverity:
        return self._severity

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def timestamp(self) -> int:
        return self._timestamp

    def to_dict(self) -> dict[str, Any]:
        """Plain record for logging/reporting; the wrapped error is reduced to its message."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "type": self._type.value,
            "severity": self._severity.value,
            "operation": self.operation,
            "feature": self.feature,
            "user_id": self.user_id,
            "item_id": self.item_id,
            "timestamp": self._timestamp,
            "retryable": self._retryable,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "original_error": str(self.original_error) if self.original_error is not None else None,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(type={self._type.value}, severity={self._severity.value}, "
            f"feature={self.feature!r}, operation={self.operation!r}, message={self.message!r})"
        )
