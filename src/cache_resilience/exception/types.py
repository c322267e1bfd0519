# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache error taxonomy.
"""

from __future__ import annotations

from enum import Enum


class CacheErrorType(str, Enum):
    """Cache error type."""

    # Retryable by default
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Not retryable by default
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    CACHE_CORRUPTION = "CACHE_CORRUPTION"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class CacheErrorSeverity(str, Enum):
    """Cache error severity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


RETRYABLE_BY_DEFAULT: frozenset[CacheErrorType] = frozenset(
    {
        CacheErrorType.NETWORK_ERROR,
        CacheErrorType.TIMEOUT_ERROR,
        CacheErrorType.CONCURRENT_MODIFICATION,
    }
)


def is_retryable_by_default(error_type: CacheErrorType) -> bool:
    return error_type in RETRYABLE_BY_DEFAULT
