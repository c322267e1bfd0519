# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""Unified exports for the cache error model."""

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.circuit_breaker import CircuitBreakerError, CircuitState
from cache_resilience.exception.classifier import ErrorClassifier
from cache_resilience.exception.mapper import CacheErrorMapper
from cache_resilience.exception.types import (
    CacheErrorSeverity,
    CacheErrorType,
    is_retryable_by_default,
)

__all__ = [
    "CacheError",
    "CacheErrorType",
    "CacheErrorSeverity",
    "CircuitBreakerError",
    "CircuitState",
    "ErrorClassifier",
    "CacheErrorMapper",
    "is_retryable_by_default",
]
