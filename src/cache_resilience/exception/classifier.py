# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""
Cache error classifier.

Best-effort keyword matching on exception messages. Callers that need a
precise type should construct a CacheError with an explicit `type`.

The retry classifier and the operation classifier are deliberately separate
tables: they do not share precedence and may disagree on the same input.
"""

from __future__ import annotations

from cache_resilience.exception.base import CacheError
from cache_resilience.exception.types import CacheErrorSeverity, CacheErrorType

_ABORT_ERROR_NAMES = frozenset({"AbortError"})


def _message_of(error: BaseException) -> str:
    return str(error).lower()


def _contains_any(message: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in message for keyword in keywords)


class ErrorClassifier:
    """
    Cache error classifier.

    Decides retry eligibility, error type and severity from an exception.
    """

    # Retry eligibility for errors that are not CacheError
    RETRY_ELIGIBLE_KEYWORDS = ("network", "timeout", "connection", "fetch", "failed")

    # ErrorHandlingUtils-style predicate, without the generic "failed"
    RETRYABLE_KEYWORDS = ("network", "timeout", "connection", "fetch")

    # Retry executor classification, first match wins
    RETRY_FAILURE_RULES: tuple[tuple[tuple[str, ...], CacheErrorType], ...] = (
        (("network", "fetch"), CacheErrorType.NETWORK_ERROR),
        (("timeout",), CacheErrorType.TIMEOUT_ERROR),
        (("permission", "unauthorized"), CacheErrorType.PERMISSION_ERROR),
        (("validation", "invalid"), CacheErrorType.VALIDATION_ERROR),
        (("quota", "limit"), CacheErrorType.QUOTA_EXCEEDED),
    )

    # Cache operation classification, first match wins
    OPERATION_RULES: tuple[tuple[tuple[str, ...], CacheErrorType], ...] = (
        (("network", "fetch", "connection"), CacheErrorType.NETWORK_ERROR),
        (("timeout", "abort"), CacheErrorType.TIMEOUT_ERROR),
        (("validation", "invalid", "required"), CacheErrorType.VALIDATION_ERROR),
        (("permission", "unauthorized", "forbidden"), CacheErrorType.PERMISSION_ERROR),
        (("quota", "limit", "exceeded"), CacheErrorType.QUOTA_EXCEEDED),
        (("corrupt", "invalid state"), CacheErrorType.CACHE_CORRUPTION),
        (("concurrent", "conflict", "version"), CacheErrorType.CONCURRENT_MODIFICATION),
    )

    SEVERITY_RULES: tuple[tuple[tuple[str, ...], CacheErrorSeverity], ...] = (
        (("critical", "fatal"), CacheErrorSeverity.CRITICAL),
        (("error", "failed"), CacheErrorSeverity.HIGH),
        (("warning", "warn"), CacheErrorSeverity.MEDIUM),
    )

    @classmethod
    def is_retry_eligible(cls, error: BaseException) -> bool:
        """Default retry predicate of the retry executor."""
        if isinstance(error, CacheError):
            return error.retryable

        if isinstance(error, (TimeoutError, ConnectionError)):
            return True

        if type(error).__name__ in _ABORT_ERROR_NAMES:
            return True

        return _contains_any(_message_of(error), cls.RETRY_ELIGIBLE_KEYWORDS)

    @classmethod
    def is_retryable(cls, error: BaseException) -> bool:
        """Lightweight retryability check for collaborators deciding whether to offer a retry."""
        if isinstance(error, CacheError):
            return error.retryable
        return _contains_any(_message_of(error), cls.RETRYABLE_KEYWORDS)

    @classmethod
    def classify_retry_failure(cls, error: BaseException) -> CacheErrorType:
        """Type assigned to an error once the retry executor gives up on it."""
        message = _message_of(error)
        for keywords, error_type in cls.RETRY_FAILURE_RULES:
            if _contains_any(message, keywords):
                return error_type
        return CacheErrorType.UNKNOWN_ERROR

    @classmethod
    def classify_operation_error(cls, error: BaseException, operation: str) -> CacheErrorType:
        """Type assigned to an error raised by a wrapped cache operation."""
        message = _message_of(error)
        validating = "validate" in operation.lower()
        for keywords, error_type in cls.OPERATION_RULES:
            if _contains_any(message, keywords):
                return error_type
            # integrity validation failures count as corruption
            if validating and error_type is CacheErrorType.CACHE_CORRUPTION:
                return error_type
        return CacheErrorType.UNKNOWN_ERROR

    @classmethod
    def severity_for(cls, error: BaseException) -> CacheErrorSeverity:
        """Severity of an error; CacheError keeps its own."""
        if isinstance(error, CacheError):
            return error.severity

        message = _message_of(error)
        for keywords, severity in cls.SEVERITY_RULES:
            if _contains_any(message, keywords):
                return severity
        return CacheErrorSeverity.LOW
