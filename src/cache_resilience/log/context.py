"""
Log context for cache operations.

Context fields are bound per task with `bind_log_context` and stamped onto
every record by `ContextFilter`, so nested calls (manager -> breaker -> retry)
log under the feature/operation of the outermost caller.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any

CONTEXT_FIELDS: tuple[str, ...] = (
    "feature",
    "operation",
    "user_id",
    "item_id",
    "component",
    "request_id",
)

# Record attributes the format string needs even when nobody set them
_RECORD_DEFAULTS: Mapping[str, Any] = MappingProxyType(
    {"event": "log", "data": None, "error_type": None, "error": None}
)

_EMPTY: Mapping[str, Any] = MappingProxyType({})

_log_context: ContextVar[Mapping[str, Any]] = ContextVar("cache_resilience_log_context", default=_EMPTY)


def _known_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in fields.items() if key in CONTEXT_FIELDS}


def get_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


def set_log_context(**fields: Any) -> None:
    """Replace the current context; unknown keys are dropped."""
    _log_context.set(MappingProxyType(_known_fields(fields)))


def clear_log_context() -> None:
    _log_context.set(_EMPTY)


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Layer fields over the current context for the duration of the block."""
    merged = {**_log_context.get(), **_known_fields(fields)}
    token = _log_context.set(MappingProxyType(merged))
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """Stamp context fields and structured defaults onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _log_context.get()
        for key in CONTEXT_FIELDS:
            if key not in record.__dict__:
                setattr(record, key, bound.get(key))

        for key, default in _RECORD_DEFAULTS.items():
            record.__dict__.setdefault(key, default)

        if record.data is not None and not isinstance(record.data, dict):
            record.data = {"value": record.data}

        if record.exc_info and record.exc_info[0] is not None:
            record.error_type = record.error_type or record.exc_info[0].__name__
            record.error = record.error or str(record.exc_info[1])

        return True


def error_extra(event: str, error: Any) -> dict[str, Any]:
    """
    Logging `extra` for a failed cache operation.

    Identifiers the error does not carry are left to the bound context.
    """
    extra: dict[str, Any] = {"event": event}
    extra.update(
        {key: getattr(error, key) for key in ("feature", "operation", "user_id", "item_id")
         if getattr(error, key, None) is not None}
    )
    error_type = getattr(error, "type", None)
    extra["error_type"] = getattr(error_type, "value", type(error).__name__)
    extra["data"] = error.to_dict() if hasattr(error, "to_dict") else {"message": str(error)}
    return extra
