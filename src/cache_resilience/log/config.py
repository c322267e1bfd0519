"""Handler setup for the `cache_resilience` logger tree."""

from __future__ import annotations

import json
import logging
from typing import IO

from cache_resilience.log.context import ContextFilter

ROOT_LOGGER = "cache_resilience"
_HANDLER_MARK = "_cache_resilience_log_handler"

_LINE_FORMAT = (
    "%(asctime)s.%(msecs)03d %(levelname)-5s %(name)s "
    "[%(event)s] feature=%(feature)s operation=%(operation)s "
    "user=%(user_id)s item=%(item_id)s component=%(component)s - %(message)s"
)
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CacheLogFormatter(logging.Formatter):
    """Line formatter that appends the record's `data` payload as compact JSON."""

    def __init__(self) -> None:
        super().__init__(fmt=_LINE_FORMAT, datefmt=_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        data = getattr(record, "data", None)
        if data:
            line = f"{line} data={json.dumps(data, default=str, separators=(',', ':'))}"
        return line


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int = "INFO", *, stream: IO[str] | None = None) -> logging.Logger:
    """
    Configure the package logger; repeated calls only adjust the level.

    Records do not propagate to the root logger once this has run.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    resolved = _resolve_level(level)
    logger.setLevel(resolved)
    logger.propagate = False

    handler = next((h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(CacheLogFormatter())
        handler.addFilter(ContextFilter())
        setattr(handler, _HANDLER_MARK, True)
        logger.addHandler(handler)
    handler.setLevel(resolved)
    return logger
