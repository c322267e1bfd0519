# -*- coding: utf-8 -*-
# @author Sunny
# @date 2026-10-18
"""Structured logging for cache operations."""

from cache_resilience.log.config import CacheLogFormatter, setup_logging
from cache_resilience.log.context import (
    ContextFilter,
    bind_log_context,
    clear_log_context,
    error_extra,
    get_log_context,
    set_log_context,
)

__all__ = [
    "CacheLogFormatter",
    "ContextFilter",
    "setup_logging",
    "bind_log_context",
    "clear_log_context",
    "error_extra",
    "get_log_context",
    "set_log_context",
]
