"""
Settings for the resilience layer.

Values are resolved from, in order of precedence: a toml/yaml/json config
file, CACHE_RESILIENCE_* environment variables, keyword arguments, and the
section defaults.

Config file example (cache_resilience.toml):
```toml
log_level = "DEBUG"

[retry]
max_attempts = 5
base_delay_ms = 200

[circuit_breaker]
failure_threshold = 5
minimum_requests = 10

[error_log]
max_size = 500
```

Environment variable example:
```bash
export CACHE_RESILIENCE_RETRY__MAX_ATTEMPTS=5
export CACHE_RESILIENCE_CIRCUIT_BREAKER__RECOVERY_TIMEOUT_MS=30000
```

In code:
```python
from cache_resilience.config import configure_resilience

config = configure_resilience(retry={"max_attempts": 2, "jitter": False})
```
"""

from __future__ import annotations

import json
import logging
import threading
import tomllib
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from cache_resilience.log import setup_logging
from cache_resilience.resilience.config import (
    CircuitBreakerConfig,
    ErrorLogConfig,
    RetryConfig,
    StateGuardConfig,
)

logger = logging.getLogger(__name__)


# === Config file sources ===

CONFIG_FILE_NAMES = ("cache_resilience", "config")

_PARSERS: dict[str, Callable[[str], Any]] = {
    ".toml": tomllib.loads,
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.loads,
}


def _candidate_files() -> Iterator[Path]:
    for directory in (Path.cwd(), Path.cwd() / "config", Path.home() / ".config" / "cache-resilience"):
        for name in CONFIG_FILE_NAMES:
            for suffix in _PARSERS:
                yield directory / f"{name}{suffix}"


def _find_config_file() -> Path | None:
    """First existing config file, current directory first."""
    return next((path for path in _candidate_files() if path.is_file()), None)


def _load_config_file(file_path: Path) -> dict[str, Any]:
    """Parse a config file into nested section dicts."""
    parser = _PARSERS.get(file_path.suffix.lower())
    if parser is None:
        logger.warning("Unsupported config file format: %s", file_path.suffix)
        return {}

    data = parser(file_path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"top level of {file_path.name} must be a table/mapping")
    return data


class FileConfigSource(PydanticBaseSettingsSource):
    """Settings source reading an explicit or auto-discovered config file."""

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None = None):
        super().__init__(settings_cls)
        self.path = config_file or _find_config_file()
        self._data: dict[str, Any] = {}
        if self.path is None or not self.path.is_file():
            return
        try:
            self._data = _load_config_file(self.path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(
                "Ignoring unreadable config file %s: %s",
                self.path,
                e,
                extra={"event": "config.file_invalid", "data": {"path": str(self.path)}},
            )

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self._data)


# === Settings ===


class ResilienceConfig(BaseSettings):
    """
    Resilience layer settings.

    A config file beats CACHE_RESILIENCE_* environment variables, which beat
    keyword arguments. Nested sections use "__" in variable names.
    """

    model_config = SettingsConfigDict(
        env_prefix="CACHE_RESILIENCE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    config_file: Path | None = Field(default=None, exclude=True)

    retry: RetryConfig = Field(default_factory=RetryConfig)
    """Retry executor defaults."""

    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    """Defaults for every (feature, operation) breaker."""

    state_guard: StateGuardConfig = Field(default_factory=StateGuardConfig)
    """State update guard defaults."""

    error_log: ErrorLogConfig = Field(default_factory=ErrorLogConfig)
    """Bounded error log."""

    verbose: bool = Field(default=False, description="Force DEBUG logging")
    log_level: str = Field(default="INFO", description="Level for the cache_resilience logger")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        explicit_file = init_settings().get("config_file")
        file_source = FileConfigSource(settings_cls, Path(explicit_file) if explicit_file else None)
        return file_source, env_settings, init_settings


class ConfigurationError(Exception):
    """Invalid programmatic configuration."""


_config: ResilienceConfig | None = None
_config_lock = threading.Lock()


def get_config() -> ResilienceConfig:
    """Process default settings, built on first use."""
    global _config
    with _config_lock:
        if _config is None:
            _config = ResilienceConfig()
        return _config


def reset_config() -> None:
    """Forget the process default settings."""
    global _config
    with _config_lock:
        _config = None


def configure_resilience(config_file: str | Path | None = None, **overrides: Any) -> ResilienceConfig:
    """
    Build settings, initialise logging and install them as the process default.

    Args:
        config_file: explicit toml/yaml/json file; must exist
        **overrides: section values, e.g. retry={"max_attempts": 2}

    Raises:
        ConfigurationError: `config_file` does not exist
    """
    global _config

    path = Path(config_file) if config_file is not None else None
    if path is not None and not path.is_file():
        raise ConfigurationError(f"Config file not found: {config_file}")

    config = ResilienceConfig(config_file=path, **overrides)
    setup_logging(logging.DEBUG if config.verbose else config.log_level)

    with _config_lock:
        _config = config

    logger.info(
        "Resilience settings applied: retry=%s attempts, breaker=%s/%s, error_log=%s",
        config.retry.max_attempts,
        config.circuit_breaker.failure_threshold,
        config.circuit_breaker.minimum_requests,
        config.error_log.max_size,
        extra={"event": "config.loaded", "data": config.model_dump(mode="json")},
    )
    return config
