"""
Environment settings.

All process-level knobs come from ``HOSTMETRICS_*`` environment variables
and are read once into a frozen ``EngineSettings``.

    HOSTMETRICS_DATABASE_URL        SQLAlchemy URL (default: in-memory SQLite)
    HOSTMETRICS_LOG_LEVEL           logging level name (default: INFO)
    HOSTMETRICS_FORMULA_CACHE_SIZE  compiled-formula LRU capacity (default: 1024)
    HOSTMETRICS_RESOLUTION_WORKERS  batch resolution threads; 1 = sequential (default: 1)
    HOSTMETRICS_ADAPTER_CONFIG      path to an adapter YAML (default: packaged set)
    HOSTMETRICS_CUSTOM_CHANNELS     comma-separated extra booking channels
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATABASE_URL = "sqlite:///:memory:"
DEFAULT_ADAPTER_CONFIG = Path(__file__).parent / "sets" / "platform_adapters.yaml"

_ENV_PREFIX = "HOSTMETRICS_"


@dataclass(frozen=True)
class EngineSettings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    formula_cache_size: int = 1024
    resolution_workers: int = 1
    adapter_config_path: Path = DEFAULT_ADAPTER_CONFIG
    custom_channels: tuple[str, ...] = ()

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    raw = env.get(_ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{_ENV_PREFIX}{name} must be >= {minimum}, got {value}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> EngineSettings:
    """
    Read settings from the environment (or an explicit mapping, for tests).

    Raises:
        ValueError: For a malformed numeric setting or unknown log level.
    """
    env = os.environ if env is None else env

    log_level = (env.get(_ENV_PREFIX + "LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"{_ENV_PREFIX}LOG_LEVEL: unknown level {log_level!r}")

    channels_raw = env.get(_ENV_PREFIX + "CUSTOM_CHANNELS") or ""
    channels = tuple(c.strip().lower() for c in channels_raw.split(",") if c.strip())

    adapter_path = env.get(_ENV_PREFIX + "ADAPTER_CONFIG")

    return EngineSettings(
        database_url=env.get(_ENV_PREFIX + "DATABASE_URL") or DEFAULT_DATABASE_URL,
        log_level=log_level,
        formula_cache_size=_int_setting(env, "FORMULA_CACHE_SIZE", 1024, 1),
        resolution_workers=_int_setting(env, "RESOLUTION_WORKERS", 1, 1),
        adapter_config_path=Path(adapter_path) if adapter_path else DEFAULT_ADAPTER_CONFIG,
        custom_channels=channels,
    )
