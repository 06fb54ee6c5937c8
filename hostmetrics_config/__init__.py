"""
hostmetrics_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_engine_config()`` (and its shorthand ``get_adapter_registry()``).
    Settings come from ``HOSTMETRICS_*`` environment variables; platform
    adapters come from YAML.  YAML loading is internal to this package.

Architecture position:
    Configuration -- sits above ``hostmetrics_kernel`` and
    ``hostmetrics_engines`` and below ``hostmetrics_services``.  The kernel
    and engines MUST NEVER import from ``hostmetrics_config``; the bridge
    translates configuration into engine inputs.

Invariants enforced:
    - Validation: the adapter YAML must pass validation before a registry is
      built.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the adapter YAML does not exist.
    - ``AdapterConfigError`` -- the YAML is malformed or fails validation.
    - ``ValueError`` -- a malformed environment setting.

Audit relevance:
    Every successful load emits an ``ADAPTER_CONFIG_TRACE`` log entry with
    the config id, version, checksum and adapter count, tying resolved
    bookings to the exact fallback configuration in force.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from hostmetrics_config.bridges import build_adapter_registry
from hostmetrics_config.loader import load_adapter_config
from hostmetrics_config.schema import AdapterConfigurationSet
from hostmetrics_config.settings import EngineSettings, load_settings
from hostmetrics_config.validator import validate_adapter_config
from hostmetrics_engines.platform_adapters import PlatformAdapterRegistry
from hostmetrics_kernel.domain.platform import PlatformCatalog
from hostmetrics_kernel.exceptions import AdapterConfigError
from hostmetrics_kernel.logging_config import get_logger

_logger = get_logger("config")


@dataclass(frozen=True)
class EngineConfig:
    """Everything the services need from configuration."""

    settings: EngineSettings
    catalog: PlatformCatalog
    adapters: PlatformAdapterRegistry
    config_id: str
    config_version: int
    checksum: str


def get_engine_config(
    settings: EngineSettings | None = None,
    config_path: Path | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        settings: Explicit settings; defaults to ``load_settings()``.
        config_path: Adapter YAML override; defaults to the settings' path.

    Returns:
        EngineConfig with a validated adapter registry and the platform
        catalog (built-in channels plus custom channels from the environment
        and the YAML).

    Raises:
        FileNotFoundError: If the adapter YAML does not exist.
        AdapterConfigError: If the YAML is malformed or invalid.
    """
    settings = settings or load_settings()
    path = Path(config_path or settings.adapter_config_path)

    try:
        config = load_adapter_config(path)
    except (yaml.YAMLError, KeyError, ValueError, TypeError) as exc:
        raise AdapterConfigError(str(path), [f"{type(exc).__name__}: {exc}"]) from exc

    return _build(settings, config)


def _build(settings: EngineSettings, config: AdapterConfigurationSet) -> EngineConfig:
    catalog = PlatformCatalog(settings.custom_channels + config.custom_channels)

    validation = validate_adapter_config(config, catalog)
    if not validation.is_valid:
        raise AdapterConfigError(config.source, validation.errors)
    for warning in validation.warnings:
        _logger.warning(
            "adapter_config_warning",
            extra={"source": config.source, "warning": warning},
        )

    registry = build_adapter_registry(config)

    _logger.info(
        "ADAPTER_CONFIG_TRACE",
        extra={
            "trace_type": "ADAPTER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": config.source,
            "adapter_count": len(config.adapters),
            "custom_channel_count": len(catalog.custom_channels),
        },
    )

    return EngineConfig(
        settings=settings,
        catalog=catalog,
        adapters=registry,
        config_id=config.config_id,
        config_version=config.version,
        checksum=config.checksum,
    )


def get_adapter_registry(
    settings: EngineSettings | None = None,
    config_path: Path | None = None,
) -> PlatformAdapterRegistry:
    """Shorthand for ``get_engine_config(...).adapters``."""
    return get_engine_config(settings, config_path).adapters


__all__ = [
    "EngineConfig",
    "EngineSettings",
    "get_adapter_registry",
    "get_engine_config",
    "load_settings",
]
