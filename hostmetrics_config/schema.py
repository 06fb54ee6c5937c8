"""
Platform adapter configuration schema.

The human-authored, reviewable source artifact for platform adapters.  YAML
is parsed into these types by the loader, checked by the validator, and
turned into a runtime ``PlatformAdapterRegistry`` by the bridge.

Key distinction:
  AdapterConfigurationSet  = source artifact (human-authored, versioned)
  PlatformAdapterRegistry  = runtime artifact (validated, immutable adapters)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChainDef:
    """Ordered raw record keys for one canonical field."""

    field: str
    raw_fields: tuple[str, ...]


@dataclass(frozen=True)
class DerivedDef:
    """``target_field = numerator / denominator`` rounded to ``places``."""

    target_field: str
    numerator: tuple[str, ...]
    denominator: tuple[str, ...]
    places: int = 2


@dataclass(frozen=True)
class AdapterDef:
    """One platform adapter at one version."""

    platform: str
    version: int = 1
    description: str = ""
    chains: tuple[ChainDef, ...] = ()
    derived: tuple[DerivedDef, ...] = ()


@dataclass(frozen=True)
class AdapterConfigurationSet:
    """A complete, checksummed adapter configuration."""

    config_id: str
    version: int
    adapters: tuple[AdapterDef, ...]
    custom_channels: tuple[str, ...] = ()
    source: str = ""
    checksum: str = ""
