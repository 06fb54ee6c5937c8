"""
Configuration Loader (``hostmetrics_config.loader``).

Responsibility
--------------
Loads the platform adapter YAML file and parses it into typed
``hostmetrics_config.schema`` dataclass instances.  Services never call this
directly; the runtime entry point is ``hostmetrics_config.get_engine_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from hostmetrics_config.schema import (
    AdapterConfigurationSet,
    AdapterDef,
    ChainDef,
    DerivedDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _str_tuple(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected a list of field names, got {value!r}")
    return tuple(str(v) for v in value)


def parse_derived(data: dict[str, Any], where: str = "derived") -> DerivedDef:
    """Parse a DerivedDef from a dict."""
    return DerivedDef(
        target_field=data["target_field"],
        numerator=_str_tuple(data["numerator"], f"{where}.numerator"),
        denominator=_str_tuple(data["denominator"], f"{where}.denominator"),
        places=int(data.get("places", 2)),
    )


def parse_adapter(data: dict[str, Any]) -> AdapterDef:
    """
    Parse an ``AdapterDef`` from a dict.

    Raises:
        KeyError: if ``platform`` is missing.
        ValueError: if chains or derivations are malformed.
    """
    platform = str(data["platform"])
    chains_data = data.get("chains") or {}
    if not isinstance(chains_data, dict):
        raise ValueError(f"adapter {platform}: 'chains' must be a mapping")
    chains = tuple(
        ChainDef(field=str(name), raw_fields=_str_tuple(raw, f"{platform}.chains.{name}"))
        for name, raw in chains_data.items()
    )
    derived = tuple(
        parse_derived(d, f"{platform}.derived[{i}]")
        for i, d in enumerate(data.get("derived") or [])
    )
    return AdapterDef(
        platform=platform,
        version=int(data.get("version", 1)),
        description=data.get("description", "") or "",
        chains=chains,
        derived=derived,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_adapter_config(data: dict[str, Any], source: str = "<memory>") -> AdapterConfigurationSet:
    """Parse a whole adapter configuration document."""
    return AdapterConfigurationSet(
        config_id=str(data.get("config_id", "platform-adapters")),
        version=int(data.get("version", 1)),
        adapters=tuple(parse_adapter(a) for a in data.get("adapters") or []),
        custom_channels=_str_tuple(data.get("custom_channels"), "custom_channels"),
        source=source,
        checksum=compute_checksum(data),
    )


def load_adapter_config(path: Path) -> AdapterConfigurationSet:
    """Load and parse the adapter YAML at ``path``."""
    return parse_adapter_config(load_yaml_file(path), source=str(path))
