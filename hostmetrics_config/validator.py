"""
Configuration Validator (``hostmetrics_config.validator``).

Validates an ``AdapterConfigurationSet`` before it is turned into a
registry.  Errors block loading; warnings are logged.

Checks:
  * every chain/derivation names a canonical financial field
  * every adapter platform is ``default``, a built-in channel or a
    configured custom channel
  * chains and derivation operands are non-empty
  * (platform, version) pairs are unique and versions are positive
  * rounding places are between 0 and 10
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hostmetrics_config.schema import AdapterConfigurationSet
from hostmetrics_engines.platform_adapters import DEFAULT_ADAPTER
from hostmetrics_kernel.domain.financials import CANONICAL_FIELD_NAMES
from hostmetrics_kernel.domain.platform import WILDCARD, PlatformCatalog


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_adapter_config(
    config: AdapterConfigurationSet,
    catalog: PlatformCatalog,
) -> ConfigValidationResult:
    """
    Validate an adapter configuration against a platform catalog.

    The catalog must already include the configuration's custom channels.
    """
    result = ConfigValidationResult()

    seen: set[tuple[str, int]] = set()
    for adapter in config.adapters:
        label = f"{adapter.platform} v{adapter.version}"

        if adapter.platform != DEFAULT_ADAPTER:
            if not catalog.is_known(adapter.platform) or catalog.normalize(adapter.platform) == WILDCARD:
                result.add_error(f"{label}: unknown platform {adapter.platform!r}")
            elif adapter.platform != catalog.normalize(adapter.platform):
                result.add_error(
                    f"{label}: platform must be written {catalog.normalize(adapter.platform)!r}"
                )

        if adapter.version < 1:
            result.add_error(f"{label}: version must be >= 1")
        key = (adapter.platform, adapter.version)
        if key in seen:
            result.add_error(f"{label}: duplicate adapter version")
        seen.add(key)

        for chain in adapter.chains:
            if chain.field not in CANONICAL_FIELD_NAMES:
                result.add_error(f"{label}: chain for unknown field {chain.field!r}")
            if not chain.raw_fields:
                result.add_error(f"{label}: empty chain for {chain.field!r}")

        derived_targets: set[str] = set()
        for derived in adapter.derived:
            if derived.target_field not in CANONICAL_FIELD_NAMES:
                result.add_error(
                    f"{label}: derivation for unknown field {derived.target_field!r}"
                )
            if derived.target_field in derived_targets:
                result.add_error(f"{label}: duplicate derivation for {derived.target_field!r}")
            derived_targets.add(derived.target_field)
            if not derived.numerator or not derived.denominator:
                result.add_error(
                    f"{label}: derivation for {derived.target_field!r} needs a "
                    "numerator and a denominator"
                )
            if not 0 <= derived.places <= 10:
                result.add_error(
                    f"{label}: derivation places must be between 0 and 10, got {derived.places}"
                )

    if not any(a.platform == DEFAULT_ADAPTER for a in config.adapters):
        result.add_warning("no 'default' adapter: unlisted platforms get no fallbacks")

    return result
