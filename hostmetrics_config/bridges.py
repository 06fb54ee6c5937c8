"""
Bridges -- translate validated configuration into engine inputs.

The engines never read configuration; they receive a registry built here.
"""

from __future__ import annotations

from hostmetrics_config.schema import AdapterConfigurationSet, AdapterDef
from hostmetrics_engines.platform_adapters import (
    DerivedRatio,
    PlatformAdapter,
    PlatformAdapterRegistry,
)


def build_adapter(adapter: AdapterDef) -> PlatformAdapter:
    return PlatformAdapter(
        platform=adapter.platform,
        version=adapter.version,
        description=adapter.description,
        chains={c.field: c.raw_fields for c in adapter.chains},
        derivations={
            d.target_field: DerivedRatio(
                target_field=d.target_field,
                numerator=d.numerator,
                denominator=d.denominator,
                places=d.places,
            )
            for d in adapter.derived
        },
    )


def build_adapter_registry(config: AdapterConfigurationSet) -> PlatformAdapterRegistry:
    """
    Build a registry from a validated configuration.

    The highest version of each platform becomes its default.
    """
    registry = PlatformAdapterRegistry()
    for adapter in sorted(config.adapters, key=lambda a: (a.platform, a.version)):
        registry.register(build_adapter(adapter), set_default=True)
    return registry
