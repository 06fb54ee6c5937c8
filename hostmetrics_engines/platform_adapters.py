"""
Platform adapter registry -- default field-name fallback chains per platform.

Responsibility:
    Knows, for each source platform, which raw record keys hold each
    canonical financial field, in order of preference, and how to derive
    fields that no source reports directly (nightly rate from base price and
    nights).  Used by the resolution engine only when no user rule applies.

Architecture position:
    Engines -- pure lookup, zero I/O.  Adapters are built from configuration
    by ``hostmetrics_config.get_adapter_registry()``.

Invariants enforced:
    - Adapters are versioned per platform; lookups without a version use the
      registered default (highest version unless set otherwise).
    - A platform without an adapter, or whose adapter does not mention a
      field, falls back to the ``default`` adapter for that field.
    - Adapters never fail: an unmatched field is absent.

Usage:
    registry = PlatformAdapterRegistry()
    registry.register(PlatformAdapter(
        platform="hostaway",
        version=1,
        chains={"totalPayout": ("airbnbExpectedPayoutAmount", "totalPrice")},
    ))
    registry.fallback_chain("hostaway", "totalPayout")
    # ("airbnbExpectedPayoutAmount", "totalPrice")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, DecimalException, localcontext
from enum import Enum
from types import MappingProxyType
from typing import Any

from hostmetrics_kernel.domain.values import round_money, to_decimal

DEFAULT_ADAPTER = "default"

_PRECISION = 34


class FallbackKind(str, Enum):
    """How an adapter produced a value."""

    CHAIN = "chain"  # copied from a raw record key
    DERIVED = "derived"  # computed from other raw keys


@dataclass(frozen=True)
class DerivedRatio:
    """
    ``target = numerator / denominator`` rounded half-up to ``places``.

    Numerator and denominator are themselves fallback chains; the first
    numeric key of each is used.  Derivation needs both, and a denominator
    greater than zero.  A ratio too large to round to ``places`` is absent.
    """

    target_field: str
    numerator: tuple[str, ...]
    denominator: tuple[str, ...]
    places: int = 2

    def compute(self, record: Mapping[str, Any]) -> tuple[Decimal, str] | None:
        num = _first_numeric(record, self.numerator)
        den = _first_numeric(record, self.denominator)
        if num is None or den is None:
            return None
        num_value, num_key = num
        den_value, den_key = den
        if den_value <= 0:
            return None
        with localcontext() as ctx:
            ctx.prec = _PRECISION
            try:
                value = round_money(num_value / den_value, self.places)
            except DecimalException:
                return None
        return value, f"{num_key}/{den_key}"


@dataclass(frozen=True)
class PlatformAdapter:
    """Fallback chains and derivations for one platform at one version."""

    platform: str
    version: int
    chains: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    derivations: Mapping[str, DerivedRatio] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "chains",
            MappingProxyType({k: tuple(v) for k, v in self.chains.items()}),
        )
        object.__setattr__(self, "derivations", MappingProxyType(dict(self.derivations)))

    @property
    def fields(self) -> frozenset[str]:
        return frozenset(self.chains) | frozenset(self.derivations)


@dataclass(frozen=True)
class FallbackValue:
    """A value produced by an adapter, with where it came from."""

    value: Decimal
    kind: FallbackKind
    raw_field: str
    platform: str  # adapter that supplied it ("default" when inherited)


def _first_numeric(record: Mapping[str, Any], keys: tuple[str, ...]) -> tuple[Decimal, str] | None:
    for key in keys:
        value = to_decimal(record.get(key))
        if value is not None:
            return value, key
    return None


class PlatformAdapterRegistry:
    """
    Registry of platform adapters.

    Supports versioning per platform, the same way posting rules are
    versioned: a map of platform -> version -> adapter plus a default
    version per platform.
    """

    def __init__(self):
        self._adapters: dict[str, dict[int, PlatformAdapter]] = {}
        self._default_versions: dict[str, int] = {}

    def register(self, adapter: PlatformAdapter, set_default: bool = True) -> None:
        """
        Register an adapter.

        Args:
            adapter: The adapter to register.
            set_default: If True, make this version the platform's default.
        """
        self._adapters.setdefault(adapter.platform, {})[adapter.version] = adapter
        if set_default:
            self._default_versions[adapter.platform] = adapter.version

    def get_adapter(self, platform: str, version: int | None = None) -> PlatformAdapter | None:
        """
        Adapter for a platform, or None.

        Args:
            platform: Platform identifier (or ``default``).
            version: Specific version; None uses the default, then the highest.
        """
        versions = self._adapters.get(platform)
        if not versions:
            return None
        if version is None:
            version = self._default_versions.get(platform)
            if version is None:
                version = max(versions)
        return versions.get(version)

    def list_platforms(self) -> list[str]:
        return sorted(self._adapters)

    def list_versions(self, platform: str) -> list[int]:
        return sorted(self._adapters.get(platform, {}))

    def _adapters_for(self, platform: str, version: int | None) -> list[PlatformAdapter]:
        # platform-specific adapter first, then the default adapter
        found: list[PlatformAdapter] = []
        specific = self.get_adapter(platform, version)
        if specific is not None:
            found.append(specific)
        if platform != DEFAULT_ADAPTER:
            default = self.get_adapter(DEFAULT_ADAPTER)
            if default is not None:
                found.append(default)
        return found

    def fallback_chain(
        self,
        platform: str,
        canonical_field: str,
        version: int | None = None,
    ) -> tuple[str, ...]:
        """
        Ordered raw keys to try for a field on a platform.

        Returns:
            The platform adapter's chain for the field, else the default
            adapter's, else an empty tuple.
        """
        for adapter in self._adapters_for(platform, version):
            chain = adapter.chains.get(canonical_field)
            if chain is not None:
                return chain
        return ()

    def derivation(
        self,
        platform: str,
        canonical_field: str,
        version: int | None = None,
    ) -> DerivedRatio | None:
        for adapter in self._adapters_for(platform, version):
            rule = adapter.derivations.get(canonical_field)
            if rule is not None:
                return rule
        return None

    def resolve_fallback(
        self,
        record: Any,
        platform: str,
        canonical_field: str,
        version: int | None = None,
    ) -> FallbackValue | None:
        """
        Adapter value for a field: chain entries first, derivation second.

        Chain entries that are missing or not numeric are skipped.  Never
        raises; returns None when nothing matches.
        """
        if not isinstance(record, Mapping):
            return None
        adapters = self._adapters_for(platform, version)

        for adapter in adapters:
            chain = adapter.chains.get(canonical_field)
            if chain is None:
                continue
            hit = _first_numeric(record, chain)
            if hit is not None:
                return FallbackValue(hit[0], FallbackKind.CHAIN, hit[1], adapter.platform)
            break

        for adapter in adapters:
            rule = adapter.derivations.get(canonical_field)
            if rule is None:
                continue
            derived = rule.compute(record)
            if derived is not None:
                return FallbackValue(derived[0], FallbackKind.DERIVED, derived[1], adapter.platform)
            break

        return None
