"""
Platform -- closed enumeration of booking channels.

Responsibility:
    Defines the built-in booking channels, the ``ALL`` wildcard, and the
    catalog that validates platform identifiers (built-in plus configured
    custom channels).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every stored platform is either ``ALL`` or a member of the catalog.
    - ``ALL`` matches any record platform but is never a record platform.

Failure modes:
    - UnknownPlatformError for identifiers outside the catalog.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from hostmetrics_kernel.exceptions import UnknownPlatformError


class Platform(str, Enum):
    """Built-in booking channels."""

    ALL = "ALL"  # Wildcard: applies to every record platform
    AIRBNB = "airbnb"
    BOOKING = "booking"
    GOOGLE = "google"
    DIRECT = "direct"
    WECHALET = "wechalet"
    MONSIEURCHALETS = "monsieurchalets"
    DIRECT_ETRANSFER = "direct-etransfer"
    VRBO = "vrbo"
    HOSTAWAY = "hostaway"


WILDCARD = Platform.ALL.value

# PMS channel names (lower-cased) -> platform
_CHANNEL_ALIASES: dict[str, str] = {
    "airbnb": Platform.AIRBNB.value,
    "airbnbofficial": Platform.AIRBNB.value,
    "booking.com": Platform.BOOKING.value,
    "booking": Platform.BOOKING.value,
    "vrbo": Platform.VRBO.value,
    "expedia": Platform.VRBO.value,
    "homeaway": Platform.VRBO.value,
    "direct": Platform.DIRECT.value,
    "google": Platform.GOOGLE.value,
    "hostaway": Platform.HOSTAWAY.value,
}


class PlatformCatalog:
    """
    Validates and normalises platform identifiers.

    Contract:
        Built-in platforms are always known; custom channel identifiers are
        supplied at construction (from configuration).  Identifiers are
        matched case-insensitively and returned lower-cased, except the
        ``ALL`` wildcard which keeps its canonical spelling.
    """

    def __init__(self, custom_channels: Iterable[str] = ()):
        custom = {c.strip().lower() for c in custom_channels if c and c.strip()}
        if WILDCARD.lower() in custom:
            raise UnknownPlatformError(WILDCARD, "the wildcard cannot be a custom channel")
        self._custom: frozenset[str] = frozenset(custom)
        self._known: frozenset[str] = frozenset(
            p.value for p in Platform if p is not Platform.ALL
        ) | self._custom

    @property
    def custom_channels(self) -> frozenset[str]:
        return self._custom

    @property
    def channels(self) -> frozenset[str]:
        """All concrete (non-wildcard) platforms."""
        return self._known

    def normalize(self, platform: str | Platform) -> str:
        """
        Return the canonical identifier for a rule platform.

        Raises:
            UnknownPlatformError: If the identifier is not in the catalog.
        """
        value = platform.value if isinstance(platform, Platform) else platform
        if not isinstance(value, str) or not value.strip():
            raise UnknownPlatformError(str(value), "platform must be a non-empty string")
        text = value.strip()
        if text.upper() == WILDCARD:
            return WILDCARD
        lowered = text.lower()
        if lowered not in self._known:
            raise UnknownPlatformError(text)
        return lowered

    def normalize_record_platform(self, platform: str | Platform) -> str:
        """
        Return the canonical identifier for a booking record's platform.

        Raises:
            UnknownPlatformError: If unknown, or if the wildcard is used.
        """
        value = self.normalize(platform)
        if value == WILDCARD:
            raise UnknownPlatformError(
                WILDCARD, "a booking record must come from a concrete platform"
            )
        return value

    def is_known(self, platform: str) -> bool:
        try:
            self.normalize(platform)
        except UnknownPlatformError:
            return False
        return True


def platform_from_channel(channel_name: str | None) -> str:
    """
    Map a PMS channel name to a platform.

    Unrecognised channels fall back to ``hostaway``, the PMS the reservation
    was pulled from.
    """
    if not channel_name:
        return Platform.HOSTAWAY.value
    return _CHANNEL_ALIASES.get(channel_name.strip().lower(), Platform.HOSTAWAY.value)


def matches(rule_platform: str, record_platform: str) -> bool:
    """True when a rule scoped to ``rule_platform`` applies to the record."""
    return rule_platform == WILDCARD or rule_platform == record_platform
