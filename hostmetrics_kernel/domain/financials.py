"""
Canonical financial fields and the ResolvedFinancials value object.

Responsibility:
    Names the fixed set of financial fields every booking is resolved into,
    and holds one resolution result.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every canonical field is either a finite Decimal or absent (None).
    - ResolvedFinancials is immutable and never persisted by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class CanonicalField(str, Enum):
    """Canonical financial fields (values are the wire names used by rules)."""

    NIGHTLY_RATE = "nightlyRate"
    CLEANING_FEE = "cleaningFee"
    LODGING_TAX = "lodgingTax"
    SALES_TAX = "salesTax"
    GST = "gst"
    PST = "pst"
    QST = "qst"
    CHANNEL_FEE = "channelFee"
    EXTRA_GUEST_FEES = "extraGuestFees"
    BED_LINEN_FEE = "bedLinenFee"
    STRIPE_FEE = "stripeFee"
    MGMT_FEE = "mgmtFee"
    TOTAL_PAYOUT = "totalPayout"
    NET_EARNINGS = "netEarnings"

    @property
    def attribute(self) -> str:
        """Python attribute name on ResolvedFinancials."""
        return _ATTRIBUTES[self]

    @classmethod
    def from_wire(cls, name: str) -> "CanonicalField | None":
        """Look up a canonical field by wire name; None for custom fields."""
        try:
            return cls(name)
        except ValueError:
            return None


_ATTRIBUTES: dict[CanonicalField, str] = {
    CanonicalField.NIGHTLY_RATE: "nightly_rate",
    CanonicalField.CLEANING_FEE: "cleaning_fee",
    CanonicalField.LODGING_TAX: "lodging_tax",
    CanonicalField.SALES_TAX: "sales_tax",
    CanonicalField.GST: "gst",
    CanonicalField.PST: "pst",
    CanonicalField.QST: "qst",
    CanonicalField.CHANNEL_FEE: "channel_fee",
    CanonicalField.EXTRA_GUEST_FEES: "extra_guest_fees",
    CanonicalField.BED_LINEN_FEE: "bed_linen_fee",
    CanonicalField.STRIPE_FEE: "stripe_fee",
    CanonicalField.MGMT_FEE: "mgmt_fee",
    CanonicalField.TOTAL_PAYOUT: "total_payout",
    CanonicalField.NET_EARNINGS: "net_earnings",
}

CANONICAL_FIELD_NAMES: frozenset[str] = frozenset(f.value for f in CanonicalField)


@dataclass(frozen=True)
class ResolvedFinancials:
    """
    Canonical output of one resolution call.

    Canonical fields are Decimal or None (absent).  ``custom_fields`` holds
    results of rules targeting non-canonical fields.
    """

    nightly_rate: Decimal | None = None
    cleaning_fee: Decimal | None = None
    lodging_tax: Decimal | None = None
    sales_tax: Decimal | None = None
    gst: Decimal | None = None
    pst: Decimal | None = None
    qst: Decimal | None = None
    channel_fee: Decimal | None = None
    extra_guest_fees: Decimal | None = None
    bed_linen_fee: Decimal | None = None
    stripe_fee: Decimal | None = None
    mgmt_fee: Decimal | None = None
    total_payout: Decimal | None = None
    net_earnings: Decimal | None = None
    custom_fields: Mapping[str, Decimal | None] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        if not isinstance(self.custom_fields, MappingProxyType):
            object.__setattr__(
                self, "custom_fields", MappingProxyType(dict(self.custom_fields))
            )

    @classmethod
    def from_values(cls, values: Mapping[str, Decimal | None]) -> "ResolvedFinancials":
        """Build from wire-named values; unknown names become custom fields."""
        canonical: dict[str, Any] = {}
        custom: dict[str, Decimal | None] = {}
        for name, value in values.items():
            cf = CanonicalField.from_wire(name)
            if cf is None:
                custom[name] = value
            else:
                canonical[cf.attribute] = value
        return cls(**canonical, custom_fields=custom)

    def get(self, name: str | CanonicalField) -> Decimal | None:
        """Value by wire name (canonical or custom)."""
        cf = name if isinstance(name, CanonicalField) else CanonicalField.from_wire(name)
        if cf is not None:
            return getattr(self, cf.attribute)
        return self.custom_fields.get(name)

    @property
    def present_fields(self) -> tuple[str, ...]:
        """Wire names of canonical fields that resolved to a value."""
        return tuple(cf.value for cf in CanonicalField if getattr(self, cf.attribute) is not None)

    def as_dict(self, include_absent: bool = False) -> dict[str, Decimal | None]:
        """Wire-named dict of canonical fields followed by custom fields."""
        out: dict[str, Decimal | None] = {}
        for cf in CanonicalField:
            value = getattr(self, cf.attribute)
            if value is not None or include_absent:
                out[cf.value] = value
        for name in sorted(self.custom_fields):
            value = self.custom_fields[name]
            if value is not None or include_absent:
                out[name] = value
        return out
