"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures exchanged between the services, the selectors,
    and the resolution engine.  Services and selectors never return ORM
    entities; they return these.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    the selector/service layer.

Data flow:
    CalculationRule (ORM) -> RuleInfo (API) / RuleSnapshot (resolution input)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from hostmetrics_kernel.models.calculation_rule import CalculationRule
    from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate


class _Unset(Enum):
    """Marker for 'field not supplied' in patches (None is a real value)."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET


@dataclass(frozen=True)
class TemplateInfo:
    """Immutable view of a calculation-rule template."""

    template_id: UUID
    owner_id: UUID
    template_name: str
    template_description: str | None
    is_template_default: bool
    rule_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(
        cls, template: "CalculationRuleTemplate", rule_count: int = 0
    ) -> "TemplateInfo":
        return cls(
            template_id=template.id,
            owner_id=template.owner_id,
            template_name=template.template_name,
            template_description=template.template_description,
            is_template_default=template.is_template_default,
            rule_count=rule_count,
            created_at=template.created_at,
            updated_at=template.updated_at,
        )


@dataclass(frozen=True)
class RuleInfo:
    """Immutable view of a calculation rule."""

    rule_id: UUID
    owner_id: UUID
    template_id: UUID | None
    platform: str
    target_field: str
    formula: str
    priority: int | None
    is_active: bool
    notes: str | None
    creation_seq: int
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, rule: "CalculationRule") -> "RuleInfo":
        return cls(
            rule_id=rule.id,
            owner_id=rule.owner_id,
            template_id=rule.template_id,
            platform=rule.platform,
            target_field=rule.target_field,
            formula=rule.formula,
            priority=rule.priority,
            is_active=rule.is_active,
            notes=rule.notes,
            creation_seq=rule.creation_seq,
            version=rule.version,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


@dataclass(frozen=True)
class RuleSnapshot:
    """
    The slice of a rule the resolution engine needs.

    A tuple of these is the read-only, per-request rule snapshot shared by
    every record in a batch.
    """

    rule_id: UUID
    platform: str
    target_field: str
    formula: str
    priority: int | None = None
    is_active: bool = True
    creation_seq: int = 0
    template_id: UUID | None = None


@dataclass(frozen=True)
class RuleSpec:
    """A rule to create (bulk creation and template copies)."""

    platform: str
    target_field: str
    formula: str
    priority: int | None = None
    notes: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class RulePatch:
    """
    Partial update for a rule.

    Fields left as ``UNSET`` are not touched.  ``priority`` and ``notes``
    accept None to clear the value.  ``expected_version`` enables an
    optimistic-lock check against the caller's last read.
    """

    platform: Any = UNSET
    target_field: Any = UNSET
    formula: Any = UNSET
    priority: Any = UNSET
    is_active: Any = UNSET
    notes: Any = UNSET
    expected_version: int | None = None

    def changed_fields(self) -> tuple[str, ...]:
        names = ("platform", "target_field", "formula", "priority", "is_active", "notes")
        return tuple(n for n in names if getattr(self, n) is not UNSET)


@dataclass(frozen=True)
class TemplateDeletionResult:
    """Outcome of deleting a template together with its rules."""

    template_id: UUID
    deleted_rule_count: int
    was_default: bool = False


@dataclass(frozen=True)
class CustomFieldInfo:
    """One entry of the custom field catalog (suggestion read model)."""

    target_field: str
    formula: str
    usage_count: int
    templates: tuple[str, ...] = ()
