"""Pure domain types: platforms, canonical financial fields, DTOs."""

from hostmetrics_kernel.domain.dtos import (
    UNSET,
    CustomFieldInfo,
    RuleInfo,
    RulePatch,
    RuleSnapshot,
    RuleSpec,
    TemplateDeletionResult,
    TemplateInfo,
)
from hostmetrics_kernel.domain.financials import (
    CANONICAL_FIELD_NAMES,
    CanonicalField,
    ResolvedFinancials,
)
from hostmetrics_kernel.domain.platform import (
    WILDCARD,
    Platform,
    PlatformCatalog,
    platform_from_channel,
)
from hostmetrics_kernel.domain.values import round_money, to_decimal

__all__ = [
    "UNSET",
    "CustomFieldInfo",
    "RuleInfo",
    "RulePatch",
    "RuleSnapshot",
    "RuleSpec",
    "TemplateDeletionResult",
    "TemplateInfo",
    "CANONICAL_FIELD_NAMES",
    "CanonicalField",
    "ResolvedFinancials",
    "WILDCARD",
    "Platform",
    "PlatformCatalog",
    "platform_from_channel",
    "round_money",
    "to_decimal",
]
