"""
CustomFieldSelector -- the custom field catalog read model.

Recomputed on every call by scanning all of an owner's rules (active and
inactive), grouping identical (target_field, formula) pairs, counting them,
and collecting the distinct names of templates that reference each pair.
The catalog ranks suggestions only; it never influences resolution and has
no write path.
"""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select

from hostmetrics_kernel.domain.dtos import CustomFieldInfo
from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate
from hostmetrics_kernel.selectors.base import BaseSelector


class CustomFieldSelector(BaseSelector[CalculationRule]):
    """Derived, read-only catalog of an owner's (target field, formula) pairs."""

    def list_custom_fields(self, owner_id: UUID) -> list[CustomFieldInfo]:
        """
        Build the catalog for one owner.

        Returns:
            CustomFieldInfo entries ordered by usage_count descending, then
            target_field, then formula.
        """
        stmt = (
            select(
                CalculationRule.target_field,
                CalculationRule.formula,
                CalculationRuleTemplate.template_name,
            )
            .outerjoin(
                CalculationRuleTemplate,
                CalculationRuleTemplate.id == CalculationRule.template_id,
            )
            .where(CalculationRule.owner_id == owner_id)
        )

        usage: dict[tuple[str, str], int] = defaultdict(int)
        templates: dict[tuple[str, str], set[str]] = defaultdict(set)
        for target_field, formula, template_name in self.session.execute(stmt).all():
            key = (target_field, formula)
            usage[key] += 1
            if template_name is not None:
                templates[key].add(template_name)

        entries = [
            CustomFieldInfo(
                target_field=target_field,
                formula=formula,
                usage_count=count,
                templates=tuple(sorted(templates[(target_field, formula)])),
            )
            for (target_field, formula), count in usage.items()
        ]
        entries.sort(key=lambda e: (-e.usage_count, e.target_field, e.formula))
        return entries

    def suggest(
        self,
        owner_id: UUID,
        target_field_prefix: str | None = None,
        limit: int | None = None,
    ) -> list[CustomFieldInfo]:
        """Catalog entries whose target field starts with the prefix (case-insensitive)."""
        entries = self.list_custom_fields(owner_id)
        if target_field_prefix:
            prefix = target_field_prefix.lower()
            entries = [e for e in entries if e.target_field.lower().startswith(prefix)]
        if limit is not None:
            entries = entries[: max(limit, 0)]
        return entries
