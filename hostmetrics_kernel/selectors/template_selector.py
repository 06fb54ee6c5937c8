"""
TemplateSelector -- read access to calculation-rule templates.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from hostmetrics_kernel.domain.dtos import TemplateInfo
from hostmetrics_kernel.exceptions import TemplateNotFoundError
from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate
from hostmetrics_kernel.selectors.base import BaseSelector


class TemplateSelector(BaseSelector[CalculationRuleTemplate]):
    """Read-only queries over templates."""

    def _rule_count(self, template_id: UUID) -> int:
        return self.session.execute(
            select(func.count(CalculationRule.id)).where(
                CalculationRule.template_id == template_id
            )
        ).scalar_one()

    def get_template(self, template_id: UUID, owner_id: UUID | None = None) -> TemplateInfo:
        """
        Get a template by ID, optionally checking its owner.

        Raises:
            TemplateNotFoundError: If missing or owned by someone else.
        """
        template = self.session.get(CalculationRuleTemplate, template_id)
        if template is None or (owner_id is not None and template.owner_id != owner_id):
            raise TemplateNotFoundError(str(template_id))
        return TemplateInfo.from_model(template, self._rule_count(template.id))

    def list_templates(self, owner_id: UUID) -> list[TemplateInfo]:
        """All of an owner's templates: the default first, then by name."""
        counts = (
            select(
                CalculationRule.template_id.label("template_id"),
                func.count(CalculationRule.id).label("rule_count"),
            )
            .where(CalculationRule.owner_id == owner_id)
            .group_by(CalculationRule.template_id)
            .subquery()
        )
        stmt = (
            select(CalculationRuleTemplate, func.coalesce(counts.c.rule_count, 0))
            .outerjoin(counts, counts.c.template_id == CalculationRuleTemplate.id)
            .where(CalculationRuleTemplate.owner_id == owner_id)
            .order_by(
                CalculationRuleTemplate.is_template_default.desc(),
                CalculationRuleTemplate.template_name,
            )
        )
        return [
            TemplateInfo.from_model(template, count)
            for template, count in self.session.execute(stmt).all()
        ]

    def find_by_name(self, owner_id: UUID, template_name: str) -> TemplateInfo | None:
        """Template with this exact name for the owner, or None."""
        template = self.session.execute(
            select(CalculationRuleTemplate).where(
                CalculationRuleTemplate.owner_id == owner_id,
                CalculationRuleTemplate.template_name == template_name,
            )
        ).scalar_one_or_none()
        if template is None:
            return None
        return TemplateInfo.from_model(template, self._rule_count(template.id))

    def get_default(self, owner_id: UUID) -> TemplateInfo | None:
        """The owner's default template, or None."""
        template = self.session.execute(
            select(CalculationRuleTemplate).where(
                CalculationRuleTemplate.owner_id == owner_id,
                CalculationRuleTemplate.is_template_default == True,  # noqa: E712
            )
        ).scalar_one_or_none()
        if template is None:
            return None
        return TemplateInfo.from_model(template, self._rule_count(template.id))

    def count_defaults(self, owner_id: UUID) -> int:
        return self.session.execute(
            select(func.count(CalculationRuleTemplate.id)).where(
                CalculationRuleTemplate.owner_id == owner_id,
                CalculationRuleTemplate.is_template_default == True,  # noqa: E712
            )
        ).scalar_one()
