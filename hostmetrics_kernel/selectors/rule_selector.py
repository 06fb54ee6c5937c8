"""
RuleSelector -- read access to calculation rules.

Produces RuleInfo DTOs for listing screens and the immutable RuleSnapshot
tuple the resolution engine consumes.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select

from hostmetrics_kernel.domain.dtos import RuleInfo, RuleSnapshot
from hostmetrics_kernel.domain.platform import WILDCARD
from hostmetrics_kernel.exceptions import RuleNotFoundError
from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.selectors.base import BaseSelector


class RuleSelector(BaseSelector[CalculationRule]):
    """Read-only queries over calculation rules."""

    def get_rule(self, rule_id: UUID) -> RuleInfo:
        """
        Get a rule by ID.

        Raises:
            RuleNotFoundError: If the rule doesn't exist.
        """
        rule = self.session.get(CalculationRule, rule_id)
        if rule is None:
            raise RuleNotFoundError(str(rule_id))
        return RuleInfo.from_model(rule)

    def list_rules(
        self,
        owner_id: UUID,
        platform: str | None = None,
        template_id: UUID | None = None,
        active_only: bool = False,
    ) -> list[RuleInfo]:
        """
        List an owner's rules, optionally filtered.

        Args:
            owner_id: Rule owner.
            platform: Exact platform filter (``ALL`` matches only wildcard rules).
            template_id: Only rules of this template.
            active_only: Exclude deactivated rules.

        Returns:
            RuleInfo DTOs ordered by target field then creation order.
        """
        stmt = select(CalculationRule).where(CalculationRule.owner_id == owner_id)
        if platform is not None:
            stmt = stmt.where(CalculationRule.platform == platform)
        if template_id is not None:
            stmt = stmt.where(CalculationRule.template_id == template_id)
        if active_only:
            stmt = stmt.where(CalculationRule.is_active == True)  # noqa: E712
        stmt = stmt.order_by(CalculationRule.target_field, CalculationRule.creation_seq)

        rules = self.session.execute(stmt).scalars().all()
        return [RuleInfo.from_model(r) for r in rules]

    def list_template_rules(self, template_id: UUID, active_only: bool = False) -> list[RuleInfo]:
        """Rules belonging to one template, in creation order."""
        stmt = select(CalculationRule).where(CalculationRule.template_id == template_id)
        if active_only:
            stmt = stmt.where(CalculationRule.is_active == True)  # noqa: E712
        stmt = stmt.order_by(CalculationRule.creation_seq)
        return [RuleInfo.from_model(r) for r in self.session.execute(stmt).scalars().all()]

    def active_snapshot(
        self,
        owner_id: UUID,
        platform: str | None = None,
        template_id: UUID | None = None,
    ) -> tuple[RuleSnapshot, ...]:
        """
        Read-only snapshot of the owner's active rules for resolution.

        Args:
            owner_id: Rule owner.
            platform: When given, only rules scoped to this platform or ``ALL``.
            template_id: When given, only rules of this template plus
                untemplated (global) rules.

        Returns:
            Tuple of RuleSnapshot, in creation order.
        """
        stmt = select(CalculationRule).where(
            CalculationRule.owner_id == owner_id,
            CalculationRule.is_active == True,  # noqa: E712
        )
        if platform is not None:
            stmt = stmt.where(CalculationRule.platform.in_((platform, WILDCARD)))
        if template_id is not None:
            stmt = stmt.where(
                or_(
                    CalculationRule.template_id == template_id,
                    CalculationRule.template_id.is_(None),
                )
            )
        stmt = stmt.order_by(CalculationRule.creation_seq)

        return tuple(
            RuleSnapshot(
                rule_id=r.id,
                template_id=r.template_id,
                platform=r.platform,
                target_field=r.target_field,
                formula=r.formula,
                priority=r.priority,
                is_active=r.is_active,
                creation_seq=r.creation_seq,
            )
            for r in self.session.execute(stmt).scalars().all()
        )
