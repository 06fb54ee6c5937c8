"""
TemplateService -- named rule groupings with default-template semantics.

Responsibility:
    Creates templates (empty, as a copy of another template's active rules,
    or as the new default), renames/redescribes them, promotes a template
    to default, and deletes a template together with its rules.

Architecture position:
    Services -- imperative shell.  Flushes, never commits.

Invariants enforced:
    - Template names are unique per owner.
    - At most one default template per owner.  Promotion clears the old
      default and flushes before setting the new one; the partial unique
      index backs this at the database level.
    - Every write first locks the owner's sequence row.
    - Copying never mutates the source template; copied rules get new ids
      and identical platform, target field, formula, priority and notes.

Failure modes:
    - TemplateNameConflictError, TemplateValidationError on bad names.
    - TemplateNotFoundError for a missing or foreign template.
    - DefaultTemplateConflictError when demoting the default directly.
"""

from __future__ import annotations

import warnings
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hostmetrics_kernel.domain.dtos import (
    UNSET,
    RuleSpec,
    TemplateDeletionResult,
    TemplateInfo,
)
from hostmetrics_kernel.exceptions import (
    DefaultTemplateConflictError,
    TemplateNameConflictError,
    TemplateNotEmptyOnDeleteWarning,
    TemplateNotFoundError,
    TemplateValidationError,
)
from hostmetrics_kernel.logging_config import LogContext, get_logger
from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate
from hostmetrics_kernel.services.base import BaseService
from hostmetrics_kernel.services.owner_sequence import OwnerSequenceService
from hostmetrics_services.rule_service import RuleService

logger = get_logger("services.template")

MAX_TEMPLATE_NAME_LENGTH = 200


class TemplateService(BaseService[CalculationRuleTemplate]):
    """Write service for calculation-rule templates."""

    def __init__(self, session: Session, rule_service: RuleService | None = None):
        super().__init__(session)
        self._rules = rule_service or RuleService(session)
        self._sequence = OwnerSequenceService(session)

    # -- helpers ----------------------------------------------------------

    def _get_template(self, template_id: UUID, owner_id: UUID) -> CalculationRuleTemplate:
        template = self.session.get(CalculationRuleTemplate, template_id)
        if template is None or template.owner_id != owner_id:
            raise TemplateNotFoundError(str(template_id))
        return template

    def _check_name(self, template_name: object) -> str:
        if not isinstance(template_name, str) or not template_name.strip():
            raise TemplateValidationError(
                "template_name", template_name, "must be a non-empty string"
            )
        name = template_name.strip()
        if len(name) > MAX_TEMPLATE_NAME_LENGTH:
            raise TemplateValidationError(
                "template_name", name, f"longer than {MAX_TEMPLATE_NAME_LENGTH} characters"
            )
        return name

    def _ensure_name_free(
        self, owner_id: UUID, template_name: str, exclude_id: UUID | None = None
    ) -> None:
        stmt = select(CalculationRuleTemplate.id).where(
            CalculationRuleTemplate.owner_id == owner_id,
            CalculationRuleTemplate.template_name == template_name,
        )
        if exclude_id is not None:
            stmt = stmt.where(CalculationRuleTemplate.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise TemplateNameConflictError(str(owner_id), template_name)

    def _current_default(self, owner_id: UUID) -> CalculationRuleTemplate | None:
        return self.session.execute(
            select(CalculationRuleTemplate).where(
                CalculationRuleTemplate.owner_id == owner_id,
                CalculationRuleTemplate.is_template_default == True,  # noqa: E712
            )
        ).scalar_one_or_none()

    def _rule_count(self, template_id: UUID) -> int:
        return self.session.execute(
            select(func.count(CalculationRule.id)).where(
                CalculationRule.template_id == template_id
            )
        ).scalar_one()

    def _promote(
        self, template: CalculationRuleTemplate, actor_id: UUID
    ) -> CalculationRuleTemplate | None:
        """Make ``template`` the owner's only default; returns the old default."""
        previous = self._current_default(template.owner_id)
        if previous is not None and previous.id == template.id:
            return None
        if previous is not None:
            previous.is_template_default = False
            previous.updated_by_id = actor_id
            # old default must be cleared before the new one is written
            self.session.flush()
        template.is_template_default = True
        template.updated_by_id = actor_id
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DefaultTemplateConflictError(
                str(template.owner_id), str(template.id), "another default was set concurrently"
            ) from exc
        logger.info(
            "template_default_promoted",
            extra={
                "template_id": str(template.id),
                "previous_default_id": str(previous.id) if previous is not None else None,
            },
        )
        return previous

    # -- operations -------------------------------------------------------

    def create_template(
        self,
        owner_id: UUID,
        template_name: str,
        actor_id: UUID,
        template_description: str | None = None,
        is_default: bool = False,
        copy_from_template_id: UUID | None = None,
    ) -> TemplateInfo:
        """
        Create a template.

        Args:
            owner_id: Owning property manager.
            template_name: Unique (per owner) display name.
            actor_id: User performing the change.
            template_description: Optional description.
            is_default: Promote the new template to the owner's default.
            copy_from_template_id: Copy this template's *active* rules into
                the new template.

        Returns:
            The created template, with its rule count.

        Raises:
            TemplateValidationError: Blank or overlong name.
            TemplateNameConflictError: Name already used by this owner.
            TemplateNotFoundError: Copy source missing or another owner's.
        """
        name = self._check_name(template_name)
        self._sequence.next_value(owner_id)
        self._ensure_name_free(owner_id, name)

        source_rules: list[CalculationRule] = []
        if copy_from_template_id is not None:
            self._get_template(copy_from_template_id, owner_id)
            source_rules = list(
                self.session.execute(
                    select(CalculationRule)
                    .where(
                        CalculationRule.template_id == copy_from_template_id,
                        CalculationRule.is_active == True,  # noqa: E712
                    )
                    .order_by(CalculationRule.creation_seq)
                ).scalars()
            )

        template = CalculationRuleTemplate(
            owner_id=owner_id,
            template_name=name,
            template_description=template_description,
            is_template_default=False,
            created_by_id=actor_id,
        )
        self.session.add(template)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise TemplateNameConflictError(str(owner_id), name) from exc

        with LogContext.bind(owner_id=owner_id, template_id=template.id):
            if source_rules:
                specs = [
                    RuleSpec(
                        platform=r.platform,
                        target_field=r.target_field,
                        formula=r.formula,
                        priority=r.priority,
                        notes=r.notes,
                    )
                    for r in source_rules
                ]
                self._rules.bulk_create_rules(owner_id, specs, actor_id, template.id)

            if is_default:
                self._promote(template, actor_id)

            logger.info(
                "template_created",
                extra={
                    "template_name": name,
                    "is_default": is_default,
                    "copied_from": str(copy_from_template_id) if copy_from_template_id else None,
                    "copied_rule_count": len(source_rules),
                },
            )
        return TemplateInfo.from_model(template, len(source_rules))

    def update_template(
        self,
        template_id: UUID,
        owner_id: UUID,
        actor_id: UUID,
        template_name: object = UNSET,
        template_description: object = UNSET,
        is_default: object = UNSET,
    ) -> TemplateInfo:
        """
        Rename, redescribe, or promote a template.  The id never changes.

        Raises:
            TemplateNotFoundError: Missing or another owner's template.
            TemplateNameConflictError: New name already used by this owner.
            DefaultTemplateConflictError: ``is_default=False`` on the current
                default; promote another template instead.
        """
        template = self._get_template(template_id, owner_id)
        self._sequence.next_value(owner_id)

        if is_default is False and template.is_template_default:
            raise DefaultTemplateConflictError(
                str(owner_id),
                str(template_id),
                "the default cannot be cleared directly; promote another template",
            )

        if template_name is not UNSET:
            name = self._check_name(template_name)
            if name != template.template_name:
                self._ensure_name_free(owner_id, name, exclude_id=template_id)
                template.template_name = name
        if template_description is not UNSET:
            template.template_description = template_description
        template.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            if is_default is True:
                self._promote(template, actor_id)
            logger.info("template_updated")
        return TemplateInfo.from_model(template, self._rule_count(template_id))

    def set_default_template(
        self, template_id: UUID, owner_id: UUID, actor_id: UUID
    ) -> TemplateInfo:
        """
        Atomically make ``template_id`` the owner's only default.

        Idempotent when it already is the default.
        """
        template = self._get_template(template_id, owner_id)
        self._sequence.next_value(owner_id)
        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            self._promote(template, actor_id)
        return TemplateInfo.from_model(template, self._rule_count(template_id))

    def delete_template(self, template_id: UUID, owner_id: UUID) -> TemplateDeletionResult:
        """
        Delete a template and every rule in it.

        Issues TemplateNotEmptyOnDeleteWarning when rules were removed; the
        count is also returned.  Deleting the default leaves the owner with
        no default.

        Raises:
            TemplateNotFoundError: Missing or another owner's template.
        """
        template = self._get_template(template_id, owner_id)
        self._sequence.next_value(owner_id)
        was_default = template.is_template_default

        deleted = self.session.execute(
            delete(CalculationRule).where(CalculationRule.template_id == template_id)
        ).rowcount or 0
        self.session.delete(template)
        self.session.flush()

        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            logger.info(
                "template_deleted",
                extra={"deleted_rule_count": deleted, "was_default": was_default},
            )
        if deleted:
            warnings.warn(
                TemplateNotEmptyOnDeleteWarning(str(template_id), deleted),
                stacklevel=2,
            )
        return TemplateDeletionResult(
            template_id=template_id,
            deleted_rule_count=deleted,
            was_default=was_default,
        )
