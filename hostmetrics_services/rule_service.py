"""
RuleService -- create, edit and delete calculation rules.

Responsibility:
    All writes to ``calculation_rules``.  Validates the platform, target
    field, priority and formula synchronously so that a malformed rule is
    rejected at save time, never discovered during resolution.

Architecture position:
    Services -- imperative shell.  Flushes, never commits.

Invariants enforced:
    - Every write first locks the owner's sequence row; writers for one
      owner are serialized.
    - New rules get a fresh, strictly increasing ``creation_seq`` from that
      row.  Changing a rule's platform gives it a fresh ``creation_seq`` too,
      so an edited rule ranks as "most recently created" in its new scope.
    - Edits keep the rule id.
    - Concurrent modification of one rule surfaces as OptimisticLockError
      (version column), never as a lost update.

Failure modes:
    - FormulaSyntaxError, UnknownPlatformError, RuleValidationError on
      malformed input.
    - TemplateNotFoundError when the template is missing or another owner's.
    - RuleNotFoundError / RuleOwnershipError on edits.
    - OptimisticLockError on a stale version.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hostmetrics_engines.formula.compiler import FormulaCompiler, get_compiler
from hostmetrics_kernel.domain.dtos import UNSET, RuleInfo, RulePatch, RuleSpec
from hostmetrics_kernel.domain.platform import PlatformCatalog
from hostmetrics_kernel.exceptions import (
    OptimisticLockError,
    RuleNotFoundError,
    RuleOwnershipError,
    RuleValidationError,
    TemplateNotFoundError,
)
from hostmetrics_kernel.logging_config import LogContext, get_logger
from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate
from hostmetrics_kernel.services.base import BaseService
from hostmetrics_kernel.services.owner_sequence import OwnerSequenceService

logger = get_logger("services.rule")

MAX_TARGET_FIELD_LENGTH = 100
PRIORITY_MIN = -(2**31)
PRIORITY_MAX = 2**31 - 1


class RuleService(BaseService[CalculationRule]):
    """Write service for calculation rules."""

    def __init__(
        self,
        session: Session,
        catalog: PlatformCatalog | None = None,
        compiler: FormulaCompiler | None = None,
    ):
        super().__init__(session)
        self._catalog = catalog or PlatformCatalog()
        self._compiler = compiler
        self._sequence = OwnerSequenceService(session)

    # -- validation -------------------------------------------------------

    def _check_formula(self, formula: str) -> str:
        (self._compiler or get_compiler()).compile(formula)
        return formula

    def _check_target_field(self, target_field: object) -> str:
        if not isinstance(target_field, str) or not target_field.strip():
            raise RuleValidationError("target_field", target_field, "must be a non-empty string")
        value = target_field.strip()
        if len(value) > MAX_TARGET_FIELD_LENGTH:
            raise RuleValidationError(
                "target_field", value, f"longer than {MAX_TARGET_FIELD_LENGTH} characters"
            )
        return value

    def _check_priority(self, priority: object) -> int | None:
        if priority is None:
            return None
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise RuleValidationError("priority", priority, "must be an integer or None")
        if not PRIORITY_MIN <= priority <= PRIORITY_MAX:
            raise RuleValidationError(
                "priority", priority, f"must be between {PRIORITY_MIN} and {PRIORITY_MAX}"
            )
        return priority

    def _check_template(self, template_id: UUID | None, owner_id: UUID) -> None:
        if template_id is None:
            return
        template = self.session.get(CalculationRuleTemplate, template_id)
        if template is None or template.owner_id != owner_id:
            raise TemplateNotFoundError(str(template_id))

    def _get_rule(self, rule_id: UUID, owner_id: UUID | None) -> CalculationRule:
        rule = self.session.get(CalculationRule, rule_id)
        if rule is None:
            raise RuleNotFoundError(str(rule_id))
        if owner_id is not None and rule.owner_id != owner_id:
            raise RuleOwnershipError(str(owner_id), str(rule_id))
        return rule

    def _flush(self, rule_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("rule_version_conflict", extra={"rule_id": str(rule_id)})
            raise OptimisticLockError("calculation_rule", str(rule_id)) from exc

    # -- creation ---------------------------------------------------------

    def _build_rule(
        self,
        owner_id: UUID,
        spec: RuleSpec,
        actor_id: UUID,
        template_id: UUID | None,
    ) -> CalculationRule:
        platform = self._catalog.normalize(spec.platform)
        target_field = self._check_target_field(spec.target_field)
        priority = self._check_priority(spec.priority)
        formula = self._check_formula(spec.formula)
        return CalculationRule(
            owner_id=owner_id,
            template_id=template_id,
            platform=platform,
            target_field=target_field,
            formula=formula,
            priority=priority,
            is_active=bool(spec.is_active),
            notes=spec.notes,
            created_by_id=actor_id,
        )

    def create_rule(
        self,
        owner_id: UUID,
        platform: str,
        target_field: str,
        formula: str,
        actor_id: UUID,
        template_id: UUID | None = None,
        priority: int | None = None,
        notes: str | None = None,
        is_active: bool = True,
    ) -> RuleInfo:
        """
        Create a rule.

        Args:
            owner_id: Owning property manager.
            platform: ``ALL`` or a channel identifier (case-insensitive).
            target_field: Canonical field wire name or a custom field name.
            formula: Formula text, stored verbatim after validation.
            actor_id: User performing the change (audit column).
            template_id: Template to file the rule under; None = global rule.
            priority: Lower wins; None sorts after every prioritised rule.
            notes: Free text.
            is_active: Whether resolution sees the rule.

        Returns:
            The created rule.

        Raises:
            FormulaSyntaxError: Formula does not parse.
            UnknownPlatformError: Platform outside the catalog.
            RuleValidationError: Blank target field or non-integer priority.
            TemplateNotFoundError: Template missing or another owner's.
        """
        spec = RuleSpec(
            platform=platform,
            target_field=target_field,
            formula=formula,
            priority=priority,
            notes=notes,
            is_active=is_active,
        )
        return self.bulk_create_rules(owner_id, [spec], actor_id, template_id)[0]

    def bulk_create_rules(
        self,
        owner_id: UUID,
        specs: Sequence[RuleSpec],
        actor_id: UUID,
        template_id: UUID | None = None,
    ) -> list[RuleInfo]:
        """
        Create several rules, all or nothing.

        Every spec is validated before anything is written; one bad spec
        rejects the whole batch.  Rules receive consecutive creation
        sequence values in input order.
        """
        self._check_template(template_id, owner_id)
        rules = [self._build_rule(owner_id, spec, actor_id, template_id) for spec in specs]
        if not rules:
            return []

        for rule, seq in zip(rules, self._sequence.allocate(owner_id, len(rules))):
            rule.creation_seq = seq
            self.session.add(rule)
        self.session.flush()

        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            for rule in rules:
                logger.info(
                    "rule_created",
                    extra={
                        "rule_id": str(rule.id),
                        "platform": rule.platform,
                        "target_field": rule.target_field,
                        "priority": rule.priority,
                        "creation_seq": rule.creation_seq,
                    },
                )
        return [RuleInfo.from_model(r) for r in rules]

    # -- edits ------------------------------------------------------------

    def update_rule(
        self,
        rule_id: UUID,
        patch: RulePatch,
        actor_id: UUID,
        owner_id: UUID | None = None,
    ) -> RuleInfo:
        """
        Apply a partial update.

        A platform change allocates a fresh creation sequence for the rule.

        Raises:
            RuleNotFoundError: Unknown rule.
            RuleOwnershipError: ``owner_id`` given and not the rule's owner.
            OptimisticLockError: ``patch.expected_version`` is stale, or the
                row changed underneath this transaction.
            FormulaSyntaxError / UnknownPlatformError / RuleValidationError:
                Malformed new values.
        """
        rule = self._get_rule(rule_id, owner_id)
        if patch.expected_version is not None and patch.expected_version != rule.version:
            raise OptimisticLockError("calculation_rule", str(rule_id))

        changed = patch.changed_fields()
        if not changed:
            return RuleInfo.from_model(rule)

        # validate everything before touching the row
        values: dict[str, object] = {}
        if patch.platform is not UNSET:
            values["platform"] = self._catalog.normalize(patch.platform)
        if patch.target_field is not UNSET:
            values["target_field"] = self._check_target_field(patch.target_field)
        if patch.formula is not UNSET:
            values["formula"] = self._check_formula(patch.formula)
        if patch.priority is not UNSET:
            values["priority"] = self._check_priority(patch.priority)
        if patch.is_active is not UNSET:
            values["is_active"] = bool(patch.is_active)
        if patch.notes is not UNSET:
            values["notes"] = patch.notes

        seq = self._sequence.next_value(rule.owner_id)
        platform_changed = "platform" in values and values["platform"] != rule.platform

        for name, value in values.items():
            setattr(rule, name, value)
        if platform_changed:
            rule.creation_seq = seq
        rule.updated_by_id = actor_id
        self._flush(rule_id)

        with LogContext.bind(owner_id=rule.owner_id, rule_id=rule_id):
            logger.info(
                "rule_updated",
                extra={
                    "changed_fields": list(changed),
                    "platform_changed": platform_changed,
                    "version": rule.version,
                },
            )
        return RuleInfo.from_model(rule)

    def set_rule_active(
        self,
        rule_id: UUID,
        is_active: bool,
        actor_id: UUID,
        owner_id: UUID | None = None,
    ) -> RuleInfo:
        """Activate or deactivate a rule; the row is kept either way."""
        return self.update_rule(rule_id, RulePatch(is_active=is_active), actor_id, owner_id)

    def activate_rule(self, rule_id: UUID, actor_id: UUID, owner_id: UUID | None = None) -> RuleInfo:
        return self.set_rule_active(rule_id, True, actor_id, owner_id)

    def deactivate_rule(self, rule_id: UUID, actor_id: UUID, owner_id: UUID | None = None) -> RuleInfo:
        return self.set_rule_active(rule_id, False, actor_id, owner_id)

    def delete_rule(self, rule_id: UUID, owner_id: UUID | None = None) -> None:
        """
        Delete a rule.  The next resolution no longer sees it.

        Raises:
            RuleNotFoundError: Unknown rule.
            RuleOwnershipError: ``owner_id`` given and not the rule's owner.
            OptimisticLockError: The row changed underneath this transaction.
        """
        rule = self._get_rule(rule_id, owner_id)
        rule_owner = rule.owner_id
        self._sequence.next_value(rule_owner)
        self.session.delete(rule)
        self._flush(rule_id)
        with LogContext.bind(owner_id=rule_owner, rule_id=rule_id):
            logger.info("rule_deleted")
