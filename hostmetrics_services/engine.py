"""
CalculationRuleEngine -- the public entrypoint of the rule engine.

Callers (booking import, report generation, the settings screens) talk to
this facade only.  It wires the template, rule and resolution services to
one SQLAlchemy session and one engine configuration.

Usage:

    from hostmetrics_kernel.db import init_engine_from_url, session_scope
    from hostmetrics_services.engine import CalculationRuleEngine

    init_engine_from_url("postgresql://...")
    with session_scope() as session:
        engine = CalculationRuleEngine(session)
        rule = engine.create_rule(owner_id, "airbnb", "mgmtFee", "[totalPayout] * 0.15")
        financials = engine.resolve(record, "airbnb", owner_id)

The facade flushes but never commits; ``session_scope()`` (or the caller)
owns the transaction.  Write methods take an optional ``actor_id`` for the
audit columns, defaulting to the owner.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hostmetrics_config import EngineConfig, get_engine_config
from hostmetrics_engines.formula.compiler import configure_compiler, get_compiler
from hostmetrics_engines.formula.validator import FormulaIssue, validate_formula
from hostmetrics_engines.resolution import ResolutionEngine, ResolutionTrace
from hostmetrics_kernel.domain.dtos import (
    CustomFieldInfo,
    RuleInfo,
    RulePatch,
    RuleSpec,
    TemplateDeletionResult,
    TemplateInfo,
)
from hostmetrics_kernel.domain.financials import ResolvedFinancials
from hostmetrics_kernel.selectors.custom_field_selector import CustomFieldSelector
from hostmetrics_kernel.selectors.rule_selector import RuleSelector
from hostmetrics_kernel.selectors.template_selector import TemplateSelector
from hostmetrics_services.resolution_service import ResolutionService
from hostmetrics_services.rule_service import RuleService
from hostmetrics_services.template_service import TemplateService


class CalculationRuleEngine:
    """
    Facade over templates, rules, the custom field catalog and resolution.

    Args:
        session: SQLAlchemy session; the caller owns commit/rollback.
        config: Engine configuration; defaults to ``get_engine_config()``.
    """

    def __init__(self, session: Session, config: EngineConfig | None = None):
        self._session = session
        self._config = config or get_engine_config()

        compiler = get_compiler()
        if compiler.cache_info().max_size != self._config.settings.formula_cache_size:
            compiler = configure_compiler(self._config.settings.formula_cache_size)

        self._rules = RuleService(session, self._config.catalog, compiler)
        self._templates = TemplateService(session, self._rules)
        self._resolver = ResolutionService(
            session,
            ResolutionEngine(self._config.adapters, self._config.catalog, compiler),
            max_workers=self._config.settings.resolution_workers,
        )
        self._rule_reader = RuleSelector(session)
        self._template_reader = TemplateSelector(session)
        self._catalog_reader = CustomFieldSelector(session)

    @property
    def config(self) -> EngineConfig:
        return self._config

    # -- templates --------------------------------------------------------

    def create_template(
        self,
        owner_id: UUID,
        name: str,
        description: str | None = None,
        is_default: bool = False,
        copy_from_template_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> TemplateInfo:
        """Create an empty template, a copy of another, and/or the new default."""
        return self._templates.create_template(
            owner_id,
            name,
            actor_id or owner_id,
            template_description=description,
            is_default=is_default,
            copy_from_template_id=copy_from_template_id,
        )

    def update_template(
        self,
        template_id: UUID,
        owner_id: UUID,
        actor_id: UUID | None = None,
        **changes: Any,
    ) -> TemplateInfo:
        """Apply ``template_name`` / ``template_description`` / ``is_default`` changes."""
        return self._templates.update_template(
            template_id, owner_id, actor_id or owner_id, **changes
        )

    def set_default_template(
        self, template_id: UUID, owner_id: UUID, actor_id: UUID | None = None
    ) -> TemplateInfo:
        return self._templates.set_default_template(template_id, owner_id, actor_id or owner_id)

    def delete_template(self, template_id: UUID, owner_id: UUID) -> TemplateDeletionResult:
        """Delete a template and its rules; warns when rules were removed."""
        return self._templates.delete_template(template_id, owner_id)

    def get_template(self, template_id: UUID, owner_id: UUID) -> TemplateInfo:
        return self._template_reader.get_template(template_id, owner_id)

    def list_templates(self, owner_id: UUID) -> list[TemplateInfo]:
        return self._template_reader.list_templates(owner_id)

    def find_template(self, owner_id: UUID, name: str) -> TemplateInfo | None:
        return self._template_reader.find_by_name(owner_id, name)

    def get_default_template(self, owner_id: UUID) -> TemplateInfo | None:
        return self._template_reader.get_default(owner_id)

    # -- rules ------------------------------------------------------------

    def create_rule(
        self,
        owner_id: UUID,
        platform: str,
        target_field: str,
        formula: str,
        template_id: UUID | None = None,
        priority: int | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> RuleInfo:
        """Validate and store a rule.  Raises on a malformed formula or platform."""
        return self._rules.create_rule(
            owner_id,
            platform,
            target_field,
            formula,
            actor_id or owner_id,
            template_id=template_id,
            priority=priority,
            notes=notes,
        )

    def create_rules(
        self,
        owner_id: UUID,
        specs: Sequence[RuleSpec],
        template_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> list[RuleInfo]:
        """Create several rules, all or nothing."""
        return self._rules.bulk_create_rules(owner_id, specs, actor_id or owner_id, template_id)

    def _owner_of(self, rule_id: UUID) -> UUID:
        return self._rule_reader.get_rule(rule_id).owner_id

    def update_rule(
        self,
        rule_id: UUID,
        patch: RulePatch,
        actor_id: UUID | None = None,
    ) -> RuleInfo:
        """Apply a partial update; the rule id never changes."""
        return self._rules.update_rule(rule_id, patch, actor_id or self._owner_of(rule_id))

    def activate_rule(self, rule_id: UUID, actor_id: UUID | None = None) -> RuleInfo:
        return self._rules.activate_rule(rule_id, actor_id or self._owner_of(rule_id))

    def deactivate_rule(self, rule_id: UUID, actor_id: UUID | None = None) -> RuleInfo:
        return self._rules.deactivate_rule(rule_id, actor_id or self._owner_of(rule_id))

    def delete_rule(self, rule_id: UUID) -> None:
        self._rules.delete_rule(rule_id)

    def get_rule(self, rule_id: UUID) -> RuleInfo:
        return self._rule_reader.get_rule(rule_id)

    def list_rules(
        self,
        owner_id: UUID,
        platform: str | None = None,
        template_id: UUID | None = None,
        active_only: bool = False,
    ) -> list[RuleInfo]:
        if platform is not None:
            platform = self._config.catalog.normalize(platform)
        return self._rule_reader.list_rules(owner_id, platform, template_id, active_only)

    def validate_formula(
        self, formula: str, known_fields: Sequence[str] | None = None
    ) -> list[FormulaIssue]:
        """Preview validation: issues instead of exceptions."""
        return validate_formula(formula, known_fields)

    # -- custom field catalog ---------------------------------------------

    def list_custom_fields(self, owner_id: UUID) -> list[CustomFieldInfo]:
        return self._catalog_reader.list_custom_fields(owner_id)

    def suggest_custom_fields(
        self, owner_id: UUID, prefix: str | None = None, limit: int | None = 10
    ) -> list[CustomFieldInfo]:
        return self._catalog_reader.suggest(owner_id, prefix, limit)

    # -- resolution -------------------------------------------------------

    def resolve(
        self,
        record: Mapping[str, Any],
        platform: str,
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> ResolvedFinancials:
        """Resolve one booking record into canonical financial fields."""
        return self._resolver.resolve(record, platform, owner_id, template_id)

    def resolve_with_trace(
        self,
        record: Mapping[str, Any],
        platform: str,
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> ResolutionTrace:
        return self._resolver.resolve_with_trace(record, platform, owner_id, template_id)

    def resolve_batch(
        self,
        items: Sequence[tuple[Mapping[str, Any], str]],
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> list[ResolvedFinancials]:
        return self._resolver.resolve_batch(items, owner_id, template_id)
