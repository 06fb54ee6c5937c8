"""
ResolutionService -- resolve booking records for an owner.

Takes a read-only snapshot of the owner's active rules (no locks, no
caching across calls, so a rule deleted or deactivated in a committed
transaction is invisible to the next call) and hands it to the pure
ResolutionEngine.  A batch shares one snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hostmetrics_engines.resolution import ResolutionEngine, ResolutionTrace
from hostmetrics_kernel.domain.dtos import RuleSnapshot
from hostmetrics_kernel.domain.financials import ResolvedFinancials
from hostmetrics_kernel.logging_config import LogContext, get_logger
from hostmetrics_kernel.selectors.rule_selector import RuleSelector

logger = get_logger("services.resolution")


class ResolutionService:
    """Owner-scoped resolution over the current rule set."""

    def __init__(self, session: Session, engine: ResolutionEngine, max_workers: int = 1):
        self._selector = RuleSelector(session)
        self._engine = engine
        self._max_workers = max_workers

    def snapshot(
        self,
        owner_id: UUID,
        platform: str | None = None,
        template_id: UUID | None = None,
    ) -> tuple[RuleSnapshot, ...]:
        """Active rules of the owner, optionally narrowed to a platform/template."""
        return self._selector.active_snapshot(owner_id, platform, template_id)

    def resolve_with_trace(
        self,
        record: Mapping[str, Any],
        platform: str,
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> ResolutionTrace:
        """
        Resolve one record with per-field provenance.

        Args:
            record: Raw booking fields.
            platform: The record's source platform.
            owner_id: Whose rules apply.
            template_id: When given, only that template's rules plus global
                (untemplated) rules are candidates.

        Raises:
            UnknownPlatformError: Unknown platform or ``ALL``.
        """
        record_platform = self._engine.catalog.normalize_record_platform(platform)
        rules = self.snapshot(owner_id, record_platform, template_id)
        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            trace = self._engine.resolve_with_trace(record, record_platform, rules)
            logger.debug(
                "resolution_completed",
                extra={
                    "platform": record_platform,
                    "rule_count": len(rules),
                    "present_fields": list(trace.financials.present_fields),
                },
            )
        return trace

    def resolve(
        self,
        record: Mapping[str, Any],
        platform: str,
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> ResolvedFinancials:
        return self.resolve_with_trace(record, platform, owner_id, template_id).financials

    def resolve_batch(
        self,
        items: Sequence[tuple[Mapping[str, Any], str]],
        owner_id: UUID,
        template_id: UUID | None = None,
    ) -> list[ResolvedFinancials]:
        """
        Resolve many (record, platform) pairs against one rule snapshot.

        Results are in input order.  Raises UnknownPlatformError before any
        work is done if any item has an invalid platform.
        """
        catalog = self._engine.catalog
        normalized = [(record, catalog.normalize_record_platform(p)) for record, p in items]
        rules = self.snapshot(owner_id, None, template_id)
        with LogContext.bind(owner_id=owner_id, template_id=template_id):
            results = self._engine.resolve_batch(normalized, rules, self._max_workers)
            logger.info(
                "batch_resolution_completed",
                extra={
                    "record_count": len(normalized),
                    "rule_count": len(rules),
                    "workers": self._max_workers,
                },
            )
        return results
