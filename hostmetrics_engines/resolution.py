"""
Resolution engine -- raw booking record + rule snapshot -> ResolvedFinancials.

Responsibility:
    For every canonical financial field (and every custom field some rule
    targets), pick the single winning rule and evaluate its formula; when no
    rule applies, fall back to the platform adapter.

Architecture position:
    Engines -- pure computation over an immutable rule snapshot.  Fetching
    the snapshot (owner scoping, active filter) is the resolution service's
    job; this module never touches the database.

Invariants enforced:
    - Precedence, per field, among active rules whose platform is the record
      platform or ``ALL``:
        1. platform-specific before ``ALL``
        2. ascending priority, unprioritised (None) last
        3. most recently created first (higher creation_seq first)
        4. rule id text, so the order is total
    - The first candidate is final: if its formula evaluates to absent, the
      field is absent.  Lower candidates and adapters are never consulted.
    - Adapters are consulted only when the candidate set is empty.
    - Custom (non-canonical) fields are rule-only.
    - Deterministic: same record, platform and snapshot give the same result.

Failure modes:
    - UnknownPlatformError for an unknown record platform or ``ALL``.
    - Never raises for record contents.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from hostmetrics_engines.formula.compiler import FormulaCompiler, get_compiler
from hostmetrics_engines.formula.evaluator import evaluate
from hostmetrics_engines.platform_adapters import FallbackKind, PlatformAdapterRegistry
from hostmetrics_engines.tracer import traced_engine
from hostmetrics_kernel.domain.dtos import RuleSnapshot
from hostmetrics_kernel.domain.financials import (
    CANONICAL_FIELD_NAMES,
    CanonicalField,
    ResolvedFinancials,
)
from hostmetrics_kernel.domain.platform import WILDCARD, PlatformCatalog, matches
from hostmetrics_kernel.exceptions import FormulaSyntaxError
from hostmetrics_kernel.logging_config import get_logger

logger = get_logger("engines.resolution")

ENGINE_VERSION = "1.0"


class ResolutionSource(str, Enum):
    """Where a field's value came from."""

    RULE = "RULE"
    ADAPTER = "ADAPTER"
    DERIVED = "DERIVED"
    NONE = "NONE"


@dataclass(frozen=True)
class FieldResolution:
    """Provenance of one resolved field."""

    field: str
    value: Decimal | None
    source: ResolutionSource
    rule_id: UUID | None = None
    raw_field: str | None = None
    candidate_count: int = 0


@dataclass(frozen=True)
class ResolutionTrace:
    """Resolved financials together with per-field provenance."""

    financials: ResolvedFinancials
    platform: str
    fields: tuple[FieldResolution, ...]

    def for_field(self, name: str) -> FieldResolution | None:
        for resolution in self.fields:
            if resolution.field == name:
                return resolution
        return None


def precedence_key(rule: RuleSnapshot) -> tuple:
    """Sort key implementing rule precedence (smallest key wins)."""
    return (
        1 if rule.platform == WILDCARD else 0,
        rule.priority is None,
        rule.priority if rule.priority is not None else 0,
        -rule.creation_seq,
        str(rule.rule_id),
    )


def order_candidates(rules: Iterable[RuleSnapshot], record_platform: str) -> list[RuleSnapshot]:
    """Active rules applicable to ``record_platform``, best first."""
    applicable = [
        r for r in rules if r.is_active and matches(r.platform, record_platform)
    ]
    applicable.sort(key=precedence_key)
    return applicable


def group_candidates(
    rules: Iterable[RuleSnapshot], record_platform: str
) -> dict[str, list[RuleSnapshot]]:
    """Ordered candidates per target field."""
    grouped: dict[str, list[RuleSnapshot]] = {}
    for rule in order_candidates(rules, record_platform):
        grouped.setdefault(rule.target_field, []).append(rule)
    return grouped


class ResolutionEngine:
    """
    Resolves booking records into canonical financial fields.

    Thread-safe: holds only the adapter registry, the platform catalog and
    the (locked) formula compiler, none of which change during resolution.
    """

    def __init__(
        self,
        adapters: PlatformAdapterRegistry,
        catalog: PlatformCatalog | None = None,
        compiler: FormulaCompiler | None = None,
    ):
        self._adapters = adapters
        self._catalog = catalog or PlatformCatalog()
        self._compiler = compiler

    @property
    def adapters(self) -> PlatformAdapterRegistry:
        return self._adapters

    @property
    def catalog(self) -> PlatformCatalog:
        return self._catalog

    def _compile(self, formula: str):
        compiler = self._compiler or get_compiler()
        return compiler.compile(formula)

    def resolve(
        self,
        record: Mapping[str, Any],
        platform: str,
        rules: Sequence[RuleSnapshot],
    ) -> ResolvedFinancials:
        """
        Resolve one record.

        Args:
            record: Raw booking fields.
            platform: The record's source platform (not ``ALL``).
            rules: The owner's rule snapshot.

        Raises:
            UnknownPlatformError: For an unknown platform or ``ALL``.
        """
        return self.resolve_with_trace(record, platform, rules).financials

    @traced_engine("resolution", ENGINE_VERSION, fingerprint_fields=("record", "platform"))
    def resolve_with_trace(
        self,
        record: Mapping[str, Any],
        platform: str,
        rules: Sequence[RuleSnapshot],
    ) -> ResolutionTrace:
        """Resolve one record and report where every field came from."""
        record_platform = self._catalog.normalize_record_platform(platform)
        if not isinstance(record, Mapping):
            record = {}
        grouped = group_candidates(rules, record_platform)

        resolutions: list[FieldResolution] = []
        for cf in CanonicalField:
            resolutions.append(
                self._resolve_field(cf.value, record, record_platform, grouped.get(cf.value, []))
            )
        for name in sorted(n for n in grouped if n not in CANONICAL_FIELD_NAMES):
            resolutions.append(self._resolve_field(name, record, record_platform, grouped[name]))

        financials = ResolvedFinancials.from_values({r.field: r.value for r in resolutions})
        return ResolutionTrace(
            financials=financials,
            platform=record_platform,
            fields=tuple(resolutions),
        )

    def _resolve_field(
        self,
        name: str,
        record: Mapping[str, Any],
        record_platform: str,
        candidates: list[RuleSnapshot],
    ) -> FieldResolution:
        if candidates:
            winner = candidates[0]
            return FieldResolution(
                field=name,
                value=self._evaluate_rule(winner, record),
                source=ResolutionSource.RULE,
                rule_id=winner.rule_id,
                candidate_count=len(candidates),
            )

        if name in CANONICAL_FIELD_NAMES:
            fallback = self._adapters.resolve_fallback(record, record_platform, name)
            if fallback is not None:
                source = (
                    ResolutionSource.DERIVED
                    if fallback.kind is FallbackKind.DERIVED
                    else ResolutionSource.ADAPTER
                )
                return FieldResolution(
                    field=name,
                    value=fallback.value,
                    source=source,
                    raw_field=fallback.raw_field,
                )

        return FieldResolution(field=name, value=None, source=ResolutionSource.NONE)

    def _evaluate_rule(self, rule: RuleSnapshot, record: Mapping[str, Any]) -> Decimal | None:
        try:
            compiled = self._compile(rule.formula)
        except FormulaSyntaxError as e:
            # stored before validation existed; the rule still wins, with no value
            logger.warning(
                "rule_formula_invalid",
                extra={
                    "rule_id": str(rule.rule_id),
                    "formula": rule.formula,
                    "reason": e.reason,
                },
            )
            return None
        return evaluate(compiled, record)

    def resolve_batch(
        self,
        items: Sequence[tuple[Mapping[str, Any], str]],
        rules: Sequence[RuleSnapshot],
        max_workers: int | None = None,
    ) -> list[ResolvedFinancials]:
        """
        Resolve many (record, platform) pairs against one rule snapshot.

        Results are in input order and equal to resolving each item alone.
        ``max_workers`` of None or 1 resolves sequentially.

        Raises:
            UnknownPlatformError: If any item has an unknown platform.
        """
        snapshot = tuple(rules)
        if not max_workers or max_workers <= 1 or len(items) <= 1:
            return [self.resolve(record, platform, snapshot) for record, platform in items]

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="resolve") as pool:
            futures = [
                pool.submit(self.resolve, record, platform, snapshot)
                for record, platform in items
            ]
            return [f.result() for f in futures]
