"""
Module: hostmetrics_engines
Responsibility:
    Pure computation for the rule engine: the formula language, the platform
    adapter registry and the resolution engine.  This is the import surface
    for hostmetrics_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import hostmetrics_kernel (domain, exceptions, logging).
    MUST NOT import hostmetrics_services or hostmetrics_config.

Invariants enforced:
    - Decimal-only arithmetic; floats from records are converted through
      their shortest string form.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from hostmetrics_engines import ResolutionEngine, compile_formula, evaluate
"""

from hostmetrics_engines.formula import (
    CompiledExpression,
    FormulaCompiler,
    FormulaIssue,
    compile_formula,
    evaluate,
    parse,
    upgrade_legacy_formula,
    validate_formula,
)
from hostmetrics_engines.platform_adapters import (
    DEFAULT_ADAPTER,
    DerivedRatio,
    FallbackKind,
    FallbackValue,
    PlatformAdapter,
    PlatformAdapterRegistry,
)
from hostmetrics_engines.resolution import (
    FieldResolution,
    ResolutionEngine,
    ResolutionSource,
    ResolutionTrace,
    order_candidates,
    precedence_key,
)

__all__ = [
    "CompiledExpression",
    "FormulaCompiler",
    "FormulaIssue",
    "compile_formula",
    "evaluate",
    "parse",
    "upgrade_legacy_formula",
    "validate_formula",
    "DEFAULT_ADAPTER",
    "DerivedRatio",
    "FallbackKind",
    "FallbackValue",
    "PlatformAdapter",
    "PlatformAdapterRegistry",
    "FieldResolution",
    "ResolutionEngine",
    "ResolutionSource",
    "ResolutionTrace",
    "order_candidates",
    "precedence_key",
]
