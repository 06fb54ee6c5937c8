"""
Formula language for calculation rules.

    from hostmetrics_engines.formula import compile_formula, evaluate

    expr = compile_formula("[totalPayout] - [channelFee]")
    evaluate(expr, {"totalPayout": "500.00", "channelFee": 75})  # Decimal("425.00")
"""

from hostmetrics_engines.formula.compiler import (
    CacheInfo,
    FormulaCompiler,
    compile_formula,
    configure_compiler,
    get_compiler,
)
from hostmetrics_engines.formula.evaluator import evaluate, literal_matches
from hostmetrics_engines.formula.legacy import is_legacy_path, upgrade_legacy_formula
from hostmetrics_engines.formula.nodes import (
    BinaryOp,
    CompiledExpression,
    FieldRef,
    Lookup,
    Negate,
    Node,
    Number,
    render,
)
from hostmetrics_engines.formula.parser import MAX_DEPTH, parse, tokenize
from hostmetrics_engines.formula.validator import (
    FormulaIssue,
    is_valid_formula,
    referenced_fields,
    validate_formula,
)

__all__ = [
    "BinaryOp",
    "CacheInfo",
    "CompiledExpression",
    "FieldRef",
    "FormulaCompiler",
    "FormulaIssue",
    "Lookup",
    "MAX_DEPTH",
    "Negate",
    "Node",
    "Number",
    "compile_formula",
    "configure_compiler",
    "evaluate",
    "get_compiler",
    "is_legacy_path",
    "is_valid_formula",
    "literal_matches",
    "parse",
    "referenced_fields",
    "render",
    "tokenize",
    "upgrade_legacy_formula",
    "validate_formula",
]
