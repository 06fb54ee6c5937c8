"""
Non-raising formula validation for previews.

``validate_formula`` returns a list of issues instead of raising.  An empty
list means the formula can be saved.  Warnings never block a save; they
flag formulas that parse but probably do not do what the author meant.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from hostmetrics_engines.formula.nodes import CompiledExpression
from hostmetrics_engines.formula.parser import parse
from hostmetrics_kernel.exceptions import FormulaSyntaxError

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class FormulaIssue:
    """A problem found in a formula."""

    formula: str
    message: str
    position: int = 0
    severity: str = ERROR


def validate_formula(
    formula: str,
    known_fields: Iterable[str] | None = None,
) -> list[FormulaIssue]:
    """
    Validate a formula without raising.

    Args:
        formula: Formula text.
        known_fields: When given, references to record keys outside this set
            are reported as warnings (the key may simply be absent from the
            sample the author is looking at).

    Returns:
        Issues found.  No ``error`` issues means the formula is valid.
    """
    try:
        compiled = parse(formula)
    except FormulaSyntaxError as e:
        return [FormulaIssue(formula=str(formula), message=e.reason, position=e.position)]

    issues: list[FormulaIssue] = []
    if known_fields is not None:
        known = set(known_fields)
        for name in compiled.field_refs:
            if name not in known:
                issues.append(
                    FormulaIssue(
                        formula=formula,
                        message=f"field [{name}] is not present in the known fields",
                        position=max(formula.find(f"[{name}]"), 0),
                        severity=WARNING,
                    )
                )
    if not compiled.field_refs:
        issues.append(
            FormulaIssue(
                formula=formula,
                message="formula references no record fields and is a constant",
                severity=WARNING,
            )
        )
    return issues


def is_valid_formula(formula: str) -> bool:
    return not any(i.severity == ERROR for i in validate_formula(formula))


def referenced_fields(formula: str) -> tuple[str, ...]:
    """Record keys a valid formula reads.

    Raises:
        FormulaSyntaxError: If the formula does not parse.
    """
    compiled: CompiledExpression = parse(formula)
    return compiled.field_refs
