"""
Formula evaluator -- compiled expression + raw booking record -> Decimal or absent.

Pure and total: a data-shape problem in the record (missing key, null, text
that is not a number, a lookup that finds nothing, division by zero) makes
the result absent (None).  Nothing in a record can make evaluation raise.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, DecimalException, localcontext
from typing import Any

from hostmetrics_engines.formula.nodes import (
    BinaryOp,
    CompiledExpression,
    FieldRef,
    Lookup,
    Negate,
    Node,
    Number,
)
from hostmetrics_kernel.domain.values import to_decimal

# Working precision for formula arithmetic; results are rounded by callers
_PRECISION = 34


def evaluate(expression: CompiledExpression | Node, record: Any) -> Decimal | None:
    """
    Evaluate an expression against one raw booking record.

    Args:
        expression: A CompiledExpression (or bare tree node).
        record: The raw booking fields.  Anything that is not a mapping is
            treated as an empty record.

    Returns:
        A finite Decimal, or None when any referenced value is absent.
    """
    root = expression.root if isinstance(expression, CompiledExpression) else expression
    if not isinstance(record, Mapping):
        record = {}
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        try:
            result = _eval(root, record)
        except DecimalException:
            # overflow / underflow on extreme magnitudes
            return None
    if result is None or not result.is_finite():
        return None
    return result


def _eval(node: Node, record: Mapping) -> Decimal | None:
    if isinstance(node, Number):
        return node.value

    if isinstance(node, FieldRef):
        return to_decimal(record.get(node.name))

    if isinstance(node, Lookup):
        return _lookup(node, record)

    if isinstance(node, Negate):
        value = _eval(node.operand, record)
        return None if value is None else -value

    left = _eval(node.left, record)
    if left is None:
        return None
    right = _eval(node.right, record)
    if right is None:
        return None
    return _apply(node, left, right)


def _apply(node: BinaryOp, left: Decimal, right: Decimal) -> Decimal | None:
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if right == 0:
        return None
    return left / right


def _lookup(node: Lookup, record: Mapping) -> Decimal | None:
    items = record.get(node.array)
    if not isinstance(items, (list, tuple)):
        return None
    for item in items:
        if not isinstance(item, Mapping) or node.key not in item:
            continue
        if literal_matches(item[node.key], node.literal):
            # first match is final even when its projection is absent
            return to_decimal(item.get(node.projection))
    return None


def literal_matches(value: Any, literal: Decimal | str) -> bool:
    """
    Equality used by ``find``.

    A string literal matches only an equal string.  A number literal matches
    any value that coerces to an equal number (``1``, ``1.0``, ``"1.00"``).
    """
    if isinstance(literal, str):
        return isinstance(value, str) and value == literal
    number = to_decimal(value)
    return number is not None and number == literal
