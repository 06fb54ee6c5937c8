"""
Expression tree for calculation-rule formulas.

Every node is a frozen dataclass, so a compiled formula can be shared across
threads and cached by its source text.  ``render`` produces the canonical
text of a tree; re-parsing that text yields an equal tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union


@dataclass(frozen=True)
class Number:
    """Numeric literal.  ``lexeme`` is the literal as written."""

    value: Decimal
    lexeme: str


@dataclass(frozen=True)
class FieldRef:
    """``[name]`` -- exact key lookup on the raw booking record."""

    name: str


@dataclass(frozen=True)
class Lookup:
    """
    ``[array].find([key] == literal).[projection]``

    Finds the first element of the record's ``array`` list whose ``key``
    equals ``literal`` and projects ``projection`` from it.
    """

    array: str
    key: str
    literal: Decimal | str
    projection: str


@dataclass(frozen=True)
class BinaryOp:
    op: str  # one of + - * /
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Negate:
    operand: "Node"


Node = Union[Number, FieldRef, Lookup, BinaryOp, Negate]

_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}
_UNARY_PRECEDENCE = 3


@dataclass(frozen=True)
class CompiledExpression:
    """
    A parsed formula.

    Attributes:
        source: The formula exactly as stored on the rule.
        root: Root node of the expression tree.
        field_refs: Top-level record keys the formula reads, in first-use
            order (lookup arrays included, lookup keys/projections not).
        text: Canonical rendering of ``root``.
    """

    source: str
    root: Node
    field_refs: tuple[str, ...]
    text: str


def collect_field_refs(node: Node) -> tuple[str, ...]:
    """Record keys referenced by a tree, de-duplicated in first-use order."""
    seen: dict[str, None] = {}
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, FieldRef):
            seen.setdefault(current.name, None)
        elif isinstance(current, Lookup):
            seen.setdefault(current.array, None)
        elif isinstance(current, BinaryOp):
            # right pushed first so the left operand is visited first
            stack.append(current.right)
            stack.append(current.left)
        elif isinstance(current, Negate):
            stack.append(current.operand)
    return tuple(seen)


def _quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _precedence(node: Node) -> int:
    if isinstance(node, BinaryOp):
        return _PRECEDENCE[node.op]
    if isinstance(node, Negate):
        return _UNARY_PRECEDENCE
    return 4


def render(node: Node) -> str:
    """Canonical formula text for a tree, with only the parentheses it needs."""
    if isinstance(node, Number):
        return node.lexeme
    if isinstance(node, FieldRef):
        return f"[{node.name}]"
    if isinstance(node, Lookup):
        literal = (
            _quote(node.literal) if isinstance(node.literal, str) else format(node.literal, "f")
        )
        return f"[{node.array}].find([{node.key}] == {literal}).[{node.projection}]"
    if isinstance(node, Negate):
        inner = render(node.operand)
        if _precedence(node.operand) < _UNARY_PRECEDENCE:
            inner = f"({inner})"
        return f"-{inner}"

    prec = _PRECEDENCE[node.op]
    left = render(node.left)
    right = render(node.right)
    if _precedence(node.left) < prec:
        left = f"({left})"
    # operators are left-associative: an equal-precedence right operand needs parens
    if _precedence(node.right) <= prec:
        right = f"({right})"
    return f"{left} {node.op} {right}"
