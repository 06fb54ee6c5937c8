"""
Formula parser -- formula text to an immutable expression tree.

Grammar (closed; nothing outside it is accepted):

    expr     := term (("+" | "-") term)*
    term     := factor (("*" | "/") factor)*
    factor   := "-" factor | number | fieldRef | lookup | "(" expr ")"
    fieldRef := "[" <any character except "]">+ "]"
    lookup   := fieldRef "." "find" "(" fieldRef "==" literal ")" "." fieldRef
    literal  := ["-"] number | quotedString

Quoted strings use single or double quotes with backslash escapes.  The only
identifier in the language is ``find``; any other word is rejected, so a
formula can never name a function, a variable or an attribute.

The parser is a small recursive-descent parser over a token list.  Tree
height is capped at MAX_DEPTH so parsing, rendering and evaluation never
approach the interpreter's recursion limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import NoReturn

from hostmetrics_engines.formula.nodes import (
    BinaryOp,
    CompiledExpression,
    FieldRef,
    Lookup,
    Negate,
    Node,
    Number,
    collect_field_refs,
    render,
)
from hostmetrics_kernel.exceptions import FormulaSyntaxError

MAX_DEPTH = 64
MAX_FORMULA_LENGTH = 4000

_LOOKUP_METHOD = "find"


class TokenKind(str, Enum):
    NUMBER = "number"
    FIELD = "field"
    STRING = "string"
    IDENT = "identifier"
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    LPAREN = "("
    RPAREN = ")"
    DOT = "."
    EQEQ = "=="
    END = "end of formula"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int


_SINGLE_CHAR = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.STAR,
    "/": TokenKind.SLASH,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
}


def tokenize(formula: str) -> list[Token]:
    """
    Split formula text into tokens.

    Raises:
        FormulaSyntaxError: On an unterminated field reference or string, a
            stray ``]``, or any character outside the language.
    """
    tokens: list[Token] = []
    i = 0
    n = len(formula)
    while i < n:
        ch = formula[i]
        if ch.isspace():
            i += 1
            continue

        if ch in _SINGLE_CHAR:
            tokens.append(Token(_SINGLE_CHAR[ch], ch, i))
            i += 1
            continue

        if ch == "[":
            end = formula.find("]", i + 1)
            if end == -1:
                raise FormulaSyntaxError(formula, "unbalanced '[': missing ']'", i)
            name = formula[i + 1 : end]
            if not name:
                raise FormulaSyntaxError(formula, "empty field reference '[]'", i)
            if "[" in name:
                raise FormulaSyntaxError(
                    formula, "unbalanced '[': nested '[' in field reference", i + 1 + name.index("[")
                )
            tokens.append(Token(TokenKind.FIELD, name, i))
            i = end + 1
            continue

        if ch == "]":
            raise FormulaSyntaxError(formula, "unbalanced ']' without matching '['", i)

        if ch.isdigit() or (ch == "." and i + 1 < n and formula[i + 1].isdigit()):
            start = i
            while i < n and formula[i].isdigit():
                i += 1
            # a '.' followed by a digit continues the number; '.find' does not
            if i < n and formula[i] == "." and i + 1 < n and formula[i + 1].isdigit():
                i += 1
                while i < n and formula[i].isdigit():
                    i += 1
            tokens.append(Token(TokenKind.NUMBER, formula[start:i], start))
            continue

        if ch == ".":
            tokens.append(Token(TokenKind.DOT, ch, i))
            i += 1
            continue

        if ch == "=":
            if formula.startswith("==", i):
                tokens.append(Token(TokenKind.EQEQ, "==", i))
                i += 2
                continue
            raise FormulaSyntaxError(formula, "assignment is not allowed; use '=='", i)

        if ch in ("'", '"'):
            text, end = _read_string(formula, i)
            tokens.append(Token(TokenKind.STRING, text, i))
            i = end
            continue

        if ch.isalpha() or ch == "_":
            start = i
            while i < n and (formula[i].isalnum() or formula[i] == "_"):
                i += 1
            tokens.append(Token(TokenKind.IDENT, formula[start:i], start))
            continue

        raise FormulaSyntaxError(formula, f"unexpected character {ch!r}", i)

    tokens.append(Token(TokenKind.END, "", n))
    return tokens


def _read_string(formula: str, start: int) -> tuple[str, int]:
    quote = formula[start]
    chars: list[str] = []
    i = start + 1
    n = len(formula)
    while i < n:
        ch = formula[i]
        if ch == "\\":
            if i + 1 >= n:
                break
            chars.append(formula[i + 1])
            i += 2
            continue
        if ch == quote:
            return "".join(chars), i + 1
        chars.append(ch)
        i += 1
    raise FormulaSyntaxError(formula, "unterminated string literal", start)


class _Parser:
    """Recursive-descent parser; each production returns (node, height)."""

    def __init__(self, formula: str, tokens: list[Token]):
        self._formula = formula
        self._tokens = tokens
        self._pos = 0
        self._nesting = 0

    # -- token helpers ----------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.END:
            self._pos += 1
        return token

    def _expect(self, kind: TokenKind, what: str) -> Token:
        token = self._peek()
        if token.kind is not kind:
            self._fail(f"expected {what}, found {_describe(token)}", token.position)
        return self._advance()

    def _fail(self, message: str, position: int) -> NoReturn:
        raise FormulaSyntaxError(self._formula, message, position)

    def _check_height(self, height: int, position: int) -> int:
        if height > MAX_DEPTH:
            self._fail(
                f"expression too large: more than {MAX_DEPTH} levels of operators; "
                "split it across several rules",
                position,
            )
        return height

    # -- productions ------------------------------------------------------

    def parse(self) -> Node:
        if self._peek().kind is TokenKind.END:
            self._fail("formula is empty", 0)
        node, _ = self._expr()
        token = self._peek()
        if token.kind is not TokenKind.END:
            if token.kind is TokenKind.RPAREN:
                self._fail("unbalanced ')' without matching '('", token.position)
            self._fail(f"unexpected {_describe(token)}", token.position)
        return node

    def _expr(self) -> tuple[Node, int]:
        left, height = self._term()
        while self._peek().kind in (TokenKind.PLUS, TokenKind.MINUS):
            op = self._advance()
            right, rheight = self._term()
            height = self._check_height(max(height, rheight) + 1, op.position)
            left = BinaryOp(op.text, left, right)
        return left, height

    def _term(self) -> tuple[Node, int]:
        left, height = self._factor()
        while self._peek().kind in (TokenKind.STAR, TokenKind.SLASH):
            op = self._advance()
            right, rheight = self._factor()
            height = self._check_height(max(height, rheight) + 1, op.position)
            left = BinaryOp(op.text, left, right)
        return left, height

    def _factor(self) -> tuple[Node, int]:
        token = self._peek()

        if token.kind is TokenKind.MINUS:
            self._enter(token)
            self._advance()
            operand, height = self._factor()
            self._nesting -= 1
            return Negate(operand), self._check_height(height + 1, token.position)

        if token.kind is TokenKind.NUMBER:
            self._advance()
            return Number(_to_number(self._formula, token), token.text), 1

        if token.kind is TokenKind.FIELD:
            self._advance()
            if self._peek().kind is TokenKind.DOT:
                return self._lookup(token), 1
            return FieldRef(token.text), 1

        if token.kind is TokenKind.LPAREN:
            self._enter(token)
            self._advance()
            node, height = self._expr()
            closing = self._peek()
            if closing.kind is not TokenKind.RPAREN:
                self._fail(
                    f"unbalanced '(': expected ')', found {_describe(closing)}",
                    closing.position,
                )
            self._advance()
            self._nesting -= 1
            return node, height

        if token.kind is TokenKind.IDENT:
            following = self._tokens[self._pos + 1]
            if following.kind is TokenKind.LPAREN:
                self._fail(f"unknown function {token.text!r}", token.position)
            self._fail(
                f"unexpected identifier {token.text!r}; field references are written [name]",
                token.position,
            )

        if token.kind is TokenKind.END:
            self._fail("unexpected end of formula", token.position)
        if token.kind is TokenKind.RPAREN:
            self._fail("unbalanced ')' without matching '('", token.position)
        self._fail(f"unexpected {_describe(token)}", token.position)

    def _enter(self, token: Token) -> None:
        self._nesting += 1
        if self._nesting > MAX_DEPTH:
            self._fail(f"expression nested deeper than {MAX_DEPTH} levels", token.position)

    def _lookup(self, array: Token) -> Lookup:
        self._expect(TokenKind.DOT, "'.'")
        method = self._peek()
        if method.kind is not TokenKind.IDENT or method.text != _LOOKUP_METHOD:
            if method.kind is TokenKind.IDENT:
                self._fail(f"unknown function {method.text!r}", method.position)
            self._fail(f"expected 'find', found {_describe(method)}", method.position)
        self._advance()
        self._expect(TokenKind.LPAREN, "'(' after find")
        key = self._expect(TokenKind.FIELD, "a [field] to match on")
        self._expect(TokenKind.EQEQ, "'=='")
        literal = self._literal()
        self._expect(TokenKind.RPAREN, "')' to close find(")
        self._expect(TokenKind.DOT, "'.' before the projected [field]")
        projection = self._expect(TokenKind.FIELD, "a projected [field]")
        return Lookup(array.text, key.text, literal, projection.text)

    def _literal(self) -> Decimal | str:
        token = self._peek()
        if token.kind is TokenKind.STRING:
            self._advance()
            return token.text
        negative = False
        if token.kind is TokenKind.MINUS:
            negative = True
            self._advance()
            token = self._peek()
        if token.kind is TokenKind.NUMBER:
            self._advance()
            value = _to_number(self._formula, token)
            return -value if negative else value
        self._fail(f"expected a number or quoted string, found {_describe(token)}", token.position)


def _to_number(formula: str, token: Token) -> Decimal:
    try:
        return Decimal(token.text)
    except InvalidOperation:
        raise FormulaSyntaxError(formula, f"invalid number {token.text!r}", token.position)


def _describe(token: Token) -> str:
    if token.kind is TokenKind.END:
        return "end of formula"
    if token.kind is TokenKind.FIELD:
        return f"field reference [{token.text}]"
    if token.kind is TokenKind.STRING:
        return "string literal"
    if token.kind in (TokenKind.NUMBER, TokenKind.IDENT):
        return f"{token.kind.value} {token.text!r}"
    return repr(token.text)


def parse(formula: str) -> CompiledExpression:
    """
    Compile formula text into an immutable expression.

    Raises:
        FormulaSyntaxError: If the text is empty, too long, or not in the
            grammar.
    """
    if not isinstance(formula, str):
        raise FormulaSyntaxError(repr(formula), "formula must be a string", 0)
    if len(formula) > MAX_FORMULA_LENGTH:
        raise FormulaSyntaxError(
            formula[:80] + "...",
            f"formula longer than {MAX_FORMULA_LENGTH} characters",
            MAX_FORMULA_LENGTH,
        )
    root = _Parser(formula, tokenize(formula)).parse()
    return CompiledExpression(
        source=formula,
        root=root,
        field_refs=collect_field_refs(root),
        text=render(root),
    )
