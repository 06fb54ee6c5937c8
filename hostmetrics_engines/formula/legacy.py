"""
Upgrade legacy field-path mappings to the formula grammar.

Older webhook field mappings were written as JavaScript-style paths:

    financeField.find(f => f.name === "baseRate").total
    data.financeField.find(f => f.name === 'vat')?.total
    data.guestName
    totalPrice

These are recognised by pattern only and rewritten into the closed grammar
(``[financeField].find([name] == "baseRate").[total]``).  Nothing is ever
evaluated.  The ``data.`` envelope prefix of webhook payloads is dropped,
since resolution runs on the unwrapped record.
"""

from __future__ import annotations

import re
from decimal import Decimal

from hostmetrics_engines.formula.nodes import FieldRef, Lookup, render
from hostmetrics_engines.formula.parser import parse
from hostmetrics_kernel.exceptions import FormulaSyntaxError

_IDENT = r"[A-Za-z_$][A-Za-z0-9_$]*"

_FIND_PATH = re.compile(
    rf"""^\s*
    (?:data\s*\.\s*)?
    (?P<array>{_IDENT})\s*\.\s*find\s*\(\s*
    \(?\s*(?P<param>{_IDENT})\s*\)?\s*=>\s*
    (?P=param)\s*\.\s*(?P<key>{_IDENT})\s*===?\s*
    (?:(?P<quote>["'])(?P<text>(?:\\.|(?!(?P=quote)).)*)(?P=quote)|(?P<number>-?\d+(?:\.\d+)?))
    \s*\)\s*\??\s*\.\s*(?P<projection>{_IDENT})\s*$""",
    re.VERBOSE,
)

_DOTTED_PATH = re.compile(rf"^\s*(?:data\s*\.\s*)?(?P<name>{_IDENT})\s*$")

_ESCAPE = re.compile(r"\\(.)")


def is_legacy_path(text: str) -> bool:
    """True when ``text`` is a recognised legacy field path."""
    return bool(_FIND_PATH.match(text) or _DOTTED_PATH.match(text))


def upgrade_legacy_formula(text: str) -> str:
    """
    Rewrite a legacy field path into formula syntax.

    Text that already parses as a formula is returned unchanged.

    Raises:
        FormulaSyntaxError: If the text is neither a valid formula nor a
            recognised legacy path.
    """
    try:
        parse(text)
        return text
    except FormulaSyntaxError as original:
        error = original

    match = _FIND_PATH.match(text)
    if match is not None:
        if match.group("number") is not None:
            literal: Decimal | str = Decimal(match.group("number"))
        else:
            literal = _ESCAPE.sub(r"\1", match.group("text"))
        node = Lookup(
            array=match.group("array"),
            key=match.group("key"),
            literal=literal,
            projection=match.group("projection"),
        )
        return render(node)

    match = _DOTTED_PATH.match(text)
    if match is not None:
        return render(FieldRef(match.group("name")))

    raise FormulaSyntaxError(
        text,
        f"not a formula or a recognised legacy field path ({error.reason})",
        error.position,
    )
