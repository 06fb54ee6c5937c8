"""
Compiled-formula cache.

Formulas are stored verbatim on rules and compiled on first use.  The same
text always compiles to the same tree, so compiled expressions are cached by
their source text in a bounded LRU shared by all threads.  Syntax errors are
not cached.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass

from hostmetrics_engines.formula.nodes import CompiledExpression
from hostmetrics_engines.formula.parser import parse
from hostmetrics_kernel.logging_config import get_logger

logger = get_logger("engines.formula.compiler")

DEFAULT_CACHE_SIZE = 1024


@dataclass(frozen=True)
class CacheInfo:
    hits: int
    misses: int
    size: int
    max_size: int


class FormulaCompiler:
    """
    Thread-safe bounded LRU of compiled formulas keyed by formula text.

    Parsing happens outside the lock; two threads compiling the same new
    formula concurrently both parse it and the first stored result wins.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE):
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._cache: OrderedDict[str, CompiledExpression] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def compile(self, formula: str) -> CompiledExpression:
        """
        Return the compiled expression for ``formula``.

        Raises:
            FormulaSyntaxError: If the formula does not parse.
        """
        with self._lock:
            cached = self._cache.get(formula)
            if cached is not None:
                self._cache.move_to_end(formula)
                self._hits += 1
                return cached
            self._misses += 1

        compiled = parse(formula)

        with self._lock:
            existing = self._cache.get(formula)
            if existing is not None:
                return existing
            self._cache[formula] = compiled
            if len(self._cache) > self._max_size:
                self._cache.popitem(last=False)

        logger.debug(
            "formula_compiled",
            extra={"formula": formula, "field_refs": list(compiled.field_refs)},
        )
        return compiled

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def cache_info(self) -> CacheInfo:
        with self._lock:
            return CacheInfo(self._hits, self._misses, len(self._cache), self._max_size)


_default_compiler = FormulaCompiler()
_default_lock = threading.Lock()


def get_compiler() -> FormulaCompiler:
    """The process-wide compiler."""
    return _default_compiler


def configure_compiler(max_size: int) -> FormulaCompiler:
    """Replace the process-wide compiler with one of the given capacity."""
    global _default_compiler
    with _default_lock:
        _default_compiler = FormulaCompiler(max_size)
    return _default_compiler


def compile_formula(formula: str) -> CompiledExpression:
    """Compile through the process-wide cache."""
    return _default_compiler.compile(formula)
