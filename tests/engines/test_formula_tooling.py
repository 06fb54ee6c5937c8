"""
Tests for the formula tooling around the parser.

Covers:
- The compiled-formula LRU cache (hits, misses, eviction, error handling)
- Non-raising validation for previews
- Upgrading legacy JavaScript-style field paths
"""

import threading
from decimal import Decimal

import pytest

from hostmetrics_engines.formula import (
    FormulaCompiler,
    Lookup,
    evaluate,
    is_legacy_path,
    is_valid_formula,
    parse,
    referenced_fields,
    upgrade_legacy_formula,
    validate_formula,
)
from hostmetrics_engines.formula.compiler import configure_compiler, get_compiler
from hostmetrics_engines.formula.validator import ERROR, WARNING
from hostmetrics_kernel.exceptions import FormulaSyntaxError


class TestFormulaCompiler:
    def test_second_compile_is_a_hit(self):
        compiler = FormulaCompiler(max_size=4)
        first = compiler.compile("[a] + 1")
        second = compiler.compile("[a] + 1")
        assert first is second
        info = compiler.cache_info()
        assert (info.hits, info.misses, info.size) == (1, 1, 1)

    def test_cache_keyed_by_exact_text(self):
        compiler = FormulaCompiler(max_size=4)
        compiler.compile("[a]+1")
        compiler.compile("[a] + 1")
        assert compiler.cache_info().size == 2

    def test_least_recently_used_evicted(self):
        compiler = FormulaCompiler(max_size=2)
        a = compiler.compile("[a]")
        compiler.compile("[b]")
        compiler.compile("[a]")  # refresh a
        compiler.compile("[c]")  # evicts b
        assert compiler.cache_info().size == 2
        assert compiler.compile("[a]") is a
        misses = compiler.cache_info().misses
        compiler.compile("[b]")
        assert compiler.cache_info().misses == misses + 1

    def test_syntax_errors_not_cached(self):
        compiler = FormulaCompiler()
        for _ in range(2):
            with pytest.raises(FormulaSyntaxError):
                compiler.compile("[a] +")
        info = compiler.cache_info()
        assert info.size == 0
        assert info.misses == 2

    def test_clear(self):
        compiler = FormulaCompiler()
        compiler.compile("[a]")
        compiler.clear()
        info = compiler.cache_info()
        assert (info.hits, info.misses, info.size) == (0, 0, 0)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            FormulaCompiler(max_size=0)

    def test_concurrent_compiles_share_one_entry(self):
        compiler = FormulaCompiler()
        results = []

        def worker():
            results.append(compiler.compile("[totalPayout] * 0.2"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert compiler.cache_info().size == 1
        assert all(r.root == results[0].root for r in results)

    def test_configure_replaces_process_compiler(self):
        original = get_compiler()
        try:
            replaced = configure_compiler(8)
            assert get_compiler() is replaced
            assert replaced.cache_info().max_size == 8
        finally:
            configure_compiler(original.cache_info().max_size)

    def test_compile_logs_at_debug(self, captured_logs):
        FormulaCompiler().compile("[a] * 2")
        logs = captured_logs()
        compiled = [r for r in logs if r["message"] == "formula_compiled"]
        assert compiled and compiled[0]["field_refs"] == ["a"]


class TestValidateFormula:
    def test_valid_formula_has_no_issues(self):
        assert validate_formula("[totalPayout] * 0.15") == []
        assert is_valid_formula("[totalPayout] * 0.15")

    def test_syntax_error_reported_not_raised(self):
        issues = validate_formula("[a] +")
        assert len(issues) == 1
        assert issues[0].severity == ERROR
        assert "unexpected end" in issues[0].message
        assert not is_valid_formula("[a] +")

    def test_unknown_field_is_warning(self):
        issues = validate_formula("[totalPayout] - [fees]", known_fields=["totalPayout"])
        assert [i.severity for i in issues] == [WARNING]
        assert "[fees]" in issues[0].message
        assert issues[0].position == 16
        assert is_valid_formula("[totalPayout] - [fees]")

    def test_constant_formula_is_warning(self):
        issues = validate_formula("25")
        assert [i.severity for i in issues] == [WARNING]
        assert "constant" in issues[0].message

    def test_referenced_fields(self):
        assert referenced_fields('[a] + [f].find([k] == "x").[p] + [a]') == ("a", "f")

    def test_referenced_fields_raises_on_bad_formula(self):
        with pytest.raises(FormulaSyntaxError):
            referenced_fields("[a")


class TestLegacyUpgrade:
    @pytest.mark.parametrize(
        "legacy, expected",
        [
            (
                'financeField.find(f => f.name === "baseRate").total',
                '[financeField].find([name] == "baseRate").[total]',
            ),
            (
                "data.financeField.find(f => f.name === 'vat')?.total",
                '[financeField].find([name] == "vat").[total]',
            ),
            (
                "financeField.find((item) => item.id == 3).amount",
                "[financeField].find([id] == 3).[amount]",
            ),
            ("data.guestName", "[guestName]"),
            ("totalPrice", "[totalPrice]"),
        ],
    )
    def test_upgrade(self, legacy, expected):
        assert is_legacy_path(legacy)
        upgraded = upgrade_legacy_formula(legacy)
        assert upgraded == expected
        parse(upgraded)

    def test_valid_formula_unchanged(self):
        formula = "[totalPayout] * 0.15"
        assert upgrade_legacy_formula(formula) == formula

    def test_upgraded_lookup_evaluates(self):
        upgraded = upgrade_legacy_formula('financeField.find(f => f.name === "cleaningFee").total')
        assert isinstance(parse(upgraded).root, Lookup)
        record = {"financeField": [{"name": "cleaningFee", "total": 120}]}
        assert evaluate(parse(upgraded), record) == Decimal("120")

    def test_escaped_quote_in_legacy_literal(self):
        upgraded = upgrade_legacy_formula(r'items.find(i => i.label === "a\"b").value')
        assert parse(upgraded).root.literal == 'a"b'

    @pytest.mark.parametrize(
        "text",
        [
            "eval('1')",
            "financeField.filter(f => f.name === 'x').total",
            "a.b.c",
            "",
        ],
    )
    def test_unrecognised_text_rejected(self, text):
        assert not is_legacy_path(text)
        with pytest.raises(FormulaSyntaxError) as exc_info:
            upgrade_legacy_formula(text)
        assert "legacy field path" in exc_info.value.reason
