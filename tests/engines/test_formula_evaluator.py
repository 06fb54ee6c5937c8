"""
Tests for formula evaluation against raw booking records.

Covers:
- Decimal arithmetic (no binary float drift)
- Absent propagation: missing keys, null, non-numeric text, containers
- Division by zero yields absent, never Infinity or NaN
- find() lookups: first match final, string vs number literals
- Property: evaluation never raises, and any absent operand makes the
  result absent
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from hostmetrics_engines.formula import compile_formula, evaluate, literal_matches, parse


def _eval(formula, record):
    return evaluate(parse(formula), record)


class TestArithmetic:
    def test_management_fee_percentage(self):
        assert _eval("[totalPayout] * 0.15", {"totalPayout": 1000}) == Decimal("150")

    def test_decimal_not_float(self):
        assert _eval("[a] + [b]", {"a": 0.1, "b": 0.2}) == Decimal("0.3")

    def test_numeric_strings_coerced(self):
        assert _eval("[a] - [b]", {"a": " 500.00 ", "b": "75.5"}) == Decimal("424.50")

    def test_precedence(self):
        assert _eval("[a] + [b] * 2", {"a": 1, "b": 3}) == Decimal("7")

    def test_parenthesised(self):
        assert _eval("([a] + [b]) * 2", {"a": 1, "b": 3}) == Decimal("8")

    def test_unary_minus(self):
        assert _eval("-[a] + 10", {"a": 4}) == Decimal("6")

    def test_constant_formula(self):
        assert _eval("12.5 * 2", {}) == Decimal("25.0")

    def test_division(self):
        assert _eval("[a] / [b]", {"a": 10, "b": 4}) == Decimal("2.5")

    def test_field_name_with_spaces(self):
        assert _eval("[Cleaning Fee] + 1", {"Cleaning Fee": "49"}) == Decimal("50")


class TestAbsentValues:
    @pytest.mark.parametrize(
        "record",
        [
            {},
            {"a": None},
            {"a": ""},
            {"a": "n/a"},
            {"a": True},
            {"a": [1, 2]},
            {"a": {"value": 1}},
            {"a": float("nan")},
            {"a": float("inf")},
            {"a": "Infinity"},
        ],
    )
    def test_non_numeric_operand_is_absent(self, record):
        assert _eval("[a] + 1", record) is None

    def test_missing_operand_absent_even_when_multiplied_by_zero(self):
        assert _eval("[a] * 0", {}) is None

    def test_division_by_zero(self):
        assert _eval("[a] / [b]", {"a": 10, "b": 0}) is None

    def test_division_by_zero_string(self):
        assert _eval("[a] / [b]", {"a": 10, "b": "0.00"}) is None

    def test_nested_division_by_zero_absent(self):
        assert _eval("1 + [a] / ([b] - [b])", {"a": 1, "b": 5}) is None

    def test_non_mapping_record(self):
        assert _eval("[a]", None) is None
        assert _eval("[a]", ["a"]) is None

    def test_overflow_is_absent(self):
        assert _eval("[a] * [a]", {"a": "1E+999999"}) is None


class TestLookup:
    FINANCE = [
        {"name": "baseRate", "total": 200},
        {"name": "cleaningFee", "total": "85.00"},
        {"name": "cleaningFee", "total": 999},
        {"name": "vat", "total": None},
    ]

    def test_matching_element_projected(self):
        result = _eval(
            '[financeField].find([name] == "cleaningFee").[total]',
            {"financeField": self.FINANCE},
        )
        assert result == Decimal("85.00")

    def test_no_match_is_absent(self):
        result = _eval(
            '[financeField].find([name] == "cleaningFee").[total]',
            {"financeField": [{"name": "baseRate", "total": 200}]},
        )
        assert result is None

    def test_first_match_final_even_if_projection_absent(self):
        finance = [{"name": "vat", "total": None}, {"name": "vat", "total": 10}]
        result = _eval('[f].find([name] == "vat").[total]', {"f": finance})
        assert result is None

    def test_missing_array_is_absent(self):
        assert _eval('[f].find([name] == "vat").[total]', {}) is None

    def test_non_list_array_is_absent(self):
        assert _eval('[f].find([name] == "vat").[total]', {"f": "vat"}) is None

    def test_non_mapping_items_skipped(self):
        finance = ["vat", None, {"name": "vat", "total": 3}]
        assert _eval('[f].find([name] == "vat").[total]', {"f": finance}) == Decimal("3")

    def test_numeric_literal_matches_numeric_string(self):
        lines = [{"id": "1.00", "amount": 7}]
        assert _eval("[lines].find([id] == 1).[amount]", {"lines": lines}) == Decimal("7")

    def test_string_literal_does_not_match_number(self):
        lines = [{"id": 1, "amount": 7}]
        assert _eval('[lines].find([id] == "1").[amount]', {"lines": lines}) is None

    def test_lookup_in_arithmetic(self):
        record = {"totalPayout": 1000, "financeField": self.FINANCE}
        result = _eval(
            '[totalPayout] - [financeField].find([name] == "baseRate").[total]', record
        )
        assert result == Decimal("800")


class TestLiteralMatches:
    @pytest.mark.parametrize(
        "value, literal, expected",
        [
            ("vat", "vat", True),
            ("VAT", "vat", False),
            (1, Decimal("1"), True),
            (1.0, Decimal("1"), True),
            ("1.00", Decimal("1"), True),
            (True, Decimal("1"), False),
            (None, Decimal("0"), False),
            (1, "1", False),
        ],
    )
    def test_equality(self, value, literal, expected):
        assert literal_matches(value, literal) is expected


# ---------------------------------------------------------------------------
# Property-based tests
# ---------------------------------------------------------------------------

_FIELDS = ("a", "b", "c")

_raw_values = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10**12, max_value=10**12),
    st.floats(allow_nan=True, allow_infinity=True),
    st.decimals(allow_nan=False, allow_infinity=False, places=4, min_value=-10**9, max_value=10**9),
    st.text(max_size=8),
    st.lists(st.integers(), max_size=2),
)

_records = st.dictionaries(st.sampled_from(_FIELDS), _raw_values, max_size=3)


def _formulas():
    leaves = st.one_of(
        st.sampled_from([f"[{f}]" for f in _FIELDS]),
        st.integers(min_value=0, max_value=1000).map(str),
        st.just("0.15"),
    )
    return st.recursive(
        leaves,
        lambda inner: st.one_of(
            st.tuples(inner, st.sampled_from("+-*/"), inner).map(
                lambda t: f"({t[0]} {t[1]} {t[2]})"
            ),
            inner.map(lambda e: f"-{e}"),
        ),
        max_leaves=12,
    ).filter(lambda f: f.count("(") + f.count("-") < 40)


class TestEvaluationProperties:
    @settings(max_examples=300, deadline=None)
    @given(formula=_formulas(), record=_records)
    def test_never_raises_and_result_is_finite_or_absent(self, formula, record):
        result = evaluate(compile_formula(formula), record)
        assert result is None or (isinstance(result, Decimal) and result.is_finite())

    @settings(max_examples=200, deadline=None)
    @given(formula=_formulas(), record=_records)
    def test_absent_operand_makes_result_absent(self, formula, record):
        compiled = compile_formula(formula)
        missing = [f for f in compiled.field_refs if f not in record]
        if missing:
            assert evaluate(compiled, record) is None

    @settings(max_examples=100, deadline=None)
    @given(formula=_formulas())
    def test_canonical_text_evaluates_identically(self, formula):
        record = {"a": "12.5", "b": 4, "c": Decimal("-3")}
        compiled = compile_formula(formula)
        assert evaluate(parse(compiled.text), record) == evaluate(compiled, record)
