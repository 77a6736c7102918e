"""
Filter Compiler Tests
=====================
Tests for FilterExpr -> SQL compilation and identifier/literal safety.
"""

import pytest

from quickinsight.errors import CompileError, InvalidColumn, TypeMismatch, UnsupportedOperator
from quickinsight.utils.intelligence import (
    FilterExpr,
    FilterOperator,
    RelativeTimeValue,
    TimeDirection,
    TimeUnit,
    compile_filter,
    compile_filters,
    compile_where_clause,
    quote_identifier,
    validate_identifier,
)
from quickinsight.utils.intelligence.filter_compiler import _OPERATOR_COMPILERS


class TestComparisons:
    """Tests for scalar comparison operators."""

    def test_string_equality(self):
        assert compile_filter(FilterExpr("status", FilterOperator.EQ, "paid")) == "status = 'paid'"

    def test_embedded_quote_is_doubled(self):
        sql = compile_filter(FilterExpr("name", FilterOperator.EQ, "O'Brien"))
        assert sql == "name = 'O''Brien'"
        # strip the delimiters; every remaining quote is part of a doubled pair
        assert "'" not in sql[len("name = '"):-1].replace("''", "")

    @pytest.mark.parametrize("op,expected", [
        (FilterOperator.NE, "amount != 10"),
        (FilterOperator.GT, "amount > 10"),
        (FilterOperator.GTE, "amount >= 10"),
        (FilterOperator.LT, "amount < 10"),
        (FilterOperator.LTE, "amount <= 10"),
    ])
    def test_numeric_operators(self, op, expected):
        assert compile_filter(FilterExpr("amount", op, 10)) == expected

    def test_float_literal(self):
        assert compile_filter(FilterExpr("amount", FilterOperator.GT, 9.5)) == "amount > 9.5"

    def test_boolean_literal(self):
        assert compile_filter(FilterExpr("is_vip", FilterOperator.EQ, True)) == "is_vip = TRUE"
        assert compile_filter(FilterExpr("is_vip", FilterOperator.EQ, False)) == "is_vip = FALSE"

    def test_operator_given_as_string(self):
        assert compile_filter(FilterExpr("amount", ">=", 5)) == "amount >= 5"

    def test_comparison_with_list_rejected(self):
        with pytest.raises(UnsupportedOperator):
            compile_filter(FilterExpr("amount", FilterOperator.EQ, [1, 2]))

    def test_non_finite_number_rejected(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("amount", FilterOperator.GT, float("nan")))

    def test_unsupported_literal_type_rejected(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("amount", FilterOperator.EQ, {"a": 1}))

    def test_unknown_operator_rejected(self):
        with pytest.raises(UnsupportedOperator):
            compile_filter(FilterExpr("amount", "LIKE", "x"))


class TestMembershipAndContains:
    """Tests for in / not_in / contains."""

    def test_in_list(self):
        sql = compile_filter(FilterExpr("status", FilterOperator.IN, ["completed", "shipped"]))
        assert sql == "status IN ('completed', 'shipped')"

    def test_not_in_numbers(self):
        assert compile_filter(FilterExpr("qty", FilterOperator.NOT_IN, [1, 2])) == "qty NOT IN (1, 2)"

    def test_in_requires_list(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("status", FilterOperator.IN, "paid"))

    def test_empty_list_rejected(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("status", FilterOperator.IN, []))

    def test_nested_list_rejected(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("status", FilterOperator.IN, [["a"]]))

    def test_contains(self):
        assert compile_filter(FilterExpr("name", FilterOperator.CONTAINS, "bob")) == "name LIKE '%bob%'"

    def test_contains_escapes_quotes(self):
        assert compile_filter(FilterExpr("name", FilterOperator.CONTAINS, "o'b")) == "name LIKE '%o''b%'"

    def test_contains_requires_string(self):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("name", FilterOperator.CONTAINS, 5))


class TestRelativeTime:
    """Tests for relative time values."""

    def test_past(self):
        sql = compile_filter(FilterExpr("order_date", FilterOperator.GTE,
                                        RelativeTimeValue(TimeUnit.DAY, 30)))
        assert sql == "CAST(order_date AS TIMESTAMP) >= CURRENT_TIMESTAMP - INTERVAL '30 day'"

    def test_future(self):
        sql = compile_filter(FilterExpr("due_date", FilterOperator.LTE,
                                        RelativeTimeValue(TimeUnit.WEEK, 2, TimeDirection.FUTURE)))
        assert sql == "CAST(due_date AS TIMESTAMP) <= CURRENT_TIMESTAMP + INTERVAL '2 week'"

    def test_direction_decides_comparator(self):
        value = RelativeTimeValue(TimeUnit.MONTH, 3)
        gt = compile_filter(FilterExpr("order_date", FilterOperator.GT, value))
        lt = compile_filter(FilterExpr("order_date", FilterOperator.LT, value))
        assert gt == lt

    def test_membership_operator_rejected(self):
        with pytest.raises(UnsupportedOperator):
            compile_filter(FilterExpr("order_date", FilterOperator.IN, RelativeTimeValue(TimeUnit.DAY, 1)))

    @pytest.mark.parametrize("amount", [0, -1, 1.5, True])
    def test_amount_must_be_positive_int(self, amount):
        with pytest.raises(TypeMismatch):
            compile_filter(FilterExpr("order_date", FilterOperator.GTE, RelativeTimeValue(TimeUnit.DAY, amount)))

    def test_from_dict(self):
        expr = FilterExpr.from_dict({
            "column": "order_date",
            "op": ">=",
            "value": {"kind": "relative_time", "unit": "year", "amount": 1},
        })
        assert compile_filter(expr) == "CAST(order_date AS TIMESTAMP) >= CURRENT_TIMESTAMP - INTERVAL '1 year'"


class TestIdentifiers:
    """Tests for the column whitelist."""

    @pytest.mark.parametrize("column", [
        "col; DROP TABLE x;--",
        "a b",
        "amount)",
        "",
        "t.amount",
        'x"y',
    ])
    def test_invalid_columns_rejected(self, column):
        with pytest.raises(InvalidColumn):
            compile_filter(FilterExpr(column, FilterOperator.EQ, 1))

    def test_invalid_column_is_compile_error(self):
        with pytest.raises(CompileError):
            validate_identifier("1; --")

    def test_chinese_column_accepted(self):
        assert compile_filter(FilterExpr("订单金额", FilterOperator.GT, 100)) == "订单金额 > 100"

    def test_non_string_rejected(self):
        with pytest.raises(InvalidColumn):
            validate_identifier(42)

    def test_quote_identifier_doubles_quotes(self):
        assert quote_identifier('my"table') == '"my""table"'


class TestCombinators:
    """Tests for compile_filters / compile_where_clause."""

    def test_and(self):
        sql = compile_filters([
            FilterExpr("status", FilterOperator.EQ, "paid"),
            FilterExpr("amount", FilterOperator.GT, 0),
        ])
        assert sql == "status = 'paid' AND amount > 0"

    def test_or_lowercase(self):
        sql = compile_filters([
            FilterExpr("region", FilterOperator.EQ, "north"),
            FilterExpr("region", FilterOperator.EQ, "south"),
        ], "or")
        assert sql == "region = 'north' OR region = 'south'"

    def test_invalid_combinator(self):
        with pytest.raises(UnsupportedOperator):
            compile_filters([FilterExpr("a", FilterOperator.EQ, 1)], "XOR")

    def test_where_clause_empty(self):
        assert compile_where_clause([]) == ""

    def test_where_clause(self):
        assert compile_where_clause([FilterExpr("a", FilterOperator.EQ, 1)]) == "WHERE a = 1"

    def test_one_bad_filter_fails_batch(self):
        with pytest.raises(InvalidColumn):
            compile_filters([
                FilterExpr("status", FilterOperator.EQ, "paid"),
                FilterExpr("bad col", FilterOperator.EQ, 1),
            ])


class TestDispatchTables:
    """Every operator kind has a compiler."""

    def test_every_operator_has_a_compiler(self):
        assert set(_OPERATOR_COMPILERS) == set(FilterOperator)
