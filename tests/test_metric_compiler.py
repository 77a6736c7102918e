"""
Metric Compiler Tests
=====================
Tests for MetricDefinition -> SQL SELECT expression compilation.
"""

import pytest

from quickinsight.errors import InvalidColumn, MissingColumn, TypeMismatch, UnsupportedOperator
from quickinsight.utils.intelligence import (
    Aggregation,
    FilterExpr,
    FilterOperator,
    MetricDefinition,
    MetricSource,
    check_metric_override,
    compile_metric,
    compile_metrics,
)
from quickinsight.utils.intelligence.metric_compiler import _CONDITIONAL, _PLAIN, derive_alias


class TestCompileMetric:
    """Tests for single metric compilation."""

    def test_count_uses_label_alias(self):
        assert compile_metric(MetricDefinition("Total Orders", Aggregation.COUNT)) == "COUNT(*) AS total_orders"

    def test_explicit_alias_wins(self):
        metric = MetricDefinition("Total Orders", Aggregation.COUNT)
        assert compile_metric(metric, "n") == "COUNT(*) AS n"

    @pytest.mark.parametrize("aggregation,expected", [
        (Aggregation.SUM, "SUM(amount) AS m"),
        (Aggregation.AVG, "AVG(amount) AS m"),
        (Aggregation.MIN, "MIN(amount) AS m"),
        (Aggregation.MAX, "MAX(amount) AS m"),
        (Aggregation.COUNT_DISTINCT, "COUNT(DISTINCT amount) AS m"),
    ])
    def test_plain_aggregations(self, aggregation, expected):
        assert compile_metric(MetricDefinition("M", aggregation, "amount")) == expected

    def test_conditional_sum(self):
        metric = MetricDefinition(
            "Completed Revenue",
            Aggregation.SUM,
            "amount",
            (FilterExpr("status", FilterOperator.IN, ["completed", "shipped"]),),
        )
        assert compile_metric(metric) == (
            "SUM(CASE WHEN status IN ('completed', 'shipped') THEN amount END) AS completed_revenue"
        )

    def test_conditional_count(self):
        metric = MetricDefinition("Paid", Aggregation.COUNT, where=(FilterExpr("status", "=", "paid"),))
        assert compile_metric(metric) == "COUNT(CASE WHEN status = 'paid' THEN 1 END) AS paid"

    def test_conditional_count_distinct_keeps_distinct_outside(self):
        metric = MetricDefinition(
            "Buyers", Aggregation.COUNT_DISTINCT, "customer_id",
            (FilterExpr("amount", FilterOperator.GT, 0),),
        )
        assert compile_metric(metric) == (
            "COUNT(DISTINCT CASE WHEN amount > 0 THEN customer_id END) AS buyers"
        )

    def test_multiple_conditions_are_anded(self):
        metric = MetricDefinition("Big Paid", Aggregation.SUM, "amount", (
            FilterExpr("status", "=", "paid"),
            FilterExpr("amount", ">", 100),
        ))
        assert "CASE WHEN status = 'paid' AND amount > 100 THEN amount END" in compile_metric(metric)

    def test_missing_column(self):
        with pytest.raises(MissingColumn):
            compile_metric(MetricDefinition("Revenue", Aggregation.SUM))

    def test_invalid_column(self):
        with pytest.raises(InvalidColumn):
            compile_metric(MetricDefinition("Revenue", Aggregation.SUM, "amount; DROP TABLE x"))

    def test_label_with_punctuation_is_quoted(self):
        assert compile_metric(MetricDefinition("Revenue (USD)", Aggregation.SUM, "amount")) == (
            'SUM(amount) AS "revenue_(usd)"'
        )

    def test_hyphenated_label_is_quoted(self):
        metric = MetricDefinition("Avg-Order Value", Aggregation.COUNT)
        assert compile_metric(metric) == 'COUNT(*) AS "avg-order_value"'

    def test_quoted_alias_runs(self, orders_conn):
        select = compile_metric(MetricDefinition("Avg-Order Value", Aggregation.AVG, "amount"))
        df = orders_conn.execute(f"SELECT {select} FROM orders").fetchdf()
        assert list(df.columns) == ["avg-order_value"]

    def test_embedded_quote_in_alias_is_doubled(self):
        metric = MetricDefinition("M", Aggregation.COUNT)
        assert compile_metric(metric, 'a"b') == 'COUNT(*) AS "a""b"'

    def test_empty_label(self):
        with pytest.raises(InvalidColumn):
            compile_metric(MetricDefinition("", Aggregation.COUNT))

    def test_unknown_aggregation(self):
        with pytest.raises(UnsupportedOperator):
            compile_metric(MetricDefinition("M", "median", "amount"))

    def test_bad_condition_propagates(self):
        metric = MetricDefinition("M", Aggregation.SUM, "amount", (FilterExpr("status", "in", "paid"),))
        with pytest.raises(TypeMismatch):
            compile_metric(metric)

    def test_derive_alias(self):
        assert derive_alias("Gross  Merchandise Value") == "gross_merchandise_value"


class TestCompileMetrics:
    """Tests for batch compilation."""

    @pytest.fixture
    def metrics(self):
        return {
            "orders": MetricDefinition("Orders", Aggregation.COUNT),
            "gmv": MetricDefinition("GMV", Aggregation.SUM, "amount"),
            "aov": MetricDefinition("AOV", Aggregation.AVG, "amount"),
        }

    def test_insertion_order_and_key_alias(self, metrics):
        assert compile_metrics(metrics) == "COUNT(*) AS orders, SUM(amount) AS gmv, AVG(amount) AS aov"

    def test_limit(self, metrics):
        assert compile_metrics(metrics, limit=2) == "COUNT(*) AS orders, SUM(amount) AS gmv"

    def test_fail_fast(self, metrics):
        metrics["broken"] = MetricDefinition("Broken", Aggregation.MAX)
        with pytest.raises(MissingColumn):
            compile_metrics(metrics)

    def test_from_dict(self):
        metric = MetricDefinition.from_dict({
            "label": "Paid GMV",
            "aggregation": "sum",
            "column": "amount",
            "where": [{"column": "status", "op": "=", "value": "paid"}],
        })
        assert compile_metrics({"paid_gmv": metric}) == (
            "SUM(CASE WHEN status = 'paid' THEN amount END) AS paid_gmv"
        )


class TestMetricOverride:
    """Tests for check_metric_override."""

    @pytest.fixture
    def system(self):
        return {"gmv": MetricDefinition("GMV", Aggregation.SUM, "amount")}

    def test_user_overrides_system(self, system):
        result = check_metric_override("gmv", system, {"gmv": MetricDefinition("GMV", Aggregation.SUM, "paid")})
        assert result.is_override is True
        assert result.source == MetricSource.USER

    def test_user_only(self, system):
        result = check_metric_override("refunds", system, {"refunds": MetricDefinition("R", Aggregation.COUNT)})
        assert (result.is_override, result.source) == (False, MetricSource.USER)

    def test_system_only(self, system):
        result = check_metric_override("gmv", system, {})
        assert (result.is_override, result.source) == (False, MetricSource.SYSTEM)

    def test_undefined(self, system):
        result = check_metric_override("nope", system, {})
        assert (result.is_override, result.source) == (False, MetricSource.NONE)


class TestDispatchTables:
    """Every aggregation kind compiles in both plain and conditional form."""

    def test_tables_cover_every_aggregation(self):
        assert set(_PLAIN) == set(Aggregation)
        assert set(_CONDITIONAL) == set(Aggregation)
