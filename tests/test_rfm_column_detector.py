"""
RFM Column Detector Tests
=========================
Tests for semantic role detection from column names.
"""

import pytest

from quickinsight.errors import MissingRequiredColumns
from quickinsight.utils.clustering import (
    detect_rfm_columns,
    find_customer_id_column,
    get_rfm_column_names,
    validate_rfm_columns,
)
from quickinsight.utils.clustering.rfm_column_detector import amount_exclusion_reason
from quickinsight.utils.intelligence import ColumnInfo, TableMetadata


class TestPrecomputed:
    """Pre-computed recency/frequency/monetary columns."""

    def test_precomputed_detected(self):
        result = detect_rfm_columns(["customer_id", "recency", "frequency", "monetary"])

        assert result.precomputed.recency == "recency"
        assert result.precomputed.frequency == "frequency"
        assert result.precomputed.monetary == "monetary"
        assert result.customer_id is None
        assert result.order_date is None
        assert result.order_amount is None

    def test_precomputed_wins_over_raw_columns(self):
        result = detect_rfm_columns(["customer_id", "order_date", "amount", "recency", "frequency", "monetary"])
        assert result.precomputed.is_complete
        assert result.customer_id is None
        assert result.order_amount is None

    def test_first_match_wins(self):
        result = detect_rfm_columns(["recency_days", "recency_score", "frequency", "monetary"])
        assert result.precomputed.recency == "recency_days"

    def test_case_insensitive_substring(self):
        result = detect_rfm_columns(["cid", "R_Recency", "F_Frequency", "M_Monetary"])
        assert result.precomputed.is_complete

    def test_partial_precomputed_falls_back_to_raw(self):
        result = detect_rfm_columns(["customer_id", "recency", "order_date", "amount"])
        assert not result.precomputed.is_complete
        assert result.precomputed.recency == "recency"
        assert result.customer_id == "customer_id"
        assert result.order_amount == "amount"

    def test_complete_precomputed_passes_validation(self):
        validate_rfm_columns(detect_rfm_columns(["id", "recency", "frequency", "monetary"]))


class TestRawDetection:
    """Customer id, order id, order date and amount."""

    def test_orders_table(self, sample_table_schema):
        table = TableMetadata(
            table_name="orders",
            columns=[ColumnInfo(c["name"], c["type"]) for c in sample_table_schema["columns"]],
        )
        result = detect_rfm_columns(table)

        assert result.customer_id == "customer_id"
        assert result.order_id == "order_id"
        assert result.order_date == "order_date"
        assert result.order_amount == "amount"
        assert result.confidence.order_amount == 1.0
        assert result.confidence.customer_id == 1.0

    def test_customer_id_tier_priority(self):
        assert find_customer_id_column(["user_id", "customer_id"]) == "customer_id"
        assert find_customer_id_column(["member_no", "user_id"]) == "user_id"

    def test_chinese_columns(self):
        result = detect_rfm_columns(["客户编号", "订单号", "下单时间", "实付金额"])
        assert result.customer_id == "客户编号"
        assert result.order_id == "订单号"
        assert result.order_date == "下单时间"
        assert result.order_amount == "实付金额"

    def test_fuzzy_amount(self):
        result = detect_rfm_columns(["user_id", "created_at", "payment_total"])
        assert result.order_amount == "payment_total"
        assert result.confidence.order_amount == 0.8

    def test_precise_amount_beats_fuzzy(self):
        result = detect_rfm_columns(["customer_id", "order_date", "payment_total", "paid_amount"])
        assert result.order_amount == "paid_amount"
        assert result.confidence.order_amount == 1.0

    def test_excluded_amount_lookalikes(self):
        result = detect_rfm_columns(["customer_id", "order_date", "payment_method", "total_status", "payment_id"])
        assert result.order_amount is None
        assert result.confidence.order_amount == 0.0

    def test_no_order_id_is_fine(self):
        result = detect_rfm_columns(["customer_id", "order_date", "amount"])
        assert result.order_id is None
        validate_rfm_columns(result)

    @pytest.mark.parametrize("column,reason", [
        ("payment_id", "id/serial"),
        ("refund_no", "id/serial"),
        ("payment_method", "method/type"),
        ("fee_type", "method/type"),
        ("payment_status", "status"),
        ("支付时间", "time/date"),
        ("payment_date", "time/date"),
        ("payment_total", None),
    ])
    def test_exclusion_reasons(self, column, reason):
        assert amount_exclusion_reason(column) == reason


class TestValidation:
    """Tests for validate_rfm_columns / get_rfm_column_names."""

    def test_all_missing(self):
        with pytest.raises(MissingRequiredColumns) as exc_info:
            validate_rfm_columns(detect_rfm_columns(["foo", "bar"]))

        assert exc_info.value.missing == [
            "customer_id (or similar)",
            "order_date (or similar)",
            "order_amount (or similar)",
        ]
        assert str(exc_info.value).startswith("Missing required columns for RFM analysis: customer_id")

    def test_only_amount_missing(self):
        with pytest.raises(MissingRequiredColumns) as exc_info:
            validate_rfm_columns(detect_rfm_columns(["customer_id", "order_date", "payment_method"]))
        assert exc_info.value.missing == ["order_amount (or similar)"]

    def test_column_names(self):
        names = get_rfm_column_names(detect_rfm_columns(["customer_id", "order_id", "order_date", "amount"]))
        assert names == {
            "customer_id": "customer_id",
            "order_id": "order_id",
            "order_date": "order_date",
            "order_amount": "amount",
        }

    def test_column_names_for_precomputed_raise(self):
        with pytest.raises(MissingRequiredColumns):
            get_rfm_column_names(detect_rfm_columns(["customer_id", "recency", "frequency", "monetary"]))
