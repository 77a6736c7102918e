"""
RFM SQL Generator
=================

Generates DuckDB SQL that yields one row per customer with standard columns
customer_id, recency, frequency, monetary.

Two paths:
- Pre-computed: pass the table's recency/frequency/monetary columns through,
  cast to DOUBLE, dropping null or negative recency/monetary.
- Computed: aggregate raw orders per customer in CTEs

    rfm_base      last order date, frequency, SUM(amount) per customer
                  (null and negative amounts excluded here)
    rfm_computed  recency = baseline date - last order date, in days
    rfm_cleaned   recency >= 0 AND monetary >= 0

Sampling (computed path only): without an explicit sample size the final
SELECT carries a single predicate that keeps everyone when the cleaned
population is at most LARGE_DATASET_THRESHOLD, otherwise a random sample of
MAX_CUSTOMER_SAMPLE_SIZE customers. An explicit sample size turns the
predicate off: every cleaned customer is returned and is_sampled is False.
"""

import logging
from datetime import date
from typing import Optional

from ...errors import InsufficientData, MissingRequiredColumns
from ..intelligence.filter_compiler import quote_identifier
from .constants import LARGE_DATASET_THRESHOLD, MAX_CUSTOMER_SAMPLE_SIZE, MIN_CUSTOMER_COUNT
from .rfm_column_detector import REQUIRED_LABELS, get_rfm_column_names
from .types import RFMColumns, RFMQuery

logger = logging.getLogger(__name__)


def generate_rfm_sql(table_name: str,
                     rfm_columns: RFMColumns,
                     sample_size: Optional[int] = None,
                     baseline_date: Optional[str] = None) -> RFMQuery:
    """
    Build the RFM query for a table.

    Args:
        table_name: Source table
        rfm_columns: Output of detect_rfm_columns (customer_id must be set
            for the pre-computed path too)
        sample_size: Explicit sample size; disables automatic sampling
        baseline_date: ISO date to measure recency from; defaults to the
            latest order date in the table

    Raises:
        MissingRequiredColumns: a role needed by the chosen path is absent
        ValueError: sample_size is not positive or baseline_date is not ISO
    """
    if sample_size is not None and sample_size <= 0:
        raise ValueError(f"sample_size must be positive, got {sample_size}")

    if rfm_columns.precomputed.is_complete:
        return _precomputed_sql(table_name, rfm_columns)
    return _computed_sql(table_name, rfm_columns, sample_size, baseline_date)


def _precomputed_sql(table_name: str, rfm_columns: RFMColumns) -> RFMQuery:
    if not rfm_columns.customer_id:
        raise MissingRequiredColumns([REQUIRED_LABELS["customer_id"]])

    table = quote_identifier(table_name)
    cid = quote_identifier(rfm_columns.customer_id)
    r = quote_identifier(rfm_columns.precomputed.recency)
    f = quote_identifier(rfm_columns.precomputed.frequency)
    m = quote_identifier(rfm_columns.precomputed.monetary)

    sql = f"""SELECT
    {cid} AS customer_id,
    CAST({r} AS DOUBLE) AS recency,
    CAST({f} AS DOUBLE) AS frequency,
    CAST({m} AS DOUBLE) AS monetary
FROM {table}
WHERE {r} IS NOT NULL
  AND {m} IS NOT NULL
  AND CAST({r} AS DOUBLE) >= 0
  AND CAST({m} AS DOUBLE) >= 0
ORDER BY {cid}"""

    logger.info(f"[RFM-SQL] Pre-computed RFM query for {table_name}")
    return RFMQuery(sql=sql, is_precomputed=True, is_sampled=False, sample_size=0)


def _computed_sql(table_name: str,
                  rfm_columns: RFMColumns,
                  sample_size: Optional[int],
                  baseline_date: Optional[str]) -> RFMQuery:
    names = get_rfm_column_names(rfm_columns)

    table = quote_identifier(table_name)
    cid = quote_identifier(names["customer_id"])
    order_date = quote_identifier(names["order_date"])
    amount = quote_identifier(names["order_amount"])

    if baseline_date:
        # date.fromisoformat rejects anything that is not a plain date
        baseline_expr = f"DATE '{date.fromisoformat(baseline_date).isoformat()}'"
    else:
        baseline_expr = f"(SELECT MAX(CAST({order_date} AS DATE)) FROM {table})"

    if names["order_id"]:
        frequency_expr = f"COUNT(DISTINCT {quote_identifier(names['order_id'])})"
    else:
        frequency_expr = "COUNT(*)"

    sql = f"""WITH rfm_base AS (
    SELECT
        {cid} AS customer_id,
        MAX(CAST({order_date} AS DATE)) AS last_order_date,
        {frequency_expr} AS frequency,
        SUM(CAST({amount} AS DOUBLE)) AS monetary
    FROM {table}
    WHERE {cid} IS NOT NULL
      AND {order_date} IS NOT NULL
      AND {amount} IS NOT NULL
      AND CAST({amount} AS DOUBLE) >= 0
    GROUP BY {cid}
),
rfm_computed AS (
    SELECT
        customer_id,
        CAST({baseline_expr} - last_order_date AS INTEGER) AS recency,
        CAST(frequency AS DOUBLE) AS frequency,
        CAST(monetary AS DOUBLE) AS monetary
    FROM rfm_base
    WHERE last_order_date IS NOT NULL
),
rfm_cleaned AS (
    SELECT *
    FROM rfm_computed
    WHERE recency >= 0
      AND monetary >= 0
)"""

    needs_sampling = sample_size is None
    effective_size = MAX_CUSTOMER_SAMPLE_SIZE if needs_sampling else int(sample_size)

    if needs_sampling:
        sql += f""",
customer_count AS (
    SELECT COUNT(*) AS total_customers FROM rfm_cleaned
)
SELECT customer_id, recency, frequency, monetary
FROM rfm_cleaned
WHERE (SELECT total_customers FROM customer_count) <= {LARGE_DATASET_THRESHOLD}
   OR customer_id IN (
       SELECT customer_id FROM rfm_cleaned ORDER BY RANDOM() LIMIT {effective_size}
   )
ORDER BY customer_id"""
    else:
        sql += """
SELECT customer_id, recency, frequency, monetary
FROM rfm_cleaned
ORDER BY customer_id"""

    logger.info(f"[RFM-SQL] Computed RFM query for {table_name} "
                f"(order_id={'yes' if names['order_id'] else 'no'}, "
                f"sampled={needs_sampling}, sample_size={effective_size})")
    return RFMQuery(sql=sql, is_precomputed=False, is_sampled=needs_sampling, sample_size=effective_size)


def generate_customer_count_sql(table_name: str, rfm_columns: RFMColumns) -> str:
    """Count eligible customers before committing to the full RFM query."""
    table = quote_identifier(table_name)

    if rfm_columns.precomputed.is_complete:
        r = quote_identifier(rfm_columns.precomputed.recency)
        return f"SELECT COUNT(*) AS customer_count FROM {table} WHERE {r} IS NOT NULL"

    if not rfm_columns.customer_id:
        raise MissingRequiredColumns([REQUIRED_LABELS["customer_id"]])

    cid = quote_identifier(rfm_columns.customer_id)
    return f"SELECT COUNT(DISTINCT {cid}) AS customer_count FROM {table} WHERE {cid} IS NOT NULL"


def validate_customer_count(customer_count: int) -> None:
    """Raises InsufficientData below MIN_CUSTOMER_COUNT."""
    if customer_count < MIN_CUSTOMER_COUNT:
        raise InsufficientData(actual=customer_count, required=MIN_CUSTOMER_COUNT)
