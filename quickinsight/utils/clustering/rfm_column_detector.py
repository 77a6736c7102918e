"""
RFM Column Detector
===================

Assigns semantic roles (customer id, order id, order date, order amount, or
pre-computed recency/frequency/monetary) to a table's columns from their
names alone.

Detection order:
1. Pre-computed RFM: names containing 'recency', 'frequency', 'monetary'.
   If all three exist they win outright and raw roles stay empty.
2. Customer id, order id, order date: ordered pattern tiers. Each pattern
   is tried against every column before the next pattern is used.
3. Order amount, three levels:
   - precise whole-name match (confidence 1.0)
   - fuzzy amount match surviving the exclusion rules (confidence 0.8)
   - nothing (None, confidence 0)
"""

import logging
from typing import Dict, List, Optional, Pattern, Sequence, Union

from ...errors import MissingRequiredColumns
from ..intelligence.types import TableMetadata
from ..intelligence.vocabulary import (
    AMOUNT_EXCLUSIONS,
    COLUMN_PATTERNS,
    CUSTOMER_ID_PATTERNS,
    ORDER_DATE_PATTERNS,
    ORDER_ID_PATTERNS,
    PRECISE_AMOUNT_PATTERNS,
    PRECOMPUTED_RFM_NAMES,
)
from .types import PrecomputedRFM, RFMColumns, RFMConfidence

logger = logging.getLogger(__name__)

REQUIRED_LABELS = {
    "customer_id": "customer_id (or similar)",
    "order_date": "order_date (or similar)",
    "order_amount": "order_amount (or similar)",
}


# =============================================================================
# MATCHING HELPERS
# =============================================================================

def find_column_by_patterns(columns: Sequence[str], patterns: Sequence[Pattern]) -> Optional[str]:
    """First column matching the highest-priority pattern."""
    for pattern in patterns:
        for col in columns:
            if pattern.search(col):
                return col
    return None


def find_customer_id_column(columns: Sequence[str]) -> Optional[str]:
    return find_column_by_patterns(columns, CUSTOMER_ID_PATTERNS)


def amount_exclusion_reason(column: str) -> Optional[str]:
    """Why a fuzzy amount match is not money, or None if it may be."""
    lower = column.lower()
    for reason, (fragments, suffix) in AMOUNT_EXCLUSIONS.items():
        if any(fragment in lower for fragment in fragments) or suffix.search(column):
            return reason
    return None


def _detect_precomputed(columns: Sequence[str]) -> PrecomputedRFM:
    found: Dict[str, str] = {}
    for col in columns:
        lower = col.lower()
        for name in PRECOMPUTED_RFM_NAMES:
            if name not in found and name in lower:
                found[name] = col
    return PrecomputedRFM(**found)


def _detect_amount(columns: Sequence[str]):
    precise = next(
        (col for col in columns if any(p.search(col) for p in PRECISE_AMOUNT_PATTERNS)),
        None,
    )
    if precise:
        logger.info(f"[RFM-DETECT] Level 1: precise amount match: {precise}")
        return precise, 1.0

    fuzzy = [col for col in columns if any(p.search(col) for p in COLUMN_PATTERNS["amount"])]
    candidates = []
    for col in fuzzy:
        reason = amount_exclusion_reason(col)
        if reason:
            logger.debug(f"[RFM-DETECT] Level 2: excluding non-monetary column {col} ({reason})")
        else:
            candidates.append(col)

    if candidates:
        logger.info(f"[RFM-DETECT] Level 2: selected amount column {candidates[0]}")
        return candidates[0], 0.8

    logger.info("[RFM-DETECT] Level 3: no amount column detected")
    return None, 0.0


# =============================================================================
# PUBLIC API
# =============================================================================

def detect_rfm_columns(table: Union[TableMetadata, Sequence[str]]) -> RFMColumns:
    """Detect RFM roles from table metadata (or a plain list of column names)."""
    columns: List[str] = table.column_names if isinstance(table, TableMetadata) else list(table)

    precomputed = _detect_precomputed(columns)
    if precomputed.is_complete:
        logger.info(f"[RFM-DETECT] Pre-computed RFM columns detected: {precomputed}")
        return RFMColumns(precomputed=precomputed)

    customer_id = find_customer_id_column(columns)
    order_id = find_column_by_patterns(columns, ORDER_ID_PATTERNS)
    order_date = find_column_by_patterns(columns, ORDER_DATE_PATTERNS)
    order_amount, amount_confidence = _detect_amount(columns)

    result = RFMColumns(
        customer_id=customer_id,
        order_id=order_id,
        order_date=order_date,
        order_amount=order_amount,
        confidence=RFMConfidence(
            customer_id=1.0 if customer_id else 0.0,
            order_id=1.0 if order_id else 0.0,
            order_date=1.0 if order_date else 0.0,
            order_amount=amount_confidence,
        ),
        precomputed=precomputed,
    )
    logger.info(f"[RFM-DETECT] customer={customer_id} order={order_id} "
                f"date={order_date} amount={order_amount}")
    return result


def _missing_raw_columns(rfm_columns: RFMColumns) -> List[str]:
    return [
        label for attr, label in REQUIRED_LABELS.items()
        if not getattr(rfm_columns, attr)
    ]


def validate_rfm_columns(rfm_columns: RFMColumns) -> None:
    """
    Raises MissingRequiredColumns naming every absent raw role, unless all
    three pre-computed RFM columns are present.
    """
    if rfm_columns.precomputed.is_complete:
        return

    missing = _missing_raw_columns(rfm_columns)
    if missing:
        raise MissingRequiredColumns(missing)


def get_rfm_column_names(rfm_columns: RFMColumns) -> Dict[str, Optional[str]]:
    """Raw-order column names for SQL generation. All three required roles must be set."""
    missing = _missing_raw_columns(rfm_columns)
    if missing:
        raise MissingRequiredColumns(missing)

    return {
        "customer_id": rfm_columns.customer_id,
        "order_id": rfm_columns.order_id,
        "order_date": rfm_columns.order_date,
        "order_amount": rfm_columns.order_amount,
    }
