"""
QuickInsight Schema Inspector
=============================

Reads table metadata through a QueryExecutor and maps column names to
semantic types using the shared COLUMN_PATTERNS table.
"""

import logging
from typing import Optional

from ..database import QueryExecutor
from .filter_compiler import quote_identifier, quote_string
from .types import ColumnInfo, TableMetadata
from .vocabulary import COLUMN_PATTERNS

logger = logging.getLogger(__name__)


async def fetch_table_metadata(executor: QueryExecutor,
                               table_name: str,
                               request_id: Optional[str] = None) -> TableMetadata:
    """Row count plus column name/type/nullability in ordinal order."""
    count_result = await executor.execute(
        f"SELECT COUNT(*) AS row_count FROM {quote_identifier(table_name)}",
        request_id=request_id,
    )
    row_count = int(count_result.rows[0]["row_count"]) if count_result.rows else 0

    columns_result = await executor.execute(
        "SELECT column_name, data_type, is_nullable "
        "FROM information_schema.columns "
        f"WHERE table_name = {quote_string(table_name)} "
        "ORDER BY ordinal_position",
        request_id=request_id,
    )
    columns = [
        ColumnInfo(
            name=row["column_name"],
            type=str(row["data_type"]),
            nullable=str(row.get("is_nullable", "YES")).upper() == "YES",
        )
        for row in columns_result.rows
    ]

    logger.info(f"[SCHEMA] {table_name}: {row_count} rows, {len(columns)} columns")
    return TableMetadata(table_name=table_name, row_count=row_count, columns=columns)


def match_semantic_type(column_name: str) -> Optional[str]:
    """First semantic type (in COLUMN_PATTERNS order) whose patterns match the name."""
    for semantic_type, patterns in COLUMN_PATTERNS.items():
        if any(p.search(column_name) for p in patterns):
            return semantic_type
    return None

