"""
QuickInsight Database Access
============================

The "execute SQL, get rows + schema" contract the analysis layer depends on,
plus a DuckDB implementation.

Each query runs on its own DuckDB cursor in a worker thread, so concurrent
requests can share one connection without blocking the event loop. A query
that has been issued cannot be cancelled from here.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import duckdb

from ..config import AppConfig
from ..errors import QueryExecutionError

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    rows: List[Dict[str, Any]]
    schema: List[Dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class QueryExecutor(ABC):
    """Anything that can run SQL and hand back rows."""

    @abstractmethod
    async def execute(self, sql: str, request_id: Optional[str] = None) -> QueryResult:
        """
        Run one statement.

        Raises:
            QueryExecutionError: the database rejected or failed the query
        """
        pass


class DuckDBExecutor(QueryExecutor):
    """QueryExecutor backed by a DuckDB connection."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        self.conn = conn

    async def execute(self, sql: str, request_id: Optional[str] = None) -> QueryResult:
        tag = f"[{request_id}] " if request_id else ""
        logger.debug(f"[DB] {tag}Executing: {sql[:200]}")
        try:
            return await asyncio.to_thread(self._run, sql)
        except duckdb.Error as e:
            logger.error(f"[DB] {tag}SQL error: {e}")
            logger.error(f"SQL: {sql[:500]}")
            raise QueryExecutionError(str(e)) from e

    def _run(self, sql: str) -> QueryResult:
        cursor = self.conn.cursor()
        try:
            cursor.execute(sql)
            schema = [
                {"name": col[0], "type": str(col[1])}
                for col in (cursor.description or [])
            ]
            df = cursor.fetchdf()
            return QueryResult(rows=df.to_dict("records"), schema=schema)
        finally:
            cursor.close()


def get_duckdb_connection(path: Optional[str] = None) -> duckdb.DuckDBPyConnection:
    """Open the configured DuckDB database (in-memory by default)."""
    db_path = path or AppConfig.DUCKDB_PATH
    if db_path != ":memory:" and not os.path.exists(db_path):
        logger.warning(f"[DB] DuckDB file not found at {db_path}, a new database will be created")
    logger.info(f"[DB] Connecting to DuckDB at {db_path}")
    return duckdb.connect(db_path)
