"""
Pytest Configuration and Fixtures
==================================
Shared fixtures for the QuickInsight test suite.
"""

import pytest
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock
from typing import Dict, Any

import duckdb

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from quickinsight.config import AppConfig
from quickinsight.utils.clustering import ClusteringWorker
from quickinsight.utils.database import DuckDBExecutor


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def mock_environment(monkeypatch):
    """Set up test environment: in-memory DuckDB, no model configured."""
    monkeypatch.setenv("DUCKDB_PATH", ":memory:")
    monkeypatch.setenv("LLM_ENDPOINT", "")
    monkeypatch.setattr(AppConfig, "DUCKDB_PATH", ":memory:")
    monkeypatch.setattr(AppConfig, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(AppConfig, "LLM_ENDPOINT", "")
    monkeypatch.setattr(AppConfig, "CLAUDE_API_KEY", "")


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

def _order_rows():
    """
    12 customers, C01..C12. Customer i places (i % 4) + 1 orders, the last
    one on 2024-01-01 + 7*i days. C01 also has a refund row with a
    negative amount.
    """
    regions = ["north", "south", "east"]
    rows = []
    for i in range(1, 13):
        customer = f"C{i:02d}"
        n_orders = (i % 4) + 1
        for k in range(n_orders):
            rows.append((
                customer,
                f"O{i:02d}{k}",
                date(2024, 1, 1) + timedelta(days=7 * i - 3 * k),
                float(50 * i + 10 * k),
                "paid" if k % 2 == 0 else "shipped",
                regions[i % 3],
            ))
    rows.append(("C01", "O01R", date(2024, 1, 9), -20.0, "refunded", "south"))
    return rows


@pytest.fixture
def order_rows():
    return _order_rows()


@pytest.fixture
def duckdb_conn():
    """Empty in-memory DuckDB connection."""
    conn = duckdb.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def orders_conn(duckdb_conn):
    """DuckDB connection with an 'orders' table of 12 customers."""
    duckdb_conn.execute("""
        CREATE TABLE orders (
            customer_id VARCHAR,
            order_id VARCHAR,
            order_date DATE,
            amount DOUBLE,
            status VARCHAR,
            region VARCHAR
        )
    """)
    duckdb_conn.executemany("INSERT INTO orders VALUES (?, ?, ?, ?, ?, ?)", _order_rows())
    return duckdb_conn


@pytest.fixture
def executor(orders_conn):
    return DuckDBExecutor(orders_conn)


@pytest.fixture
def thread_worker():
    """ClusteringWorker running the K-means kernel on a thread instead of a process."""
    worker = ClusteringWorker(executor_factory=lambda: ThreadPoolExecutor(max_workers=1))
    yield worker
    worker.close()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_llm_client():
    """Mock model client answering with a TopN classification."""
    mock = MagicMock()
    mock.chat = AsyncMock(return_value=(
        '{"queryType": "topn", "confidence": 0.9, "reasoning": "asks for a ranking"}'
    ))
    return mock


@pytest.fixture
def mock_executor():
    """Mock QueryExecutor; set execute.side_effect per test."""
    mock = MagicMock()
    mock.execute = AsyncMock()
    return mock


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_skill_config() -> Dict[str, Any]:
    """User skill configuration for the orders table."""
    return {
        "tables": {
            "orders": {
                "field_mapping": {
                    "order_id_column": "order_id",
                    "user_id_column": "customer_id",
                    "time_column": "order_date",
                    "amount_column": "amount",
                },
                "default_filters": [
                    {"column": "status", "op": "in", "value": ["paid", "shipped"]},
                    {"column": "order_date", "op": ">=",
                     "value": {"kind": "relative_time", "unit": "day", "amount": 30, "direction": "past"}},
                ],
                "metrics": {
                    "gmv": {"label": "GMV", "aggregation": "sum", "column": "amount"},
                    "orders": {"label": "Orders", "aggregation": "count"},
                },
            }
        }
    }


@pytest.fixture
def sample_table_schema() -> Dict[str, Any]:
    """Column list of a typical orders table."""
    return {
        "table_name": "orders",
        "columns": [
            {"name": "customer_id", "type": "VARCHAR"},
            {"name": "order_id", "type": "VARCHAR"},
            {"name": "order_date", "type": "DATE"},
            {"name": "amount", "type": "DOUBLE"},
            {"name": "status", "type": "VARCHAR"},
            {"name": "region", "type": "VARCHAR"},
        ],
        "row_count": 31
    }
