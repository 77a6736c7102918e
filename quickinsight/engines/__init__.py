"""
QUICKINSIGHT ENGINES
====================

Engines run declarative query configs against DuckDB and return an
EngineResult carrying rows, the SQL run and its provenance.

USAGE
=====

    from quickinsight.engines import AggregateEngine

    result = AggregateEngine(conn).execute({
        "source_table": "orders",
        "metrics": {"revenue": {"label": "Revenue", "aggregation": "sum", "column": "amount"}},
        "dimensions": ["region"]
    })

    result.status   # SUCCESS, FAILURE, NO_DATA
    result.error    # failure message, None on success
"""

from .base import (
    EngineType,
    ResultStatus,
    Provenance,
    EngineResult,
    BaseEngine,
)
from .aggregate import AggregateEngine, aggregate

__all__ = [
    'EngineType',
    'ResultStatus',
    'Provenance',
    'EngineResult',
    'BaseEngine',
    'AggregateEngine',
    'aggregate',
]
