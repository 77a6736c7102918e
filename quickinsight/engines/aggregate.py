"""
QUICKINSIGHT AGGREGATE ENGINE
=============================

Ad hoc aggregation: metrics grouped by dimensions, with filters.

Metric and filter definitions go through the metric/filter compilers, so
every column reaching the SQL is whitelisted and every literal escaped.
"""

import logging
from typing import Dict, List, Optional

import duckdb

from ..errors import CompileError
from ..utils.intelligence.filter_compiler import (
    COMBINATORS,
    compile_where_clause,
    quote_identifier,
    validate_identifier,
)
from ..utils.intelligence.metric_compiler import compile_metrics
from ..utils.intelligence.types import Aggregation, FilterExpr, MetricDefinition
from .base import (
    BaseEngine,
    EngineType,
    EngineResult,
    ResultStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000
DEFAULT_METRICS = {"count": {"label": "Count", "aggregation": Aggregation.COUNT.value}}
SORT_DIRECTIONS = ("ASC", "DESC")


# =============================================================================
# AGGREGATE ENGINE
# =============================================================================

class AggregateEngine(BaseEngine):
    """
    Engine for aggregating data with GROUP BY.

    Config Schema:
    {
        "source_table": "orders",                       # Required
        "metrics": {                                    # name -> MetricDefinition dict
            "total_orders": {"label": "Total Orders", "aggregation": "count"},
            "revenue": {"label": "Revenue", "aggregation": "sum", "column": "amount",
                        "where": [{"column": "status", "op": "=", "value": "paid"}]}
        },
        "dimensions": ["region"],                       # GROUP BY columns
        "filters": [                                    # Optional WHERE conditions
            {"column": "status", "op": "in", "value": ["paid", "shipped"]}
        ],
        "combinator": "AND",                            # Optional, AND | OR
        "order_by": "revenue",                          # Optional metric or dimension name
        "order_direction": "DESC",                      # Optional
        "limit": 100                                    # Optional
    }
    """

    VERSION = "1.0.0"

    @property
    def engine_type(self) -> EngineType:
        return EngineType.AGGREGATE

    @property
    def engine_version(self) -> str:
        return self.VERSION

    def _validate_config(self, config: Dict) -> List[str]:
        """Validate aggregate configuration."""
        errors = []

        source_table = config.get("source_table")
        if not source_table:
            errors.append("'source_table' is required")

        metrics = config.get("metrics") or DEFAULT_METRICS
        if not isinstance(metrics, dict):
            errors.append("'metrics' must map metric names to definitions")
            return errors
        for name, metric in metrics.items():
            try:
                MetricDefinition.from_dict(metric)
            except (KeyError, TypeError, ValueError) as e:
                errors.append(f"Metric '{name}': {e}")

        for i, f in enumerate(config.get("filters") or []):
            try:
                FilterExpr.from_dict(f)
            except (KeyError, TypeError, ValueError) as e:
                errors.append(f"Filter {i}: {e}")

        for dim in config.get("dimensions") or []:
            try:
                validate_identifier(dim)
            except CompileError as e:
                errors.append(f"Dimension: {e}")

        if str(config.get("combinator", "AND")).upper() not in COMBINATORS:
            errors.append(f"Invalid combinator '{config.get('combinator')}'")

        order_by = config.get("order_by")
        if order_by and order_by not in metrics and order_by not in (config.get("dimensions") or []):
            errors.append(f"order_by '{order_by}' is not a metric or dimension")

        if str(config.get("order_direction", "DESC")).upper() not in SORT_DIRECTIONS:
            errors.append(f"Invalid order_direction '{config.get('order_direction')}'")

        limit = config.get("limit", DEFAULT_LIMIT)
        if not isinstance(limit, int) or isinstance(limit, bool) or limit <= 0:
            errors.append(f"limit must be a positive integer, got {limit!r}")

        if source_table and not errors and not self._table_exists(source_table):
            errors.append(f"Table '{source_table}' does not exist")

        return errors

    def _table_exists(self, table_name: str) -> bool:
        try:
            self.conn.execute(f"SELECT 1 FROM {quote_identifier(table_name)} LIMIT 1")
            return True
        except duckdb.Error:
            return False

    def _execute(self, config: Dict) -> EngineResult:
        source_table = config["source_table"]
        metrics = {
            name: MetricDefinition.from_dict(m)
            for name, m in (config.get("metrics") or DEFAULT_METRICS).items()
        }
        dimensions = config.get("dimensions") or []
        filters = [FilterExpr.from_dict(f) for f in config.get("filters") or []]

        logger.info(f"[AGGREGATE] Config mode: {source_table}, "
                    f"{len(metrics)} metrics, {len(dimensions)} dimensions, {len(filters)} filters")

        sql = self._build_sql(
            source_table,
            metrics,
            dimensions,
            filters,
            combinator=config.get("combinator", "AND"),
            order_by=config.get("order_by"),
            order_direction=config.get("order_direction", "DESC"),
            limit=config.get("limit", DEFAULT_LIMIT),
        )

        logger.info(f"[AGGREGATE] Executing: {sql[:200]}...")
        data = self._query(sql)
        columns = list(data[0].keys()) if data else []

        return EngineResult(
            status=ResultStatus.SUCCESS if data else ResultStatus.NO_DATA,
            data=data,
            columns=columns,
            provenance=self._provenance(source_tables=[source_table]),
            sql=sql,
            summary=f"{len(data)} rows returned" if data else "No data found",
            metadata={
                "metrics": list(metrics.keys()),
                "dimensions": dimensions
            }
        )

    def _build_sql(self,
                   source_table: str,
                   metrics: Dict[str, MetricDefinition],
                   dimensions: List[str],
                   filters: List[FilterExpr],
                   combinator: str = "AND",
                   order_by: Optional[str] = None,
                   order_direction: str = "DESC",
                   limit: int = DEFAULT_LIMIT) -> str:
        """Build SQL from explicit config."""
        select_parts = [validate_identifier(dim) for dim in dimensions]
        select_parts.append(compile_metrics(metrics))

        sql = f'SELECT {", ".join(select_parts)}'
        sql += f'\nFROM {quote_identifier(source_table)}'

        where = compile_where_clause(filters, combinator)
        if where:
            sql += f'\n{where}'

        if dimensions:
            sql += f'\nGROUP BY {", ".join(dimensions)}'

        direction = order_direction.upper()
        if order_by:
            sql += f'\nORDER BY {validate_identifier(order_by)} {direction}'
        elif dimensions:
            # Default: first metric descending
            sql += f'\nORDER BY {next(iter(metrics))} DESC'

        sql += f'\nLIMIT {int(limit)}'
        return sql


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def aggregate(conn,
              source_table: str,
              metrics: Dict[str, Dict] = None,
              dimensions: List[str] = None,
              filters: List[Dict] = None,
              combinator: str = "AND",
              order_by: str = None,
              limit: int = DEFAULT_LIMIT) -> EngineResult:
    """
    Convenience function to run an aggregation.

    Args:
        conn: DuckDB connection
        source_table: Table to aggregate
        metrics: name -> {"label", "aggregation", "column"?, "where"?}
        dimensions: GROUP BY columns
        filters: List of {"column", "op", "value"}
        combinator: AND | OR between filters
        order_by: Metric or dimension name, sorted descending
        limit: Max rows

    Returns:
        EngineResult with aggregated data
    """
    engine = AggregateEngine(conn)

    config = {
        "source_table": source_table,
        "metrics": metrics or DEFAULT_METRICS,
        "dimensions": dimensions or [],
        "filters": filters or [],
        "combinator": combinator,
        "limit": limit,
    }
    if order_by:
        config["order_by"] = order_by

    return engine.execute(config)
