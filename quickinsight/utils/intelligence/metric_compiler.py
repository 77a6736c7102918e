"""
QuickInsight Metric Compiler
============================

Compiles MetricDefinition objects into SQL SELECT expressions.

Only the aggregations in the Aggregation enum are accepted. A metric with
`where` conditions becomes a conditional aggregate:

    SUM(CASE WHEN status IN ('paid') THEN amount END) AS paid_revenue

Column names go through the same identifier whitelist as filters. Aliases
that are not bare identifiers (a label like "Avg-Order Value") are
double-quoted instead of rejected.
"""

import logging
import re
from typing import Callable, Dict, Optional

from ...errors import InvalidColumn, MissingColumn, UnsupportedOperator
from .filter_compiler import IDENTIFIER_PATTERN, compile_filters, quote_identifier, validate_identifier
from .types import Aggregation, MetricDefinition, MetricOverride, MetricSource

logger = logging.getLogger(__name__)


# =============================================================================
# AGGREGATION TABLES
# =============================================================================

_PLAIN: Dict[Aggregation, Callable[[Optional[str]], str]] = {
    Aggregation.COUNT: lambda col: "COUNT(*)",
    Aggregation.COUNT_DISTINCT: lambda col: f"COUNT(DISTINCT {col})",
    Aggregation.SUM: lambda col: f"SUM({col})",
    Aggregation.AVG: lambda col: f"AVG({col})",
    Aggregation.MIN: lambda col: f"MIN({col})",
    Aggregation.MAX: lambda col: f"MAX({col})",
}

# DISTINCT stays outside the CASE so only matching values are de-duplicated.
_CONDITIONAL: Dict[Aggregation, Callable[[str, Optional[str]], str]] = {
    Aggregation.COUNT: lambda cond, col: f"COUNT(CASE WHEN {cond} THEN 1 END)",
    Aggregation.COUNT_DISTINCT: lambda cond, col: f"COUNT(DISTINCT CASE WHEN {cond} THEN {col} END)",
    Aggregation.SUM: lambda cond, col: f"SUM(CASE WHEN {cond} THEN {col} END)",
    Aggregation.AVG: lambda cond, col: f"AVG(CASE WHEN {cond} THEN {col} END)",
    Aggregation.MIN: lambda cond, col: f"MIN(CASE WHEN {cond} THEN {col} END)",
    Aggregation.MAX: lambda cond, col: f"MAX(CASE WHEN {cond} THEN {col} END)",
}

_COLUMN_REQUIRED = frozenset(Aggregation) - {Aggregation.COUNT}


def derive_alias(label: str) -> str:
    """'Total Orders' -> 'total_orders'"""
    return re.sub(r"\s+", "_", label).lower()


def _render_alias(alias: str) -> str:
    if not alias:
        raise InvalidColumn("Metric alias must not be empty")
    if IDENTIFIER_PATTERN.fullmatch(alias):
        return alias
    return quote_identifier(alias)


# =============================================================================
# PUBLIC API
# =============================================================================

def compile_metric(metric: MetricDefinition, alias: Optional[str] = None) -> str:
    """
    Compile one metric to '<aggregate expression> AS <alias>'.

    Raises:
        MissingColumn: a non-count aggregation has no column
        InvalidColumn: column fails the identifier whitelist, or the alias is empty
        CompileError: any failure from the where-clause filters
    """
    try:
        aggregation = Aggregation(metric.aggregation)
    except ValueError:
        raise UnsupportedOperator(f"Unsupported aggregation: {metric.aggregation!r}") from None
    column = metric.column

    if aggregation in _COLUMN_REQUIRED and not column:
        raise MissingColumn(f"Column is required for {aggregation.value} aggregation")
    if column:
        validate_identifier(column)

    if metric.where:
        condition = compile_filters(metric.where, "AND")
        expression = _CONDITIONAL[aggregation](condition, column)
    else:
        expression = _PLAIN[aggregation](column)

    return f"{expression} AS {_render_alias(alias or derive_alias(metric.label))}"


def compile_metrics(metrics: Dict[str, MetricDefinition], limit: Optional[int] = None) -> str:
    """
    Compile a name -> metric map in insertion order, keeping the first
    `limit` entries when given. The map key is used as the alias.

    Fail-fast: one bad metric aborts the whole batch.
    """
    entries = list(metrics.items())
    if limit is not None:
        entries = entries[:limit]

    expressions = []
    for name, metric in entries:
        try:
            expressions.append(compile_metric(metric, name))
        except ValueError as e:
            logger.error(f"[METRIC] Failed to compile metric '{name}': {e}")
            raise

    return ", ".join(expressions)


def check_metric_override(name: str,
                          system_metrics: Dict[str, MetricDefinition],
                          user_metrics: Dict[str, MetricDefinition]) -> MetricOverride:
    """Report where a metric name is defined and whether the user overrides a system metric."""
    in_user = name in user_metrics
    in_system = name in system_metrics

    if in_user and in_system:
        return MetricOverride(is_override=True, source=MetricSource.USER)
    if in_user:
        return MetricOverride(is_override=False, source=MetricSource.USER)
    if in_system:
        return MetricOverride(is_override=False, source=MetricSource.SYSTEM)
    return MetricOverride(is_override=False, source=MetricSource.NONE)
