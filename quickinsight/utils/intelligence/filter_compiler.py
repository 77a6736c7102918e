"""
QuickInsight Filter Compiler
============================

Compiles FilterExpr definitions into SQL boolean fragments.

Safety rules:
- Column names must match IDENTIFIER_PATTERN (alnum, underscore, CJK).
  Anything else is rejected, never interpolated.
- String literals are single-quoted with embedded quotes doubled.
- Relative-time values compile to CURRENT_TIMESTAMP +/- INTERVAL, so the
  database evaluates "now", not the caller.

Usage:
    from quickinsight.utils.intelligence.filter_compiler import compile_filter

    compile_filter(FilterExpr("status", FilterOperator.IN, ["paid", "shipped"]))
    # "status IN ('paid', 'shipped')"
"""

import logging
import math
import re
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable

from ...errors import CompileError, InvalidColumn, TypeMismatch, UnsupportedOperator
from .types import (
    COMPARISON_OPERATORS,
    FilterExpr,
    FilterOperator,
    RelativeTimeValue,
    TimeDirection,
    TimeUnit,
)

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_\u4e00-\u9fa5]+")

COMBINATORS = ("AND", "OR")


# =============================================================================
# LITERALS
# =============================================================================

def validate_identifier(name: Any) -> str:
    """Return name unchanged if it is a safe bare identifier, else raise InvalidColumn."""
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.fullmatch(name):
        raise InvalidColumn(f"Invalid column name: {name!r}")
    return name


def quote_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def quote_identifier(name: str) -> str:
    """Double-quote a table or column name, doubling embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


def _render_scalar(value: Any) -> str:
    # bool is an int subclass; check it first
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str):
        return quote_string(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeMismatch(f"Non-finite number is not a valid literal: {value}")
        return format(Decimal(repr(value)), "f")
    raise TypeMismatch(f"Unsupported literal value type: {type(value).__name__}")


def _render_list(values: Iterable[Any]) -> str:
    items = []
    for item in values:
        if isinstance(item, (list, tuple, dict, RelativeTimeValue)):
            raise TypeMismatch("Nested values are not allowed inside a list literal")
        items.append(_render_scalar(item))
    if not items:
        raise TypeMismatch("List literal must contain at least one value")
    return f"({', '.join(items)})"


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


# =============================================================================
# OPERATOR COMPILERS
# =============================================================================

def _compile_comparison(column: str, op: FilterOperator, value: Any) -> str:
    if _is_list(value):
        raise UnsupportedOperator(f"Operator '{op.value}' does not accept a list value")
    return f"{column} {op.value} {_render_scalar(value)}"


def _compile_membership(column: str, op: FilterOperator, value: Any) -> str:
    if not _is_list(value):
        raise TypeMismatch(f"Operator '{op.value}' requires a list value")
    keyword = "IN" if op == FilterOperator.IN else "NOT IN"
    return f"{column} {keyword} {_render_list(value)}"


def _compile_contains(column: str, op: FilterOperator, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeMismatch("Operator 'contains' requires a string value")
    return f"{column} LIKE {quote_string(f'%{value}%')}"


_OPERATOR_COMPILERS: Dict[FilterOperator, Callable[[str, FilterOperator, Any], str]] = {
    FilterOperator.EQ: _compile_comparison,
    FilterOperator.NE: _compile_comparison,
    FilterOperator.GT: _compile_comparison,
    FilterOperator.GTE: _compile_comparison,
    FilterOperator.LT: _compile_comparison,
    FilterOperator.LTE: _compile_comparison,
    FilterOperator.IN: _compile_membership,
    FilterOperator.NOT_IN: _compile_membership,
    FilterOperator.CONTAINS: _compile_contains,
}


def _compile_relative_time(column: str, op: FilterOperator, value: RelativeTimeValue) -> str:
    """
    Direction decides the comparator. The operator is only checked to be a
    comparison; '>' and '>=' (or '<' and '<=') produce the same fragment.
    """
    if op not in COMPARISON_OPERATORS:
        raise UnsupportedOperator(
            f"Operator '{op.value}' is not valid for a relative time comparison"
        )

    amount = value.amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise TypeMismatch(f"Relative time amount must be a positive integer, got {amount!r}")

    try:
        unit = TimeUnit(value.unit)
        direction = TimeDirection(value.direction)
    except ValueError as e:
        raise TypeMismatch(f"Invalid relative time value: {e}") from e

    interval = f"INTERVAL '{amount} {unit.value}'"
    cast_column = f"CAST({column} AS TIMESTAMP)"

    if direction == TimeDirection.PAST:
        return f"{cast_column} >= CURRENT_TIMESTAMP - {interval}"
    return f"{cast_column} <= CURRENT_TIMESTAMP + {interval}"


# =============================================================================
# PUBLIC API
# =============================================================================

def compile_filter(filter_expr: FilterExpr) -> str:
    """
    Compile one FilterExpr to a SQL boolean fragment.

    Raises:
        InvalidColumn: column fails the identifier whitelist
        TypeMismatch: value type does not fit the operator
        UnsupportedOperator: any other illegal operator/value combination
    """
    column = validate_identifier(filter_expr.column)

    try:
        op = FilterOperator(filter_expr.op)
    except ValueError:
        raise UnsupportedOperator(f"Unsupported operator: {filter_expr.op!r}") from None

    value = filter_expr.value
    if isinstance(value, RelativeTimeValue):
        return _compile_relative_time(column, op, value)

    return _OPERATOR_COMPILERS[op](column, op, value)


def compile_filters(filters: Iterable[FilterExpr], combinator: str = "AND") -> str:
    """Compile and join several filters. Empty input gives an empty string."""
    combinator = combinator.upper()
    if combinator not in COMBINATORS:
        raise UnsupportedOperator(f"Unsupported combinator: {combinator!r}")

    clauses = []
    for filter_expr in filters:
        try:
            clauses.append(compile_filter(filter_expr))
        except CompileError as e:
            logger.error(f"[FILTER] Failed to compile filter {filter_expr}: {e}")
            raise

    return f" {combinator} ".join(clauses)


def compile_where_clause(filters: Iterable[FilterExpr], combinator: str = "AND") -> str:
    """Like compile_filters, prefixed with WHERE. Returns '' when there is nothing to filter."""
    compiled = compile_filters(filters, combinator)
    return f"WHERE {compiled}" if compiled else ""
