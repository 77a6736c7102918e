"""
QuickInsight Errors
===================

Exception taxonomy shared by the compilers, the segmentation pipeline and
the HTTP layer.

- CompileError: bad filter/metric definitions. Fatal to one compile call.
- DataQualityError: the table cannot support the requested analysis.
  Surfaced to the user as guidance.
- WorkerFailure: the numeric worker timed out or answered with an error.
- ModelClientError: model transport failure. Only the query-type router
  catches it (it degrades to keyword classification).
- QueryExecutionError: the database rejected a query.
"""

from typing import List


class InsightError(Exception):
    """Base class for all QuickInsight errors."""


# =============================================================================
# COMPILER ERRORS
# =============================================================================

class CompileError(InsightError, ValueError):
    """A filter or metric definition could not be compiled to SQL."""


class InvalidColumn(CompileError):
    """Identifier failed the column-name whitelist."""


class TypeMismatch(CompileError):
    """Value type does not fit the operator (e.g. IN with a scalar)."""


class UnsupportedOperator(CompileError):
    """Operator/value combination outside the supported set."""


class MissingColumn(CompileError):
    """Aggregation requires a column but none was given."""


# =============================================================================
# DATA QUALITY ERRORS
# =============================================================================

class DataQualityError(InsightError):
    """The data cannot support the requested analysis."""


class MissingRequiredColumns(DataQualityError):
    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"Missing required columns for RFM analysis: {', '.join(self.missing)}"
        )


class InsufficientData(DataQualityError):
    def __init__(self, actual: int, required: int):
        self.actual = actual
        self.required = required
        super().__init__(
            f"Insufficient data for clustering (min {required} customers required, found {actual})"
        )


class InsufficientCustomers(DataQualityError):
    def __init__(self, actual: int, required: int):
        self.actual = actual
        self.required = required
        super().__init__(
            f"Insufficient customers: {actual} valid RFM rows (min {required} required)"
        )


class InvalidClusterCount(DataQualityError, ValueError):
    """Requested K outside the supported range."""


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class WorkerFailure(InsightError):
    """Numeric worker did not produce a usable result."""


class WorkerTimeout(WorkerFailure):
    pass


class WorkerError(WorkerFailure):
    pass


class ModelClientError(InsightError):
    """Model endpoint unreachable or returned a non-success status."""


class QueryExecutionError(InsightError):
    """Database failed to execute a query."""
