"""
QuickInsight Intelligence - Shared Types
========================================

Data classes and enums used across the intelligence module: filter and
metric definitions, skill configuration, and query-type classification.

Every "kind" (operator, aggregation, query type) is a closed Enum.
Compile sites dispatch through tables keyed by every member.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ...config import AppConfig


# =============================================================================
# ENUMS
# =============================================================================

class FilterOperator(str, Enum):
    """Operators accepted in a FilterExpr."""
    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"


COMPARISON_OPERATORS = frozenset({
    FilterOperator.EQ,
    FilterOperator.NE,
    FilterOperator.GT,
    FilterOperator.GTE,
    FilterOperator.LT,
    FilterOperator.LTE,
})


class TimeUnit(str, Enum):
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class TimeDirection(str, Enum):
    PAST = "past"
    FUTURE = "future"


class Aggregation(str, Enum):
    """Aggregation kinds a MetricDefinition may use."""
    COUNT = "count"
    COUNT_DISTINCT = "count_distinct"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class QueryType(str, Enum):
    """Analytic intents the query-type router can assign."""
    KPI_SINGLE = "kpi_single"
    KPI_GROUPED = "kpi_grouped"
    TREND_TIME = "trend_time"
    DISTRIBUTION = "distribution"
    TOPN = "topn"
    COMPARISON = "comparison"
    UNKNOWN = "unknown"


class ClassificationMethod(str, Enum):
    KEYWORD = "keyword"
    MODEL = "model"


class MetricSource(str, Enum):
    USER = "user"
    SYSTEM = "system"
    NONE = "none"


# =============================================================================
# FILTERS AND METRICS
# =============================================================================

LiteralValue = Union[str, int, float, bool, List[Union[str, int, float, bool]]]


@dataclass(frozen=True)
class RelativeTimeValue:
    """'N units ago/hence', evaluated by the database at query time."""
    unit: TimeUnit
    amount: int
    direction: TimeDirection = TimeDirection.PAST

    kind = "relative_time"

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "unit": self.unit.value,
            "amount": self.amount,
            "direction": self.direction.value,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RelativeTimeValue":
        return cls(
            unit=TimeUnit(data["unit"]),
            amount=data["amount"],
            direction=TimeDirection(data.get("direction", "past")),
        )


@dataclass(frozen=True)
class FilterExpr:
    """One atomic condition: column / operator / value."""
    column: str
    op: FilterOperator
    value: Any  # LiteralValue | RelativeTimeValue

    def to_dict(self) -> Dict:
        value = self.value
        if isinstance(value, RelativeTimeValue):
            value = value.to_dict()
        elif isinstance(value, tuple):
            value = list(value)
        return {"column": self.column, "op": self.op.value, "value": value}

    @classmethod
    def from_dict(cls, data: Dict) -> "FilterExpr":
        value = data.get("value")
        if isinstance(value, dict) and value.get("kind") == RelativeTimeValue.kind:
            value = RelativeTimeValue.from_dict(value)
        return cls(column=data["column"], op=FilterOperator(data["op"]), value=value)


@dataclass(frozen=True)
class MetricDefinition:
    """A named aggregation, optionally restricted by conditions."""
    label: str
    aggregation: Aggregation
    column: Optional[str] = None
    where: Tuple[FilterExpr, ...] = ()

    def to_dict(self) -> Dict:
        result = {"label": self.label, "aggregation": self.aggregation.value}
        if self.column:
            result["column"] = self.column
        if self.where:
            result["where"] = [f.to_dict() for f in self.where]
        return result

    @classmethod
    def from_dict(cls, data: Dict) -> "MetricDefinition":
        return cls(
            label=data["label"],
            aggregation=Aggregation(data["aggregation"]),
            column=data.get("column"),
            where=tuple(FilterExpr.from_dict(f) for f in data.get("where") or []),
        )


@dataclass(frozen=True)
class MetricOverride:
    is_override: bool
    source: MetricSource


# =============================================================================
# SKILL CONFIGURATION
# =============================================================================

@dataclass
class FieldMapping:
    """User-assigned roles for a table's columns."""
    order_id_column: Optional[str] = None
    user_id_column: Optional[str] = None
    time_column: Optional[str] = None
    amount_column: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "FieldMapping":
        return cls(
            order_id_column=data.get("order_id_column"),
            user_id_column=data.get("user_id_column"),
            time_column=data.get("time_column"),
            amount_column=data.get("amount_column"),
        )


@dataclass
class TableSkillConfig:
    """Per-table skill configuration: field mapping, default filters, metrics."""
    field_mapping: Optional[FieldMapping] = None
    default_filters: List[FilterExpr] = field(default_factory=list)
    metrics: Dict[str, MetricDefinition] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "TableSkillConfig":
        mapping = data.get("field_mapping")
        return cls(
            field_mapping=FieldMapping.from_dict(mapping) if mapping else None,
            default_filters=[FilterExpr.from_dict(f) for f in data.get("default_filters") or []],
            metrics={
                name: MetricDefinition.from_dict(m)
                for name, m in (data.get("metrics") or {}).items()
            },
        )


@dataclass
class UserSkillConfig:
    tables: Dict[str, TableSkillConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "UserSkillConfig":
        return cls(tables={
            name: TableSkillConfig.from_dict(t)
            for name, t in (data.get("tables") or {}).items()
        })


@dataclass
class DigestOptions:
    max_filters: int = 5
    max_metrics: int = 8
    user_skill_digest_max_chars: int = AppConfig.DIGEST_MAX_CHARS


# =============================================================================
# CLASSIFICATION
# =============================================================================

@dataclass(frozen=True)
class QueryTypeClassification:
    """Result of query-type routing. Never mutated after creation."""
    query_type: QueryType
    confidence: float
    matched_keywords: Tuple[str, ...] = ()
    method: ClassificationMethod = ClassificationMethod.KEYWORD
    top_n: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "query_type": self.query_type.value,
            "confidence": self.confidence,
            "matched_keywords": list(self.matched_keywords),
            "method": self.method.value,
            "top_n": self.top_n,
        }


# =============================================================================
# TABLE METADATA
# =============================================================================

@dataclass
class ColumnInfo:
    name: str
    type: str = ""
    nullable: bool = True

    def to_dict(self) -> Dict:
        return {"name": self.name, "type": self.type, "nullable": self.nullable}


@dataclass
class TableMetadata:
    """Schema snapshot of one table, as read from information_schema."""
    table_name: str
    row_count: int = 0
    columns: List[ColumnInfo] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_dict(self) -> Dict:
        return {
            "table_name": self.table_name,
            "row_count": self.row_count,
            "columns": [c.to_dict() for c in self.columns],
        }
