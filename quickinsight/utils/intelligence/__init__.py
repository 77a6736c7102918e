"""
QuickInsight Intelligence Module
================================

Query-intent compilation: turns declarative filter/metric definitions into
injection-safe SQL, summarizes skill configuration for prompts, and routes
natural-language questions to analytic intents.

Usage:
    from quickinsight.utils.intelligence import compile_metric, classify_by_keywords

    compile_metric(MetricDefinition("Total Orders", Aggregation.COUNT))
    # "COUNT(*) AS total_orders"

Module Structure:
    intelligence/
    ├── __init__.py            # This file
    ├── types.py               # Shared data classes and enums
    ├── vocabulary.py          # Static keyword / pattern tables
    ├── filter_compiler.py     # FilterExpr -> SQL boolean fragment
    ├── metric_compiler.py     # MetricDefinition -> SQL SELECT expression
    ├── digest_builder.py      # Bounded skill-configuration digest
    ├── query_type_router.py   # Keyword + model query-type classification
    └── schema_inspector.py    # Table metadata and semantic column types
"""

__version__ = "1.0.0"

from .types import (
    Aggregation,
    ClassificationMethod,
    ColumnInfo,
    DigestOptions,
    FieldMapping,
    FilterExpr,
    FilterOperator,
    MetricDefinition,
    MetricOverride,
    MetricSource,
    QueryType,
    QueryTypeClassification,
    RelativeTimeValue,
    TableMetadata,
    TableSkillConfig,
    TimeDirection,
    TimeUnit,
    UserSkillConfig,
)

from .filter_compiler import (
    compile_filter,
    compile_filters,
    compile_where_clause,
    quote_identifier,
    validate_identifier,
)

from .metric_compiler import (
    check_metric_override,
    compile_metric,
    compile_metrics,
)

from .digest_builder import (
    build_table_skill_digest,
    build_user_skill_digest,
    check_digest_budget,
    get_digest_stats,
)

from .query_type_router import (
    classify_by_keywords,
    classify_by_llm,
    classify_query_type,
    extract_top_n,
)

from .schema_inspector import (
    fetch_table_metadata,
    match_semantic_type,
)
