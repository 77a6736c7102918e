"""
QUICKINSIGHT INSIGHT ROUTER
===========================

HTTP surface over the analysis core.

ENDPOINTS:
- POST /api/insight/classify                - Classify a question's analytic intent
- POST /api/insight/compile/metrics         - Compile metric (and filter) definitions to SQL
- POST /api/insight/digest                  - Bounded skill-configuration digest
- GET  /api/insight/{table}/rfm-columns     - Detect RFM column roles
- POST /api/insight/{table}/segments        - RFM customer segmentation
- POST /api/insight/{table}/aggregate       - Ad hoc aggregation

Shared resources (DuckDB connection, query executor, clustering worker,
model client) live on app.state and are owned by the app's lifespan.

Error mapping:
- CompileError        -> 400
- DataQualityError    -> 422
- WorkerTimeout       -> 504
- WorkerError, QueryExecutionError -> 502
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from ..config import AppConfig
from ..engines import AggregateEngine
from ..errors import (
    CompileError,
    DataQualityError,
    InsightError,
    QueryExecutionError,
    WorkerError,
    WorkerTimeout,
)
from ..utils.clustering import ClusteringService, ComputeMode, detect_rfm_columns
from ..utils.clustering.rfm_column_detector import REQUIRED_LABELS
from ..utils.intelligence import (
    DigestOptions,
    FilterExpr,
    MetricDefinition,
    UserSkillConfig,
    build_user_skill_digest,
    check_digest_budget,
    classify_query_type,
    compile_metrics,
    compile_where_clause,
    fetch_table_metadata,
    get_digest_stats,
    match_semantic_type,
    validate_identifier,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/insight", tags=["insight"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class ClassifyRequest(BaseModel):
    """Natural-language question to route."""
    text: str
    industry: Optional[str] = None
    schema_digest: str = ""
    use_llm: bool = True


class CompileMetricsRequest(BaseModel):
    metrics: Dict[str, Dict[str, Any]]       # name -> {"label", "aggregation", "column"?, "where"?}
    limit: Optional[int] = None
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    combinator: str = "AND"


class DigestRequest(BaseModel):
    user_skill_config: Dict[str, Any]        # {"tables": {name: {...}}}
    active_table: Optional[str] = None
    max_filters: int = 5
    max_metrics: int = 8
    max_chars: int = AppConfig.DIGEST_MAX_CHARS


class SegmentRequest(BaseModel):
    """Request for RFM customer segmentation."""
    n_clusters: Optional[int] = None
    compute_mode: ComputeMode = ComputeMode.AUTO
    sample_size: Optional[int] = None
    baseline_date: Optional[str] = None      # YYYY-MM-DD
    include_customers: bool = True


class AggregateRequest(BaseModel):
    """Request for aggregate engine."""
    metrics: Optional[Dict[str, Dict[str, Any]]] = None
    dimensions: List[str] = Field(default_factory=list)
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    combinator: str = "AND"
    order_by: Optional[str] = None
    order_direction: str = "DESC"
    limit: Optional[int] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

_ERROR_STATUS = (
    (CompileError, 400),
    (DataQualityError, 422),
    (WorkerTimeout, 504),
    (WorkerError, 502),
    (QueryExecutionError, 502),
)


def _http_error(e: InsightError) -> HTTPException:
    """Map a core error to an HTTPException, keeping its message."""
    for error_cls, status_code in _ERROR_STATUS:
        if isinstance(e, error_cls):
            return HTTPException(status_code=status_code, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _parse_metrics(metrics: Dict[str, Dict[str, Any]]) -> Dict[str, MetricDefinition]:
    try:
        return {name: MetricDefinition.from_dict(m) for name, m in metrics.items()}
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid metric definition: {e}")


def _parse_filters(filters: List[Dict[str, Any]]) -> List[FilterExpr]:
    try:
        return [FilterExpr.from_dict(f) for f in filters]
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid filter definition: {e}")


def _checked_table(table: str) -> str:
    try:
        return validate_identifier(table)
    except CompileError as e:
        raise HTTPException(status_code=400, detail=f"Invalid table name: {table!r}") from e


# =============================================================================
# INTELLIGENCE
# =============================================================================

@router.post("/classify")
async def classify(body: ClassifyRequest, request: Request):
    """
    Classify a question into a query type.

    Example:
    ```json
    {"text": "按照地区统计销售额"}
    ```
    """
    client = request.app.state.llm_client if body.use_llm else None
    result = await classify_query_type(
        body.text,
        industry=body.industry,
        client=client,
        schema_digest=body.schema_digest,
    )
    return result.to_dict()


@router.post("/compile/metrics")
async def compile_metric_definitions(body: CompileMetricsRequest):
    """
    Compile metric definitions to a SELECT list and filters to a WHERE clause.

    Example:
    ```json
    {
        "metrics": {
            "paid_revenue": {"label": "Paid Revenue", "aggregation": "sum", "column": "amount",
                             "where": [{"column": "status", "op": "in", "value": ["paid"]}]}
        }
    }
    ```
    """
    metrics = _parse_metrics(body.metrics)
    filters = _parse_filters(body.filters)
    try:
        return {
            "select": compile_metrics(metrics, limit=body.limit),
            "where": compile_where_clause(filters, body.combinator),
        }
    except CompileError as e:
        raise _http_error(e)


@router.post("/digest")
async def skill_digest(body: DigestRequest):
    """Build the prompt digest for the active table's skill configuration."""
    try:
        config = UserSkillConfig.from_dict(body.user_skill_config)
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid skill configuration: {e}")

    digest = build_user_skill_digest(
        config,
        body.active_table,
        DigestOptions(
            max_filters=body.max_filters,
            max_metrics=body.max_metrics,
            user_skill_digest_max_chars=body.max_chars,
        ),
    )
    return {
        "digest": digest,
        "stats": get_digest_stats(digest),
        "within_budget": check_digest_budget(digest, body.max_chars),
    }


# =============================================================================
# CUSTOMER SEGMENTATION
# =============================================================================

@router.get("/{table}/rfm-columns")
async def rfm_columns(table: str, request: Request):
    """Detect which columns play the RFM roles in a table."""
    table = _checked_table(table)
    try:
        metadata = await fetch_table_metadata(request.app.state.executor, table)
    except InsightError as e:
        raise _http_error(e)

    detected = detect_rfm_columns(metadata)
    missing = [] if detected.precomputed.is_complete else [
        label for role, label in REQUIRED_LABELS.items() if not getattr(detected, role)
    ]
    return {
        "table": metadata.to_dict(),
        "rfm_columns": detected.to_dict(),
        "semantic_types": {c.name: match_semantic_type(c.name) for c in metadata.columns},
        "ready": not missing,
        "missing": missing,
    }


@router.post("/{table}/segments")
async def segment_customers(table: str, body: SegmentRequest, request: Request):
    """
    Run RFM customer segmentation on a table.

    Example:
    ```json
    {"n_clusters": 5, "compute_mode": "auto"}
    ```
    """
    table = _checked_table(table)
    service = ClusteringService(request.app.state.executor, request.app.state.worker)
    try:
        output = await service.analyze(
            table,
            n_clusters=body.n_clusters,
            compute_mode=body.compute_mode,
            sample_size=body.sample_size,
            baseline_date=body.baseline_date,
        )
    except InsightError as e:
        logger.error(f"[CLUSTERING] Segmentation of {table} failed: {e}")
        raise _http_error(e)
    except ValueError as e:
        # bad sample_size or baseline_date
        raise HTTPException(status_code=400, detail=str(e))

    return output.to_dict(include_customers=body.include_customers)


# =============================================================================
# AGGREGATE ENGINE
# =============================================================================

@router.post("/{table}/aggregate")
async def run_aggregate(table: str, body: AggregateRequest, request: Request):
    """
    Run an aggregate query (metrics grouped by dimensions).

    Example:
    ```json
    {
        "metrics": {"revenue": {"label": "Revenue", "aggregation": "sum", "column": "amount"}},
        "dimensions": ["region"]
    }
    ```
    """
    config: Dict[str, Any] = {
        "source_table": table,
        "dimensions": body.dimensions,
        "filters": body.filters,
        "combinator": body.combinator,
        "order_direction": body.order_direction,
    }
    if body.metrics:
        config["metrics"] = body.metrics
    if body.order_by:
        config["order_by"] = body.order_by
    if body.limit:
        config["limit"] = body.limit

    cursor = request.app.state.conn.cursor()
    try:
        result = await asyncio.to_thread(AggregateEngine(cursor).execute, config)
    finally:
        cursor.close()

    response = result.to_dict()
    response["success"] = result.success
    return response
