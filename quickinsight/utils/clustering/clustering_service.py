"""
Customer Clustering Service
===========================

Orchestrates one RFM segmentation request:

    detecting-columns -> counting -> fetching-rfm -> dispatching
        -> awaiting-worker -> success | failure

Suspension points are the database queries and the worker round trip, in
that order. Every query and the worker message carry the request's
correlation id.

Usage:
    service = ClusteringService(executor, worker)
    output = await service.analyze("orders", n_clusters=5)
"""

import dataclasses
import logging
import math
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...config import AppConfig
from ...errors import InsufficientCustomers, InvalidClusterCount, MissingRequiredColumns, WorkerError
from ..database import QueryExecutor
from ..intelligence.schema_inspector import fetch_table_metadata
from .cluster_labeler import label_all_clusters
from .constants import (
    DEFAULT_K_VALUE,
    DEFAULT_SCALING_MODE,
    GPU_AUTO_THRESHOLD,
    K_VALUE_RANGE,
    MIN_CUSTOMER_COUNT,
    MIN_K_VALUE_FOR_SMALL_DATASET,
)
from .rfm_column_detector import (
    REQUIRED_LABELS,
    detect_rfm_columns,
    find_customer_id_column,
    validate_rfm_columns,
)
from .rfm_sql_generator import generate_customer_count_sql, generate_rfm_sql, validate_customer_count
from .types import (
    AnalysisStage,
    ClusteringAnalysisOutput,
    ClusteringMetadata,
    ClusterMetadata,
    ComputeMode,
    CustomerClusterRecord,
    RFMColumns,
    RFMFeatures,
)
from .worker import ERROR_TYPE, REQUEST_TYPE, SUCCESS_TYPE, ClusteringWorker

logger = logging.getLogger(__name__)


# =============================================================================
# PURE STEPS
# =============================================================================

def resolve_cluster_count(customer_count: int, requested: Optional[int] = None) -> int:
    """
    K for this request. A requested K must lie in K_VALUE_RANGE. When there
    are fewer customers than K, K drops to
    max(MIN_K_VALUE_FOR_SMALL_DATASET, customer_count // 3).
    """
    if requested is not None and not K_VALUE_RANGE[0] <= requested <= K_VALUE_RANGE[1]:
        raise InvalidClusterCount(
            f"n_clusters must be between {K_VALUE_RANGE[0]} and {K_VALUE_RANGE[1]}, got {requested}"
        )

    n_clusters = DEFAULT_K_VALUE if requested is None else requested
    if customer_count < n_clusters:
        adjusted = max(MIN_K_VALUE_FOR_SMALL_DATASET, customer_count // 3)
        logger.info(f"[CLUSTERING] Adjusted K from {n_clusters} to {adjusted} "
                    f"for small dataset ({customer_count} customers)")
        return adjusted
    return n_clusters


def should_use_gpu(mode: Any, customer_count: int) -> bool:
    """'force' always, 'auto' from GPU_AUTO_THRESHOLD customers up, anything else never."""
    if mode == ComputeMode.FORCE:
        return True
    if mode == ComputeMode.AUTO:
        return customer_count >= GPU_AUTO_THRESHOLD
    return False


def _to_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def parse_rfm_rows(rows: Sequence[Dict[str, Any]]) -> Tuple[List[RFMFeatures], int]:
    """
    Convert query rows to RFMFeatures. Rows with a non-numeric, non-finite
    or negative recency/frequency/monetary are skipped, never coerced.

    Returns:
        (features, dropped row count)
    """
    features = []
    dropped = 0
    for row in rows:
        customer_id = str(row.get("customer_id"))
        values = [_to_number(row.get(key)) for key in ("recency", "frequency", "monetary")]
        if any(v is None for v in values):
            logger.warning(f"[CLUSTERING] Invalid RFM values for customer {customer_id}, skipping")
            dropped += 1
            continue
        recency, frequency, monetary = values
        features.append(RFMFeatures(customer_id, recency, frequency, monetary))
    return features, dropped


def compute_cluster_metadata(customers: Sequence[CustomerClusterRecord], n_clusters: int) -> List[ClusterMetadata]:
    """
    Per-cluster statistics for every cluster id in [0, n_clusters), empty
    ones included, sorted by total value descending.

    Churn risk is the cluster's average recency over the largest recency
    among all customers.
    """
    max_recency = max((c.recency for c in customers), default=0.0)
    grand_total = sum(c.monetary for c in customers)

    clusters = []
    for cluster_id in range(n_clusters):
        members = [c for c in customers if c.cluster_id == cluster_id]
        if not members:
            clusters.append(ClusterMetadata(
                cluster_id=cluster_id,
                customer_count=0,
                avg_recency=0.0,
                avg_frequency=0.0,
                avg_monetary=0.0,
                total_value=0.0,
            ))
            continue

        count = len(members)
        total_value = sum(c.monetary for c in members)
        avg_recency = sum(c.recency for c in members) / count
        avg_frequency = sum(c.frequency for c in members) / count
        avg_monetary = total_value / count
        avg_aov = avg_monetary / avg_frequency if avg_frequency else 0.0
        avg_churn_risk = avg_recency / max_recency if max_recency > 0 else 0.0

        clusters.append(ClusterMetadata(
            cluster_id=cluster_id,
            customer_count=count,
            avg_recency=avg_recency,
            avg_frequency=avg_frequency,
            avg_monetary=avg_monetary,
            total_value=total_value,
            value_share=total_value / grand_total if grand_total else 0.0,
            avg_aov=avg_aov,
            avg_churn_risk=avg_churn_risk,
            radar_values={
                "recency": avg_recency,
                "frequency": avg_frequency,
                "monetary": avg_monetary,
                "aov": avg_aov,
                "churn_risk": avg_churn_risk,
            },
        ))

    clusters.sort(key=lambda c: c.total_value, reverse=True)
    return clusters


def build_customer_records(response: Dict[str, Any],
                           features: Sequence[RFMFeatures],
                           n_clusters: int) -> List[CustomerClusterRecord]:
    """Zip the worker's id order and assignments with the locally held RFM values, by position."""
    customer_ids = response.get("customer_ids") or []
    cluster_ids = response.get("cluster_ids") or []
    if len(customer_ids) != len(features) or len(cluster_ids) != len(features):
        raise WorkerError(
            f"Worker returned {len(customer_ids)} ids / {len(cluster_ids)} assignments "
            f"for {len(features)} customers"
        )

    records = []
    for customer_id, cluster_id, rfm in zip(customer_ids, cluster_ids, features):
        if not 0 <= cluster_id < n_clusters:
            raise WorkerError(f"Cluster id {cluster_id} outside [0, {n_clusters})")
        records.append(CustomerClusterRecord(
            customer_id=str(customer_id),
            cluster_id=int(cluster_id),
            recency=rfm.recency,
            frequency=rfm.frequency,
            monetary=rfm.monetary,
            aov=rfm.monetary / rfm.frequency if rfm.frequency else 0.0,
        ))
    return records


# =============================================================================
# SERVICE
# =============================================================================

class ClusteringService:
    """
    Runs segmentation requests against a database executor and a shared
    ClusteringWorker. The caller owns both and their lifecycles.
    """

    def __init__(self,
                 executor: QueryExecutor,
                 worker: ClusteringWorker,
                 timeout_seconds: Optional[float] = None):
        self.executor = executor
        self.worker = worker
        self.timeout_seconds = timeout_seconds or AppConfig.CLUSTERING_TIMEOUT_SECONDS

    def _stage(self, request_id: str, stage: AnalysisStage, detail: str = "") -> None:
        logger.info(f"[CLUSTERING] [{request_id}] {stage.value}{': ' + detail if detail else ''}")

    def _resolve_precomputed_customer_id(self, rfm_columns: RFMColumns, columns: List[str]) -> RFMColumns:
        # pre-computed detection leaves raw roles empty; the id is still needed
        if rfm_columns.precomputed.is_complete and not rfm_columns.customer_id:
            customer_id = find_customer_id_column(columns)
            if not customer_id:
                raise MissingRequiredColumns([REQUIRED_LABELS["customer_id"]])
            return dataclasses.replace(rfm_columns, customer_id=customer_id)
        return rfm_columns

    async def analyze(self,
                      table_name: str,
                      n_clusters: Optional[int] = None,
                      compute_mode: Any = ComputeMode.AUTO,
                      sample_size: Optional[int] = None,
                      baseline_date: Optional[str] = None,
                      request_id: Optional[str] = None) -> ClusteringAnalysisOutput:
        """
        Segment the customers of `table_name`.

        Raises:
            MissingRequiredColumns: no usable customer/date/amount columns
            InsufficientData: too few customers before fetching
            InsufficientCustomers: too few valid RFM rows after parsing
            InvalidClusterCount: requested K outside K_VALUE_RANGE
            WorkerTimeout / WorkerError: numeric worker failures
            QueryExecutionError: database failures
        """
        request_id = request_id or uuid.uuid4().hex[:12]
        start = time.perf_counter()

        try:
            self._stage(request_id, AnalysisStage.DETECTING_COLUMNS, table_name)
            metadata = await fetch_table_metadata(self.executor, table_name, request_id=request_id)
            rfm_columns = detect_rfm_columns(metadata)
            validate_rfm_columns(rfm_columns)
            rfm_columns = self._resolve_precomputed_customer_id(rfm_columns, metadata.column_names)

            self._stage(request_id, AnalysisStage.COUNTING)
            count_result = await self.executor.execute(
                generate_customer_count_sql(table_name, rfm_columns), request_id=request_id
            )
            customer_count = int(count_result.rows[0]["customer_count"]) if count_result.rows else 0
            validate_customer_count(customer_count)

            self._stage(request_id, AnalysisStage.FETCHING_RFM, f"{customer_count} customers")
            rfm_query = generate_rfm_sql(table_name, rfm_columns, sample_size, baseline_date)
            rfm_result = await self.executor.execute(rfm_query.sql, request_id=request_id)
            features, dropped = parse_rfm_rows(rfm_result.rows)

            if dropped:
                logger.warning(f"[CLUSTERING] [{request_id}] Dropped {dropped} of "
                               f"{len(rfm_result.rows)} rows ({dropped / len(rfm_result.rows):.1%})")
            if len(features) < MIN_CUSTOMER_COUNT:
                raise InsufficientCustomers(actual=len(features), required=MIN_CUSTOMER_COUNT)

            k = resolve_cluster_count(len(features), n_clusters)
            use_gpu = should_use_gpu(compute_mode, len(features))

            self._stage(request_id, AnalysisStage.DISPATCHING, f"K={k}, gpu={use_gpu}")
            message = {
                "type": REQUEST_TYPE,
                "request_id": request_id,
                "customer_ids": [f.customer_id for f in features],
                "features": [[f.recency, f.frequency, f.monetary] for f in features],
                "n_clusters": k,
                "scaling_mode": DEFAULT_SCALING_MODE,
                "use_gpu": use_gpu,
            }

            self._stage(request_id, AnalysisStage.AWAITING_WORKER)
            response = await self.worker.request(message, timeout=self.timeout_seconds)

            if response.get("type") == ERROR_TYPE:
                raise WorkerError(response.get("error") or "Unknown worker error")
            if response.get("type") != SUCCESS_TYPE:
                raise WorkerError(f"Invalid worker response: {response.get('type')!r}")

            customers = build_customer_records(response, features, k)
            clusters = compute_cluster_metadata(customers, k)
            for cluster, classification in zip(clusters, label_all_clusters(clusters)):
                cluster.label = classification.label
                cluster.label_info = classification.to_dict()

        except Exception as e:
            self._stage(request_id, AnalysisStage.FAILURE, str(e))
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        output = ClusteringAnalysisOutput(
            total_customers=len(features),
            clusters=clusters,
            customers=customers,
            metadata=ClusteringMetadata(
                request_id=request_id,
                gpu_used=bool(response.get("gpu_used", False)),
                sampling_rate=min(1.0, len(features) / customer_count) if customer_count else 1.0,
                rows_processed=len(features),
                rows_total=customer_count,
                duration_ms=duration_ms,
                n_clusters=k,
                is_precomputed=rfm_query.is_precomputed,
                is_sampled=rfm_query.is_sampled,
                dropped_rows=dropped,
                customer_id_column=rfm_columns.customer_id,
            ),
        )
        self._stage(request_id, AnalysisStage.SUCCESS,
                    f"{output.total_customers} customers in {k} clusters ({duration_ms}ms)")
        return output


async def analyze_customer_clustering(executor: QueryExecutor,
                                      worker: ClusteringWorker,
                                      table_name: str,
                                      **kwargs) -> ClusteringAnalysisOutput:
    """Convenience wrapper: one-off ClusteringService.analyze call."""
    return await ClusteringService(executor, worker).analyze(table_name, **kwargs)
