"""
Customer Clustering Types
=========================

Data classes for RFM column detection, RFM SQL generation, the numeric
worker protocol, and clustering output.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class ComputeMode(str, Enum):
    """GPU strategy requested by the caller."""
    AUTO = "auto"
    FORCE = "force"
    DISABLE = "disable"


class AnalysisStage(str, Enum):
    """Per-request state machine of a clustering analysis."""
    DETECTING_COLUMNS = "detecting-columns"
    COUNTING = "counting"
    FETCHING_RFM = "fetching-rfm"
    DISPATCHING = "dispatching"
    AWAITING_WORKER = "awaiting-worker"
    SUCCESS = "success"
    FAILURE = "failure"


# =============================================================================
# COLUMN DETECTION
# =============================================================================

@dataclass(frozen=True)
class PrecomputedRFM:
    recency: Optional[str] = None
    frequency: Optional[str] = None
    monetary: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.recency and self.frequency and self.monetary)


@dataclass(frozen=True)
class RFMConfidence:
    customer_id: float = 0.0
    order_id: float = 0.0
    order_date: float = 0.0
    order_amount: float = 0.0


@dataclass(frozen=True)
class RFMColumns:
    """
    Semantic roles detected for one table.

    Produced fresh per metadata inspection and never mutated; use
    dataclasses.replace to derive a variant.
    """
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    order_date: Optional[str] = None
    order_amount: Optional[str] = None
    confidence: RFMConfidence = field(default_factory=RFMConfidence)
    precomputed: PrecomputedRFM = field(default_factory=PrecomputedRFM)

    def to_dict(self) -> Dict:
        return {
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "order_date": self.order_date,
            "order_amount": self.order_amount,
            "confidence": {
                "customer_id": self.confidence.customer_id,
                "order_id": self.confidence.order_id,
                "order_date": self.confidence.order_date,
                "order_amount": self.confidence.order_amount,
            },
            "precomputed_rfm": {
                "recency": self.precomputed.recency,
                "frequency": self.precomputed.frequency,
                "monetary": self.precomputed.monetary,
            },
        }


@dataclass(frozen=True)
class RFMQuery:
    """Generated RFM SQL plus how it was built."""
    sql: str
    is_precomputed: bool
    is_sampled: bool
    sample_size: int


# =============================================================================
# FEATURES AND RESULTS
# =============================================================================

@dataclass(frozen=True)
class RFMFeatures:
    customer_id: str
    recency: float
    frequency: float
    monetary: float


@dataclass
class CustomerClusterRecord:
    customer_id: str
    cluster_id: int
    recency: float
    frequency: float
    monetary: float
    aov: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "customer_id": self.customer_id,
            "cluster_id": self.cluster_id,
            "recency": self.recency,
            "frequency": self.frequency,
            "monetary": self.monetary,
            "aov": self.aov,
        }


@dataclass
class ClusterMetadata:
    """Aggregated statistics for one cluster."""
    cluster_id: int
    customer_count: int
    avg_recency: float
    avg_frequency: float
    avg_monetary: float
    total_value: float
    value_share: float = 0.0
    avg_aov: Optional[float] = None
    avg_churn_risk: Optional[float] = None
    radar_values: Dict[str, float] = field(default_factory=dict)
    label: Optional[str] = None
    label_info: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict:
        return {
            "cluster_id": self.cluster_id,
            "label": self.label,
            "label_info": self.label_info,
            "customer_count": self.customer_count,
            "avg_recency": self.avg_recency,
            "avg_frequency": self.avg_frequency,
            "avg_monetary": self.avg_monetary,
            "total_value": self.total_value,
            "value_share": self.value_share,
            "avg_aov": self.avg_aov,
            "avg_churn_risk": self.avg_churn_risk,
            "radar_values": self.radar_values,
        }


@dataclass
class ClusteringMetadata:
    request_id: str
    gpu_used: bool
    sampling_rate: float
    rows_processed: int
    rows_total: int
    duration_ms: int
    n_clusters: int
    is_precomputed: bool
    is_sampled: bool
    dropped_rows: int = 0
    customer_id_column: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "request_id": self.request_id,
            "gpu_used": self.gpu_used,
            "sampling_rate": self.sampling_rate,
            "rows_processed": self.rows_processed,
            "rows_total": self.rows_total,
            "duration_ms": self.duration_ms,
            "n_clusters": self.n_clusters,
            "is_precomputed": self.is_precomputed,
            "is_sampled": self.is_sampled,
            "dropped_rows": self.dropped_rows,
            "customer_id_column": self.customer_id_column,
        }


@dataclass
class ClusteringAnalysisOutput:
    total_customers: int
    clusters: List[ClusterMetadata]       # sorted by total_value desc
    customers: List[CustomerClusterRecord]
    metadata: ClusteringMetadata

    def to_dict(self, include_customers: bool = True) -> Dict:
        result = {
            "total_customers": self.total_customers,
            "clusters": [c.to_dict() for c in self.clusters],
            "metadata": self.metadata.to_dict(),
        }
        if include_customers:
            result["customers"] = [c.to_dict() for c in self.customers]
        return result
