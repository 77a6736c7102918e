"""
RFM Cluster Labeler
===================

Names each cluster with a classic RFM archetype.

Each cluster's average recency/frequency/monetary is scored 1-3 against the
33rd/66th percentiles of the non-zero averages across all clusters
(recency inverted: recent = 3), then mapped through ARCHETYPE_RULES in order.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Sequence, Tuple

from .constants import SCORE_PERCENTILES
from .types import ClusterMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RFMClassification:
    label: str
    label_cn: str
    description: str
    color: str
    priority: int        # 1 = highest business priority

    def to_dict(self) -> Dict:
        return asdict(self)


RFM_ARCHETYPES: Dict[str, RFMClassification] = {
    "champions": RFMClassification(
        "Champions", "冠军客户",
        "Best customers: recent, frequent, high-value purchases", "#52c41a", 1),
    "loyal": RFMClassification(
        "Loyal Customers", "忠诚客户",
        "Regular buyers with consistent high value", "#73d13d", 2),
    "potential_loyalists": RFMClassification(
        "Potential Loyalists", "潜力客户",
        "Recent high spenders, build frequency", "#95de64", 3),
    "recent_customers": RFMClassification(
        "Recent Customers", "新客户",
        "New buyers, nurture engagement", "#1890ff", 4),
    "promising": RFMClassification(
        "Promising", "有潜力",
        "Recent buyers with growth potential", "#40a9ff", 5),
    "need_attention": RFMClassification(
        "Need Attention", "需要关注",
        "Average customers showing signs of decline", "#faad14", 6),
    "about_to_sleep": RFMClassification(
        "About to Sleep", "即将流失",
        "Below average, at risk of churning", "#ffc53d", 7),
    "at_risk": RFMClassification(
        "At Risk", "流失风险",
        "Used to be good customers, re-engage urgently", "#ff7a45", 8),
    "cant_lose_them": RFMClassification(
        "Can't Lose Them", "不能失去",
        "High-value customers lost long ago, win back", "#ff4d4f", 9),
    "hibernating": RFMClassification(
        "Hibernating", "休眠客户",
        "Long-inactive low spenders", "#d9d9d9", 10),
    "lost": RFMClassification(
        "Lost", "已流失",
        "Lowest engagement, likely gone", "#8c8c8c", 11),
}

EMPTY_CLUSTER = RFMClassification(
    "Empty Cluster", "空集群", "No customers in this cluster", "#f0f0f0", 99)

# (R, F, M) -> archetype, first match wins
ARCHETYPE_RULES: Tuple[Tuple[Callable[[int, int, int], bool], str], ...] = (
    (lambda r, f, m: r == 3 and f == 3 and m == 3, "champions"),
    (lambda r, f, m: f == 3 and m == 3, "loyal"),
    (lambda r, f, m: r == 3 and m >= 2 and f < 3, "potential_loyalists"),
    (lambda r, f, m: r == 3 and f == 1 and m == 1, "recent_customers"),
    (lambda r, f, m: r == 3 and f <= 2 and m <= 2, "promising"),
    (lambda r, f, m: r == 2 and f == 2 and m == 2, "need_attention"),
    (lambda r, f, m: r <= 2 and f <= 2 and m <= 2, "about_to_sleep"),
    (lambda r, f, m: r == 1 and f >= 2 and m >= 2, "at_risk"),
    (lambda r, f, m: r == 1 and m == 3, "cant_lose_them"),
    (lambda r, f, m: r == 1 and f == 1 and m >= 2, "hibernating"),
    (lambda r, f, m: r == 1 and f == 1 and m == 1, "lost"),
)


def _percentile(values: List[float], p: float) -> float:
    if not values:
        return 0.0
    return values[min(int(len(values) * p), len(values) - 1)]


def calculate_rfm_percentiles(clusters: Sequence[ClusterMetadata]) -> Dict[str, Tuple[float, float]]:
    low, high = SCORE_PERCENTILES
    result = {}
    for dim, attr in (("recency", "avg_recency"), ("frequency", "avg_frequency"), ("monetary", "avg_monetary")):
        values = sorted(v for v in (getattr(c, attr) for c in clusters) if v > 0)
        result[dim] = (_percentile(values, low), _percentile(values, high))
    return result


def score_rfm(recency: float, frequency: float, monetary: float,
              percentiles: Dict[str, Tuple[float, float]]) -> Tuple[int, int, int]:
    r_low, r_high = percentiles["recency"]
    if recency <= r_low:
        r = 3
    elif recency <= r_high:
        r = 2
    else:
        r = 1

    def higher_is_better(value, bounds):
        if value >= bounds[1]:
            return 3
        if value >= bounds[0]:
            return 2
        return 1

    return r, higher_is_better(frequency, percentiles["frequency"]), higher_is_better(monetary, percentiles["monetary"])


def map_scores_to_archetype(r: int, f: int, m: int) -> str:
    for matches, key in ARCHETYPE_RULES:
        if matches(r, f, m):
            return key

    total = r + f + m
    if total >= 8:
        return "loyal"
    if total >= 6:
        return "need_attention"
    return "about_to_sleep"


def label_cluster(cluster: ClusterMetadata, all_clusters: Sequence[ClusterMetadata]) -> RFMClassification:
    if cluster.customer_count == 0:
        return EMPTY_CLUSTER

    r, f, m = score_rfm(
        cluster.avg_recency, cluster.avg_frequency, cluster.avg_monetary,
        calculate_rfm_percentiles(all_clusters),
    )
    classification = RFM_ARCHETYPES[map_scores_to_archetype(r, f, m)]
    logger.debug(f"[CLUSTERING] Cluster {cluster.cluster_id}: R={r} F={f} M={m} -> {classification.label}")
    return classification


def label_all_clusters(clusters: Sequence[ClusterMetadata]) -> List[RFMClassification]:
    """Classifications in the same order as `clusters`."""
    return [label_cluster(cluster, clusters) for cluster in clusters]
