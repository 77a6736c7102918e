"""
QuickInsight Clustering Module
==============================

RFM customer segmentation: column role detection, RFM SQL generation, a
K-means worker and the orchestrator tying them together.

Usage:
    from quickinsight.utils.clustering import ClusteringService, ClusteringWorker

    with ClusteringWorker() as worker:
        output = await ClusteringService(executor, worker).analyze("orders")

Module Structure:
    clustering/
    ├── __init__.py             # This file
    ├── constants.py            # Segmentation thresholds
    ├── types.py                # Data classes and enums
    ├── rfm_column_detector.py  # Column names -> RFM roles
    ├── rfm_sql_generator.py    # RFM roles -> DuckDB SQL
    ├── worker.py               # K-means kernel and worker handle
    ├── cluster_labeler.py      # RFM archetype labels
    └── clustering_service.py   # Request orchestration
"""

from .types import (
    AnalysisStage,
    ClusteringAnalysisOutput,
    ClusteringMetadata,
    ClusterMetadata,
    ComputeMode,
    CustomerClusterRecord,
    PrecomputedRFM,
    RFMColumns,
    RFMFeatures,
    RFMQuery,
)

from .rfm_column_detector import (
    detect_rfm_columns,
    find_customer_id_column,
    get_rfm_column_names,
    validate_rfm_columns,
)

from .rfm_sql_generator import (
    generate_customer_count_sql,
    generate_rfm_sql,
    validate_customer_count,
)

from .worker import ClusteringWorker, segment_customers

from .cluster_labeler import RFM_ARCHETYPES, RFMClassification, label_all_clusters

from .clustering_service import (
    ClusteringService,
    analyze_customer_clustering,
    compute_cluster_metadata,
    parse_rfm_rows,
    resolve_cluster_count,
    should_use_gpu,
)
