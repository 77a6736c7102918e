"""
Customer Clustering Constants
=============================

Fixed thresholds for RFM segmentation. These are deliberately module
constants, not runtime configuration.
"""

# =============================================================================
# K-MEANS PARAMETERS
# =============================================================================

# Inclusive range a caller may request
K_VALUE_RANGE = (2, 10)

DEFAULT_K_VALUE = 8

# Floor for K when there are fewer customers than K
MIN_K_VALUE_FOR_SMALL_DATASET = 3

# 0 = none, 1 = min-max, 2 = standard, 3 = robust
SCALING_MODES = {0: "none", 1: "minmax", 2: "standard", 3: "robust"}
DEFAULT_SCALING_MODE = 2

RANDOM_STATE = 42


# =============================================================================
# DATA SIZE THRESHOLDS
# =============================================================================

MIN_CUSTOMER_COUNT = 10

# Above this many customers the RFM query samples
LARGE_DATASET_THRESHOLD = 1_000_000

MAX_CUSTOMER_SAMPLE_SIZE = 10_000

# 'auto' compute mode asks for GPU from this many customers up
GPU_AUTO_THRESHOLD = 5_000


# =============================================================================
# LABELING
# =============================================================================

# Cluster averages are scored 1-3 against these percentiles
SCORE_PERCENTILES = (0.33, 0.66)
