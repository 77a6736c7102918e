"""
Clustering Worker
=================

The numeric side of segmentation: a K-means kernel and the long-lived handle
that runs it off the event loop.

Message protocol (plain dicts, so they cross process boundaries):

    request  {"type": "CLUSTER", "request_id", "customer_ids", "features",
              "n_clusters", "scaling_mode", "use_gpu"}
    success  {"type": "CLUSTER_SUCCESS", "request_id", "customer_ids",
              "cluster_ids", "gpu_used", "duration_ms"}
    error    {"type": "CLUSTER_ERROR", "request_id", "error"}

The kernel is CPU-only (scikit-learn); gpu_used is always False.
"""

import asyncio
import logging
import time
from concurrent.futures import Executor, ProcessPoolExecutor
from typing import Any, Callable, Dict, Optional

import numpy as np
from sklearn.cluster import KMeans
from sklearn.preprocessing import MinMaxScaler, RobustScaler, StandardScaler

from ...errors import WorkerError, WorkerTimeout
from .constants import K_VALUE_RANGE, RANDOM_STATE, SCALING_MODES

logger = logging.getLogger(__name__)

REQUEST_TYPE = "CLUSTER"
SUCCESS_TYPE = "CLUSTER_SUCCESS"
ERROR_TYPE = "CLUSTER_ERROR"


# =============================================================================
# KERNEL
# =============================================================================

_SCALERS = {
    "minmax": MinMaxScaler,
    "standard": StandardScaler,
    "robust": RobustScaler,
}


def _error(request_id: Optional[str], message: str) -> Dict[str, Any]:
    return {"type": ERROR_TYPE, "request_id": request_id, "error": message}


def segment_customers(request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a CLUSTER request and run K-means on its feature matrix.

    Always answers with a success or error message; never raises for bad input.
    """
    start = time.perf_counter()
    request_id = request.get("request_id")

    if request.get("type") != REQUEST_TYPE:
        return _error(request_id, f"Unknown message type: {request.get('type')!r}")

    customer_ids = request.get("customer_ids") or []
    features = request.get("features") or []
    n_clusters = request.get("n_clusters")
    scaling_mode = request.get("scaling_mode", 2)

    if not customer_ids:
        return _error(request_id, "No customers to cluster")
    if len(customer_ids) != len(features):
        return _error(request_id, f"customer_ids ({len(customer_ids)}) and features "
                                  f"({len(features)}) differ in length")
    if not isinstance(n_clusters, int) or not K_VALUE_RANGE[0] <= n_clusters <= K_VALUE_RANGE[1]:
        return _error(request_id, f"n_clusters must be within {K_VALUE_RANGE}, got {n_clusters!r}")
    if n_clusters > len(customer_ids):
        return _error(request_id, f"n_clusters ({n_clusters}) exceeds customer count ({len(customer_ids)})")
    if scaling_mode not in SCALING_MODES:
        return _error(request_id, f"Unknown scaling mode: {scaling_mode!r}")

    try:
        matrix = np.asarray(features, dtype=float)
    except (TypeError, ValueError) as e:
        return _error(request_id, f"Invalid feature matrix: {e}")

    if matrix.ndim != 2 or not np.isfinite(matrix).all():
        return _error(request_id, "Feature matrix must be 2-D and finite")

    scaler_cls = _SCALERS.get(SCALING_MODES[scaling_mode])
    if scaler_cls is not None:
        matrix = scaler_cls().fit_transform(matrix)

    try:
        model = KMeans(n_clusters=n_clusters, n_init=10, random_state=RANDOM_STATE)
        labels = model.fit_predict(matrix)
    except ValueError as e:
        return _error(request_id, f"K-means failed: {e}")

    return {
        "type": SUCCESS_TYPE,
        "request_id": request_id,
        "customer_ids": list(customer_ids),
        "cluster_ids": [int(label) for label in labels],
        "gpu_used": False,
        "duration_ms": int((time.perf_counter() - start) * 1000),
    }


# =============================================================================
# WORKER HANDLE
# =============================================================================

class ClusteringWorker:
    """
    Long-lived handle around an executor running segment_customers.

    The executor is created on first use and reused by every request.
    Owners call close() (or use the handle as a context manager) to dispose
    of it. Requests are tracked by request_id and always released on
    completion, error or timeout.
    """

    def __init__(self, executor_factory: Optional[Callable[[], Executor]] = None, max_workers: int = 1):
        self._executor_factory = executor_factory or (lambda: ProcessPoolExecutor(max_workers=max_workers))
        self._executor: Optional[Executor] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._closed = False

    @property
    def started(self) -> bool:
        return self._executor is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _get_executor(self) -> Executor:
        if self._closed:
            raise WorkerError("Clustering worker is closed")
        if self._executor is None:
            self._executor = self._executor_factory()
            logger.info("[WORKER] Worker instance created")
        return self._executor

    async def request(self, message: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """
        Send one message and wait for its response.

        Raises:
            WorkerTimeout: no response within `timeout` seconds. The
                computation itself keeps running; only the wait is abandoned.
            WorkerError: the worker crashed or answered for another request
        """
        request_id = message["request_id"]
        if request_id in self._pending:
            raise WorkerError(f"Request {request_id} is already in flight")

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._get_executor(), segment_customers, message)
        self._pending[request_id] = future
        logger.info(f"[WORKER] [{request_id}] Posted {message.get('type')} "
                    f"({len(message.get('customer_ids', []))} customers)")

        try:
            response = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"[WORKER] [{request_id}] Timeout after {timeout}s")
            raise WorkerTimeout(f"Worker timeout after {int(timeout * 1000)}ms")
        except Exception as e:
            logger.error(f"[WORKER] [{request_id}] Worker error: {e}")
            raise WorkerError(f"Worker error: {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if response.get("request_id") != request_id:
            raise WorkerError(
                f"Response for {response.get('request_id')!r} received while waiting for {request_id!r}"
            )
        return response

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            logger.info("[WORKER] Worker instance disposed")
        self._executor = None
        self._closed = True

    def __enter__(self) -> "ClusteringWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
