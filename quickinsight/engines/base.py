"""
QUICKINSIGHT ENGINE BASE
========================

Synchronous query engines over a DuckDB connection.

An engine turns a declarative config dict into one SQL statement and returns
an EngineResult. execute() never raises: invalid configs, compile errors and
SQL errors all come back as status=failure with the message in `error`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from enum import Enum
import logging
import hashlib
import json
import time

logger = logging.getLogger(__name__)


class EngineType(str, Enum):
    AGGREGATE = "aggregate"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NO_DATA = "no_data"


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class Provenance:
    """Which engine ran, on what config and tables, and how long it took."""
    engine_type: EngineType
    engine_version: str
    execution_id: str
    executed_at: str
    config_hash: str            # same config -> same hash
    duration_ms: int = 0
    source_tables: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "engine_type": self.engine_type.value,
            "engine_version": self.engine_version,
            "execution_id": self.execution_id,
            "executed_at": self.executed_at,
            "config_hash": self.config_hash,
            "duration_ms": self.duration_ms,
            "source_tables": self.source_tables,
        }


@dataclass
class EngineResult:
    status: ResultStatus
    data: List[Dict[str, Any]]
    columns: List[str]
    provenance: Provenance
    sql: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.data)

    @property
    def success(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "data": self.data,
            "row_count": self.row_count,
            "columns": self.columns,
            "provenance": self.provenance.to_dict(),
            "sql": self.sql,
            "summary": self.summary,
            "error": self.error,
            "metadata": self.metadata,
        }


# =============================================================================
# BASE ENGINE
# =============================================================================

class BaseEngine(ABC):
    """
    Subclasses provide engine_type, engine_version, _validate_config (returns
    a list of problems, empty when valid) and _execute (may raise).
    """

    def __init__(self, conn):
        self.conn = conn

    @property
    @abstractmethod
    def engine_type(self) -> EngineType:
        pass

    @property
    @abstractmethod
    def engine_version(self) -> str:
        pass

    @abstractmethod
    def _validate_config(self, config: Dict) -> List[str]:
        pass

    @abstractmethod
    def _execute(self, config: Dict) -> EngineResult:
        pass

    def execute(self, config: Dict) -> EngineResult:
        tag = self.engine_type.value.upper()
        started = time.monotonic()
        config_hash = self._hash_config(config)
        execution_id = hashlib.sha256(
            f"{config_hash}:{datetime.now(timezone.utc).isoformat()}".encode()
        ).hexdigest()[:12]

        logger.info(f"[{tag}] Starting execution {execution_id}")

        problems = self._validate_config(config)
        if problems:
            error = f"Configuration errors: {'; '.join(problems)}"
            logger.error(f"[{tag}] {error}")
            result = self._failure(error)
        else:
            try:
                result = self._execute(config)
            except Exception as e:
                logger.exception(f"[{tag}] Execution failed: {e}")
                result = self._failure(str(e))

        result.provenance.execution_id = execution_id
        result.provenance.config_hash = config_hash
        result.provenance.duration_ms = int((time.monotonic() - started) * 1000)

        logger.info(f"[{tag}] Completed {execution_id}: "
                    f"{result.row_count} rows, status={result.status.value}")
        return result

    @staticmethod
    def _hash_config(config: Dict) -> str:
        return hashlib.sha256(json.dumps(config, sort_keys=True, default=str).encode()).hexdigest()[:16]

    def _provenance(self, source_tables: Optional[List[str]] = None) -> Provenance:
        return Provenance(
            engine_type=self.engine_type,
            engine_version=self.engine_version,
            execution_id="",
            executed_at=datetime.now(timezone.utc).isoformat(),
            config_hash="",
            source_tables=source_tables or [],
        )

    def _failure(self, error: str) -> EngineResult:
        return EngineResult(
            status=ResultStatus.FAILURE,
            data=[],
            columns=[],
            provenance=self._provenance(),
            summary=f"Execution failed: {error}",
            error=error,
        )

    def _query(self, sql: str) -> List[Dict]:
        """Rows as dicts of plain Python values, NaN/NaT as None."""
        frame = self.conn.execute(sql).fetchdf().astype(object)
        return frame.where(frame.notna(), None).to_dict('records')
