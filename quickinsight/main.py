"""
QuickInsight FastAPI Backend
Main application entry point

Run with:
    uvicorn quickinsight.main:app --reload
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import AppConfig
from .routers import insight_router
from .utils.clustering import ClusteringWorker
from .utils.database import DuckDBExecutor, get_duckdb_connection
from .utils.llm_client import create_llm_client

logging.basicConfig(
    level=AppConfig.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared resources once; dispose of them on shutdown."""
    conn = get_duckdb_connection()
    worker = ClusteringWorker()

    app.state.conn = conn
    app.state.executor = DuckDBExecutor(conn)
    app.state.worker = worker
    app.state.llm_client = create_llm_client()
    logger.info(f"[STARTUP] {AppConfig.APP_NAME} {AppConfig.APP_VERSION} ready")

    try:
        yield
    finally:
        worker.close()
        conn.close()
        logger.info("[SHUTDOWN] Worker and database connection closed")


app = FastAPI(title=AppConfig.APP_NAME, version=AppConfig.APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(insight_router.router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": AppConfig.APP_VERSION}
