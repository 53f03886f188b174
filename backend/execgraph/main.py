from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from execgraph import __version__
from execgraph.api.deps import get_orchestrator
from execgraph.api.graph import router as graph_router
from execgraph.api.health import router as health_router
from execgraph.api.impact import router as impact_router
from execgraph.api.risk import admin_router as risk_admin_router
from execgraph.api.risk import router as risk_router
from execgraph.api.sync import router as sync_router
from execgraph.config import get_settings
from execgraph.graph.errors import GraphError
from execgraph.observability.logging import configure_logging
from execgraph.observability.middleware import RequestContextMiddleware
from execgraph.observability.otel import configure_otel
from execgraph.scheduler import start_scheduler, stop_scheduler
from execgraph.storage.database import engine, init_db


configure_logging()
settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("[ExecGraph] Starting execution graph backend...")
    await init_db()
    logger.info("[ExecGraph] Database initialized")

    if settings.risk_scheduler_enabled:
        start_scheduler(get_orchestrator(), settings)

    yield

    stop_scheduler()
    logger.info("[ExecGraph] Shutting down...")


app = FastAPI(
    title=settings.app_name,
    description="Execution graph, risk propagation and impact radius for business entities",
    version=__version__,
    lifespan=lifespan,
)
configure_otel(app, engine, settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(GraphError)
async def graph_error_handler(request: Request, exc: GraphError):
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


app.include_router(health_router)
app.include_router(graph_router)
app.include_router(impact_router)
app.include_router(risk_router)
app.include_router(risk_admin_router)
app.include_router(sync_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }
