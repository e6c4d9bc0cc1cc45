"""Family Ledger API — FastAPI entry point.

Routes are served from domain modules under apps/api/domains/:
statement ingestion and tag categorization. Health probes live in
apps/api/routers/.
"""

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from apps.api.core.auth import get_app_settings
from apps.api.core.errors import register_error_handlers
from apps.api.core.logging import bind_request_context, setup_logging
from apps.api.domains.categorization.router import router as categorization_router
from apps.api.domains.ingestion.router import router as ingestion_router
from apps.api.routers import health

logger = structlog.get_logger()

settings = get_app_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup/shutdown hooks."""
    setup_logging(log_level=settings.log_level, json_output=settings.is_production)
    logger.info("app_starting", version=settings.APP_VERSION, environment=settings.ENVIRONMENT)
    yield
    logger.info("app_stopping")


app = FastAPI(
    title="Family Ledger API",
    description="Imports bank and mobile-money statements into a family's ledger.",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag each request (and its log lines) with an id, echoed back to the caller."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    bind_request_context(request_id, path=request.url.path)
    response = await call_next(request)
    response.headers["x-request-id"] = request_id
    return response


app.include_router(ingestion_router, prefix="/api/v1")
app.include_router(categorization_router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")
