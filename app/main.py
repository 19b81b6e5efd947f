import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.error_handlers import setup_exception_handlers
from app.api.v1 import api_router
from app.middleware.audit import AuditLogMiddleware
from app.middleware.monitoring import (
    MonitoringMiddleware,
    configure_structured_logging,
    setup_db_event_listeners,
)

# Configure structured logging
if settings.ENABLE_STRUCTURED_LOGGING:
    configure_structured_logging(
        log_level="DEBUG" if settings.DEBUG else "INFO",
        json_format=not settings.DEBUG  # Use JSON in production, plain text in debug
    )
else:
    logging.basicConfig(
        level=logging.INFO if not settings.DEBUG else logging.DEBUG,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

logger = logging.getLogger(__name__)


OPENAPI_TAGS = [
    {"name": "auth", "description": "Slug-scoped login, session scope and route access checks"},
    {"name": "applications", "description": "Public tenant applications and their status"},
    {"name": "branches", "description": "Branch ledger for the signed-in business"},
    {"name": "super-admin", "description": "Platform governance: approvals, slugs, subscriptions, impersonation"},
    {"name": "monitoring", "description": "Prometheus metrics and health probes"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Subscription tiers are recomputed on every read, so there is no
    background scheduler to start or stop here.
    """
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION} "
        f"({len(settings.reserved_slugs)} reserved slugs, environment={settings.ENVIRONMENT})"
    )

    from app.core.database import engine
    setup_db_event_listeners(engine)
    logger.info("Database query monitoring initialized")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Multi-tenant POS platform: tenant and branch lifecycle API",
    debug=settings.DEBUG,
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Performance monitoring middleware (outermost - runs first)
if settings.ENABLE_PROMETHEUS_METRICS:
    app.add_middleware(MonitoringMiddleware)

# Audit log middleware
app.add_middleware(AuditLogMiddleware)

setup_exception_handlers(app)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
