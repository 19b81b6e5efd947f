"""
Metrics API endpoints.

Prometheus export plus readiness and liveness probes.
"""

from fastapi import APIRouter, Response, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text, select, func
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.database import get_db
from app.core.config import settings
from app.models.branch import Branch
from app.models.tenant import Tenant
from app.services.metrics_service import metrics_collector
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/metrics",
    summary="Prometheus Metrics",
    description="Export metrics in Prometheus text format for scraping",
    tags=["monitoring"]
)
async def get_prometheus_metrics(db: AsyncSession = Depends(get_db)):
    """
    Export metrics in Prometheus format.

    Includes HTTP request counts and durations, database query counts,
    governance actions by type, lifecycle errors by type and reason, and
    tenants per subscription tier (recomputed on every scrape).
    """
    try:
        overview = await SubscriptionService(db).health_overview()
        metrics_collector.record_subscription_summary(overview["summary"])
    except SQLAlchemyError as e:
        # Serve the process metrics even when the database is down
        logger.warning(f"Subscription tier gauges not refreshed: {e}")

    return Response(
        content=metrics_collector.get_prometheus_metrics(),
        media_type=metrics_collector.get_prometheus_content_type(),
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
    )


@router.get(
    "/metrics/ready",
    summary="Readiness Check",
    tags=["monitoring"]
)
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Returns 200 when the database answers, 503 otherwise."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except SQLAlchemyError as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(
            content={"status": "not_ready", "reason": "database_unavailable"},
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


@router.get("/metrics/live", summary="Liveness Check", tags=["monitoring"])
async def liveness_check():
    return {"status": "alive"}


@router.get("/metrics/info", summary="Application Info", tags=["monitoring"])
async def get_app_info(db: AsyncSession = Depends(get_db)):
    """Build info plus platform size."""
    tenants = (await db.execute(select(func.count(Tenant.id)))).scalar_one()
    branches = (await db.execute(select(func.count(Branch.id)))).scalar_one()
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "tenants": tenants,
        "branches": branches,
        "reserved_slugs": sorted(settings.reserved_slugs),
        "features": {
            "prometheus_metrics": settings.ENABLE_PROMETHEUS_METRICS,
            "structured_logging": settings.ENABLE_STRUCTURED_LOGGING,
        }
    }
