"""
Tests for Monitoring Endpoints

Tests cover:
- Prometheus export, including subscription tier gauges
- Liveness, readiness and info probes
- Request id propagation
- Error response shape
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.branch import Branch
from app.models.tenant import Tenant
from tests.conftest import TenantFactory


class TestMonitoringEndpoints:
    """Tests for the monitoring routes."""

    @pytest.mark.asyncio
    async def test_prometheus_export(self, client: AsyncClient, db_session: AsyncSession):
        await TenantFactory.create(db_session, subscription_end=datetime.utcnow() + timedelta(days=3))

        response = await client.get("/api/v1/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'smartpos_tenants_by_subscription_tier{tier="CRITICAL"} 1.0' in response.text

    @pytest.mark.asyncio
    async def test_liveness_and_readiness(self, client: AsyncClient):
        assert (await client.get("/api/v1/metrics/live")).json() == {"status": "alive"}
        assert (await client.get("/api/v1/metrics/ready")).json() == {"status": "ready"}

    @pytest.mark.asyncio
    async def test_info_counts_tenants_and_branches(
        self,
        client: AsyncClient,
        test_tenant: Tenant,
        main_branch: Branch
    ):
        response = await client.get("/api/v1/metrics/info")

        data = response.json()
        assert data["tenants"] == 1
        assert data["branches"] == 1
        assert "admin" in data["reserved_slugs"]

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"


class TestErrorResponses:
    """Lifecycle errors reach clients as a structured body."""

    @pytest.mark.asyncio
    async def test_not_found_shape(self, client: AsyncClient):
        response = await client.get("/api/v1/applications/missing-id/status")

        assert response.status_code == 404
        assert response.json() == {
            "error": {
                "type": "not_found",
                "reason": "application_not_found",
                "message": "Application not found",
            }
        }
