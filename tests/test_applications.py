"""
Tests for the Tenant Application Workflow

Tests cover:
- Public submission and status lookup
- Duplicate and resubmission rules
- Approval provisioning tenant, main branch and owner together
- Approval failures leaving no partial state
- Rejection and terminal states
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.models.application import TenantApplication, ApplicationStatus
from app.models.branch import Branch
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.services.application_service import ApplicationService, derive_owner_username
from tests.conftest import ApplicationFactory, TenantFactory


SIGNUP = {
    "business_name": "Bukka Hut Ltd",
    "business_email": "hello@bukkahut.ng",
    "business_phone": "08031234567",
    "business_address": "7 Admiralty Way, Lekki",
    "business_type": "RESTAURANT",
    "owner_full_name": "Tunde Bakare",
    "owner_email": "tunde@bukkahut.ng",
    "password": "s3cure-pass"
}


async def count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count(model.id)))
    return result.scalar_one()


# -----------------------------------------------------------------------------
# Submission
# -----------------------------------------------------------------------------

class TestSubmission:
    """Tests for public application submission."""

    @pytest.mark.asyncio
    async def test_submit_application(self, client: AsyncClient, db_session: AsyncSession):
        response = await client.post("/api/v1/applications/signup", json=SIGNUP)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["business_name"] == "Bukka Hut Ltd"

        result = await db_session.execute(select(TenantApplication).where(TenantApplication.id == data["id"]))
        application = result.scalar_one()
        # Only the hash is stored
        assert application.hashed_password != "s3cure-pass"

    @pytest.mark.asyncio
    async def test_duplicate_pending_application_conflicts(self, client: AsyncClient):
        await client.post("/api/v1/applications/signup", json=SIGNUP)

        response = await client.post("/api/v1/applications/signup", json=SIGNUP)

        assert response.status_code == 409
        assert response.json()["error"]["reason"] == "application_exists"

    @pytest.mark.asyncio
    async def test_existing_business_name_conflicts(self, client: AsyncClient, db_session: AsyncSession):
        await TenantFactory.create(db_session, business_name="Bukka Hut Ltd")

        response = await client.post("/api/v1/applications/signup", json=SIGNUP)

        assert response.status_code == 409
        assert response.json()["error"]["reason"] == "business_name_taken"

    @pytest.mark.asyncio
    async def test_resubmit_after_rejection(self, client: AsyncClient, db_session: AsyncSession):
        await ApplicationFactory.create(
            db_session,
            business_name="Bukka Hut Ltd",
            business_email="hello@bukkahut.ng",
            status=ApplicationStatus.REJECTED
        )

        response = await client.post("/api/v1/applications/signup", json=SIGNUP)

        assert response.status_code == 201
        assert response.json()["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_status_by_email_returns_latest(self, client: AsyncClient):
        await client.post("/api/v1/applications/signup", json=SIGNUP)

        response = await client.get(
            "/api/v1/applications/status-by-email",
            params={"email": "HELLO@bukkahut.ng"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_status_unknown_application(self, client: AsyncClient):
        response = await client.get("/api/v1/applications/missing-id/status")

        assert response.status_code == 404


# -----------------------------------------------------------------------------
# Approval
# -----------------------------------------------------------------------------

class TestApproval:
    """Tests for approving applications into tenants."""

    def test_derive_owner_username(self):
        assert derive_owner_username("Bukka Hut Ltd") == "bukkahutltd_admin"
        assert derive_owner_username("The Great Supermarket Co") == "thegreatsuperma_admin"
        assert derive_owner_username("!!!") == "owner_admin"

    @pytest.mark.asyncio
    async def test_approve_provisions_tenant(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        response = await client.post("/api/v1/applications/signup", json=SIGNUP)
        application_id = response.json()["id"]

        response = await client.post(
            f"/api/v1/super-admin/applications/{application_id}/approve",
            json={"slug": "bukka-hut", "subscription_months": 12},
            headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tenant"]["slug"] == "bukka-hut"
        assert data["tenant"]["business_type"] == "RESTAURANT"
        assert data["owner_username"] == "bukkahutltd_admin"
        tenant_id = data["tenant"]["id"]

        branches = (await db_session.execute(select(Branch).where(Branch.tenant_id == tenant_id))).scalars().all()
        assert len(branches) == 1
        assert branches[0].is_main is True
        assert branches[0].is_active is True
        assert branches[0].id == data["main_branch_id"]

        owner = (await db_session.execute(select(User).where(User.id == data["owner_id"]))).scalar_one()
        assert owner.role == UserRole.OWNER
        assert owner.branch_id == data["main_branch_id"]

        application = (await db_session.execute(
            select(TenantApplication).where(TenantApplication.id == application_id)
        )).scalar_one()
        assert application.status == ApplicationStatus.APPROVED
        assert application.tenant_id == tenant_id

        # Owner signs in with the password chosen at signup
        login = await client.post(
            "/api/v1/auth/login",
            json={"slug": "bukka-hut", "username": "bukkahutltd_admin", "password": "s3cure-pass"}
        )
        assert login.status_code == 200
        assert login.json()["home"] == "/bukka-hut/owner/dashboard"

    @pytest.mark.asyncio
    async def test_approve_uses_desired_username(self, db_session: AsyncSession, super_admin: User):
        application = await ApplicationFactory.create(db_session, desired_username="chief")

        provisioned = await ApplicationService(db_session).approve(
            application.id, slug="chief-shop", subscription_months=1, reviewer=super_admin
        )

        assert provisioned["owner"].username == "chief"
        assert provisioned["application"].reviewed_by == super_admin.id

    @pytest.mark.asyncio
    async def test_approve_twice_is_rejected(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session)
        url = f"/api/v1/super-admin/applications/{application.id}/approve"

        first = await client.post(url, json={"slug": "first-shop", "subscription_months": 6}, headers=admin_headers)
        second = await client.post(url, json={"slug": "second-shop", "subscription_months": 6}, headers=admin_headers)

        assert first.status_code == 200
        assert second.status_code == 422
        assert second.json()["error"]["reason"] == "application_not_pending"
        assert await count(db_session, Tenant) == 1

    @pytest.mark.asyncio
    async def test_approve_with_taken_slug_creates_nothing(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        await TenantFactory.create(db_session, slug="taken")
        application = await ApplicationFactory.create(db_session)
        application_id = application.id

        response = await client.post(
            f"/api/v1/super-admin/applications/{application_id}/approve",
            json={"slug": "taken", "subscription_months": 12},
            headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["error"]["reason"] == "slug_taken"
        assert await count(db_session, Tenant) == 1
        assert await count(db_session, Branch) == 0
        status = (await db_session.execute(
            select(TenantApplication.status).where(TenantApplication.id == application_id)
        )).scalar_one()
        assert status == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_approve_with_reserved_slug(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session)

        response = await client.post(
            f"/api/v1/super-admin/applications/{application.id}/approve",
            json={"slug": "dashboard", "subscription_months": 12},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "reserved"

    @pytest.mark.asyncio
    async def test_approve_with_invalid_months(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session)

        response = await client.post(
            f"/api/v1/super-admin/applications/{application.id}/approve",
            json={"slug": "valid-slug", "subscription_months": 0},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "invalid_months"

    @pytest.mark.asyncio
    async def test_failure_mid_approval_rolls_back(
        self,
        db_session: AsyncSession,
        super_admin: User,
        monkeypatch
    ):
        """A business name that collides at insert time leaves no tenant, branch or owner behind."""
        await TenantFactory.create(db_session, business_name="Collision Foods", slug="collision")
        application = await ApplicationFactory.create(db_session, business_name="Collision Foods")
        application_id = application.id
        tenants_before = await count(db_session, Tenant)
        users_before = await count(db_session, User)

        service = ApplicationService(db_session)

        async def stale_name_check(business_name):
            return False

        monkeypatch.setattr(service, "_business_name_taken", stale_name_check)

        with pytest.raises(ConflictError) as exc_info:
            await service.approve(application_id, slug="collision-two", subscription_months=12)
        assert exc_info.value.reason == "business_name_taken"

        assert await count(db_session, Tenant) == tenants_before
        assert await count(db_session, Branch) == 0
        assert await count(db_session, User) == users_before
        status = (await db_session.execute(
            select(TenantApplication.status).where(TenantApplication.id == application_id)
        )).scalar_one()
        assert status == ApplicationStatus.PENDING


# -----------------------------------------------------------------------------
# Rejection
# -----------------------------------------------------------------------------

class TestRejection:
    """Tests for rejecting applications."""

    @pytest.mark.asyncio
    async def test_reject_application(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session)

        response = await client.post(
            f"/api/v1/super-admin/applications/{application.id}/reject",
            json={"reason": "Incomplete business registration documents"},
            headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "REJECTED"

        status_response = await client.get(f"/api/v1/applications/{application.id}/status")
        assert status_response.json()["rejection_reason"] == "Incomplete business registration documents"
        assert await count(db_session, Tenant) == 0

    @pytest.mark.asyncio
    async def test_reject_requires_reason_length(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session)

        response = await client.post(
            f"/api/v1/super-admin/applications/{application.id}/reject",
            json={"reason": "   too short   "},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "invalid_rejection_reason"

    @pytest.mark.asyncio
    async def test_rejected_application_cannot_be_approved(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        application = await ApplicationFactory.create(db_session, status=ApplicationStatus.REJECTED)

        response = await client.post(
            f"/api/v1/super-admin/applications/{application.id}/approve",
            json={"slug": "late-approval", "subscription_months": 12},
            headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["error"]["reason"] == "application_not_pending"

    @pytest.mark.asyncio
    async def test_list_applications_by_status(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_headers: dict
    ):
        await ApplicationFactory.create(db_session)
        await ApplicationFactory.create(db_session)
        await ApplicationFactory.create(db_session, status=ApplicationStatus.REJECTED)

        response = await client.get(
            "/api/v1/super-admin/applications",
            params={"status": "PENDING"},
            headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert all(item["status"] == "PENDING" for item in data["applications"])
