"""
Tests for Branch Retirement

Tests cover:
- Confirmation by branch name
- Refusal to delete a tenant's last active branch
- Transfer target resolution for owners (explicit) and super admins (fallback)
- Reassignment of staff, sales, products, expenses and audit entries
- Main-branch handoff
- All-or-nothing behaviour when storage fails mid-retirement
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import TransactionFailure, ValidationError
from app.models.audit import AuditLog
from app.models.branch import Branch
from app.models.commerce import Product, Sale, Expense
from app.models.tenant import Tenant
from app.models.user import User
from app.services.branch_retirement import BranchRetirementService, TransferStrategy
from tests.conftest import (
    BranchFactory,
    TenantFactory,
    UserFactory,
    SaleFactory,
    ProductFactory,
    ExpenseFactory
)


async def delete_branch(client: AsyncClient, url: str, headers: dict, **body):
    # DELETE with a JSON body
    return await client.request("DELETE", url, json=body, headers=headers)


async def branch_exists(db: AsyncSession, branch_id: str) -> bool:
    result = await db.execute(select(Branch.id).where(Branch.id == branch_id))
    return result.scalar_one_or_none() is not None


async def branch_of(db: AsyncSession, model, record_id: str) -> str:
    result = await db.execute(select(model.branch_id).where(model.id == record_id))
    return result.scalar_one()


@pytest.fixture
def second_branch_factory(db_session: AsyncSession, test_tenant: Tenant):
    async def make(name: str = "Yaba Branch", days_old: int = 10, is_active: bool = True) -> Branch:
        return await BranchFactory.create(
            db_session,
            tenant_id=test_tenant.id,
            name=name,
            is_active=is_active,
            created_at=datetime.utcnow() - timedelta(days=days_old)
        )
    return make


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

class TestRetirementGuards:
    """Tests for checks that run before anything is written."""

    @pytest.mark.asyncio
    async def test_name_mismatch(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()

        response = await delete_branch(
            client, f"/api/v1/branches/{second.id}", owner_headers, confirm_name="Some Other Place"
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["reason"] == "name_mismatch"
        assert error["details"]["expected"] == "Yaba Branch"
        assert await branch_exists(db_session, second.id)

    @pytest.mark.asyncio
    async def test_last_active_branch_cannot_be_deleted(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        owner_headers: dict
    ):
        response = await delete_branch(
            client, f"/api/v1/branches/{main_branch.id}", owner_headers, confirm_name="Mama Put Kitchen"
        )

        assert response.status_code == 422
        assert response.json()["error"]["reason"] == "last_branch"
        assert await branch_exists(db_session, main_branch.id)

    @pytest.mark.asyncio
    async def test_only_inactive_others_still_counts_as_last(
        self,
        client: AsyncClient,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        await second_branch_factory(name="Closed Branch", is_active=False)

        response = await delete_branch(
            client, f"/api/v1/branches/{main_branch.id}", owner_headers, confirm_name="Mama Put Kitchen"
        )

        assert response.status_code == 422
        assert response.json()["error"]["reason"] == "last_branch"

    @pytest.mark.asyncio
    async def test_explicit_strategy_requires_target_for_dependents(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()
        await SaleFactory.create(db_session, tenant_id=test_tenant.id, branch_id=second.id)

        response = await delete_branch(
            client, f"/api/v1/branches/{second.id}", owner_headers, confirm_name="Yaba Branch"
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "transfer_required"

    @pytest.mark.asyncio
    async def test_explicit_strategy_requires_target_for_main(
        self,
        client: AsyncClient,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        await second_branch_factory()

        response = await delete_branch(
            client, f"/api/v1/branches/{main_branch.id}", owner_headers, confirm_name="Mama Put Kitchen"
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "transfer_required"

    @pytest.mark.asyncio
    async def test_target_from_other_tenant_is_invalid(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()
        other_tenant = await TenantFactory.create(db_session)
        foreign = await BranchFactory.create(db_session, tenant_id=other_tenant.id, is_main=True)

        response = await delete_branch(
            client, f"/api/v1/branches/{second.id}", owner_headers,
            confirm_name="Yaba Branch", transfer_to=foreign.id
        )

        assert response.status_code == 400
        assert response.json()["error"]["reason"] == "transfer_target_invalid"

    @pytest.mark.asyncio
    async def test_self_and_inactive_targets_are_invalid(
        self,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory
    ):
        second = await second_branch_factory()
        closed = await second_branch_factory(name="Closed Branch", is_active=False)
        service = BranchRetirementService(db_session)

        for target in (second.id, closed.id):
            with pytest.raises(ValidationError) as exc_info:
                await service.retire(test_tenant.id, second.id, "Yaba Branch", transfer_to=target)
            assert exc_info.value.reason == "transfer_target_invalid"

    @pytest.mark.asyncio
    async def test_owner_cannot_retire_other_tenant_branch(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        owner_headers: dict
    ):
        other_tenant = await TenantFactory.create(db_session)
        foreign = await BranchFactory.create(db_session, tenant_id=other_tenant.id, name="Foreign", is_main=True)
        await BranchFactory.create(db_session, tenant_id=other_tenant.id, name="Foreign Two")

        response = await delete_branch(
            client, f"/api/v1/branches/{foreign.id}", owner_headers, confirm_name="Foreign"
        )

        assert response.status_code == 404
        assert await branch_exists(db_session, foreign.id)


# -----------------------------------------------------------------------------
# Transfers
# -----------------------------------------------------------------------------

class TestRetirementTransfers:
    """Tests for successful retirements."""

    @pytest.mark.asyncio
    async def test_dependents_move_to_target(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()
        staff = await UserFactory.create(db_session, tenant_id=test_tenant.id, branch_id=second.id)
        sales = [
            await SaleFactory.create(db_session, tenant_id=test_tenant.id, branch_id=second.id)
            for _ in range(2)
        ]
        product = await ProductFactory.create(db_session, tenant_id=test_tenant.id, branch_id=second.id)
        expense = await ExpenseFactory.create(db_session, tenant_id=test_tenant.id, branch_id=second.id)
        history = AuditLog(tenant_id=test_tenant.id, branch_id=second.id, action="branch_updated")
        db_session.add(history)
        await db_session.commit()
        second_id, main_id = second.id, main_branch.id

        response = await delete_branch(
            client, f"/api/v1/branches/{second_id}", owner_headers,
            confirm_name="  yaba branch ", transfer_to=main_id
        )

        assert response.status_code == 200
        data = response.json()
        assert data["transferred_to"] == main_id
        assert data["was_main"] is False
        assert data["new_main_branch_id"] is None
        assert data["strategy"] == "EXPLICIT_TARGET"
        assert data["transferred"] == {"users": 1, "sales": 2, "products": 1, "expenses": 1}

        assert not await branch_exists(db_session, second_id)
        assert await branch_of(db_session, User, staff.id) == main_id
        for sale in sales:
            assert await branch_of(db_session, Sale, sale.id) == main_id
        assert await branch_of(db_session, Product, product.id) == main_id
        assert await branch_of(db_session, Expense, expense.id) == main_id
        assert await branch_of(db_session, AuditLog, history.id) == main_id

    @pytest.mark.asyncio
    async def test_empty_branch_needs_no_target(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()
        second_id = second.id

        response = await delete_branch(
            client, f"/api/v1/branches/{second_id}", owner_headers, confirm_name="Yaba Branch"
        )

        assert response.status_code == 200
        assert response.json()["transferred_to"] is None
        assert not await branch_exists(db_session, second_id)

    @pytest.mark.asyncio
    async def test_retiring_main_promotes_target(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory,
        owner_user: User,
        owner_headers: dict
    ):
        second = await second_branch_factory()
        main_id, second_id, owner_id = main_branch.id, second.id, owner_user.id

        response = await delete_branch(
            client, f"/api/v1/branches/{main_id}", owner_headers,
            confirm_name="Mama Put Kitchen", transfer_to=second_id
        )

        assert response.status_code == 200
        data = response.json()
        assert data["was_main"] is True
        assert data["new_main_branch_id"] == second_id

        mains = await db_session.execute(
            select(Branch.id).where(Branch.tenant_id == test_tenant.id, Branch.is_main == True)
        )
        assert mains.scalars().all() == [second_id]
        assert await branch_of(db_session, User, owner_id) == second_id

    @pytest.mark.asyncio
    async def test_retirement_is_audited(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        main_branch: Branch,
        second_branch_factory,
        owner_headers: dict
    ):
        second = await second_branch_factory()

        await delete_branch(client, f"/api/v1/branches/{second.id}", owner_headers, confirm_name="Yaba Branch")

        result = await db_session.execute(select(AuditLog).where(AuditLog.action == "branch_deleted"))
        entry = result.scalar_one()
        assert entry.actor_username == "mamaput_admin"
        assert entry.changes["branch_name"] == "Yaba Branch"


# -----------------------------------------------------------------------------
# Super admin fallback
# -----------------------------------------------------------------------------

class TestFallbackStrategy:
    """Tests for super admin deletes, which fall back to the oldest active branch."""

    @pytest.mark.asyncio
    async def test_falls_back_to_oldest_active(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory,
        admin_headers: dict
    ):
        await second_branch_factory(name="Older Branch", days_old=30)
        newest = await second_branch_factory(name="Newest Branch", days_old=1)
        await SaleFactory.create(db_session, tenant_id=test_tenant.id, branch_id=newest.id)
        main_id = main_branch.id

        response = await delete_branch(
            client, f"/api/v1/super-admin/branches/{newest.id}", admin_headers, confirm_name="Newest Branch"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["strategy"] == "OLDEST_ACTIVE_FALLBACK"
        assert data["transferred_to"] == main_id
        assert data["transferred"]["sales"] == 1

    @pytest.mark.asyncio
    async def test_fallback_promotes_next_oldest_when_main_retires(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory,
        admin_headers: dict
    ):
        older = await second_branch_factory(name="Older Branch", days_old=30)
        await second_branch_factory(name="Newest Branch", days_old=1)
        await second_branch_factory(name="Closed Branch", days_old=50, is_active=False)
        main_id, older_id = main_branch.id, older.id

        response = await delete_branch(
            client, f"/api/v1/super-admin/branches/{main_id}", admin_headers, confirm_name="Mama Put Kitchen"
        )

        assert response.status_code == 200
        assert response.json()["new_main_branch_id"] == older_id

        mains = await db_session.execute(
            select(Branch.id).where(Branch.tenant_id == test_tenant.id, Branch.is_main == True)
        )
        assert mains.scalars().all() == [older_id]

    @pytest.mark.asyncio
    async def test_explicit_target_still_wins(
        self,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        second_branch_factory
    ):
        older = await second_branch_factory(name="Older Branch", days_old=30)
        newest = await second_branch_factory(name="Newest Branch", days_old=1)
        await SaleFactory.create(db_session, tenant_id=test_tenant.id, branch_id=older.id)

        result = await BranchRetirementService(db_session).retire(
            None,
            older.id,
            "Older Branch",
            transfer_to=newest.id,
            strategy=TransferStrategy.OLDEST_ACTIVE_FALLBACK
        )

        assert result.transferred_to == newest.id
        assert result.transferred["sales"] == 1


# -----------------------------------------------------------------------------
# Atomicity
# -----------------------------------------------------------------------------

class TestRetirementAtomicity:
    """A failure part-way through leaves every record where it was."""

    @pytest.mark.asyncio
    async def test_failure_during_promotion_rolls_back_transfers(
        self,
        db_session: AsyncSession,
        test_tenant: Tenant,
        main_branch: Branch,
        owner_user: User,
        second_branch_factory,
        monkeypatch
    ):
        second = await second_branch_factory()
        sale = await SaleFactory.create(db_session, tenant_id=test_tenant.id, branch_id=main_branch.id)
        tenant_id, main_id, second_id = test_tenant.id, main_branch.id, second.id
        owner_id, sale_id = owner_user.id, sale.id

        service = BranchRetirementService(db_session)

        async def failing_promote(tenant_id, branch_id):
            raise OperationalError("UPDATE branches SET is_main", {}, Exception("disk I/O error"))

        monkeypatch.setattr(service.branches, "promote_to_main", failing_promote)

        with pytest.raises(TransactionFailure):
            await service.retire(tenant_id, main_id, "Mama Put Kitchen", transfer_to=second_id)

        assert await branch_exists(db_session, main_id)
        assert await branch_of(db_session, User, owner_id) == main_id
        assert await branch_of(db_session, Sale, sale_id) == main_id

        mains = await db_session.execute(
            select(Branch.id).where(Branch.tenant_id == tenant_id, Branch.is_main == True)
        )
        assert mains.scalars().all() == [main_id]
