"""
Governance Service Module

Super-admin operations over whole tenants: listing with subscription health,
status and subscription changes, slug changes, irreversible deletion and
audited impersonation.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import atomic
from app.core.exceptions import ValidationError, InvariantViolation, NotFoundError
from app.models.application import TenantApplication
from app.models.audit import ImpersonationLog
from app.models.branch import Branch, BranchRequest
from app.models.commerce import Product, Sale, Expense
from app.models.tenant import Tenant
from app.models.user import User
from app.services.access_scope import AccessScopeService
from app.services.slug_service import SlugService
from app.services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)

MIN_IMPERSONATION_REASON = 5


class GovernanceService:
    """
    Service for platform governance of tenants.

    Mutating methods commit their own transaction; the caller records the
    audit entry afterwards.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.slugs = SlugService(db)
        self.subscriptions = SubscriptionService(db)

    async def get_tenant(self, tenant_id: str) -> Tenant:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        if not tenant:
            raise NotFoundError("Tenant", tenant_id)
        return tenant

    async def list_tenants(
        self,
        search: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
        now: Optional[datetime] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        List tenants with subscription health attached.

        Args:
            search: Case-insensitive match on business name or slug
            status: "active" or "inactive"
            skip: Number of records to skip
            limit: Max records to return
            now: Reference time for health classification

        Returns:
            Tuple of (tenant rows, total matching)
        """
        now = now or datetime.utcnow()
        query = select(Tenant)
        count_query = select(func.count(Tenant.id))

        filters = []
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(or_(func.lower(Tenant.business_name).like(pattern), Tenant.slug.like(pattern)))
        if status == "active":
            filters.append(Tenant.is_active == True)
        elif status == "inactive":
            filters.append(Tenant.is_active == False)

        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        result = await self.db.execute(query.order_by(Tenant.created_at.desc()).offset(skip).limit(limit))
        tenants = result.scalars().all()
        total = (await self.db.execute(count_query)).scalar_one()

        branch_counts = {}
        if tenants:
            counts = await self.db.execute(
                select(Branch.tenant_id, func.count(Branch.id))
                .where(Branch.tenant_id.in_([t.id for t in tenants]))
                .group_by(Branch.tenant_id)
            )
            branch_counts = dict(counts.all())

        rows = []
        for tenant in tenants:
            rows.append({
                "tenant": tenant,
                "health": self.subscriptions.annotate(tenant, now),
                "branch_count": branch_counts.get(tenant.id, 0),
            })
        return rows, total

    async def toggle_status(self, tenant_id: str, is_active: bool) -> Tenant:
        """Activate or deactivate a tenant regardless of subscription expiry."""
        tenant = await self.get_tenant(tenant_id)
        async with atomic(self.db):
            tenant.is_active = is_active
        logger.info(f"Tenant {tenant_id} {'activated' if is_active else 'deactivated'}")
        return tenant

    async def extend_subscription(
        self,
        tenant_id: str,
        months: Optional[int] = None,
        days: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        previous_end = tenant.subscription_end
        async with atomic(self.db):
            self.subscriptions.extend(tenant, months=months, days=days, now=now)
        logger.info(f"Tenant {tenant_id} subscription extended {previous_end} -> {tenant.subscription_end}")
        return tenant

    async def set_grace_period(self, tenant_id: str, days: Optional[int] = None, now: Optional[datetime] = None) -> Tenant:
        tenant = await self.get_tenant(tenant_id)
        async with atomic(self.db):
            self.subscriptions.set_grace_period(tenant, days=days, now=now)
        return tenant

    async def enforce_lockout(self, now: Optional[datetime] = None) -> List[Tenant]:
        """Deactivate every active tenant whose subscription and grace period have both run out."""
        lapsed = await self.subscriptions.find_lapsed(now)
        if lapsed:
            async with atomic(self.db):
                self.subscriptions.lock_out(lapsed)
            logger.warning(f"Locked out {len(lapsed)} tenant(s) with lapsed subscriptions")
        return lapsed

    async def update_slug(self, tenant_id: str, slug: str) -> Tuple[Tenant, Optional[str]]:
        """Re-validate and assign a new slug; returns the tenant and its previous slug."""
        self.slugs.validate(slug)
        tenant = await self.get_tenant(tenant_id)
        previous = tenant.slug
        async with atomic(self.db):
            await self.slugs.assign(tenant, slug)
        return tenant, previous

    async def delete_tenant(self, tenant_id: str, confirm_name: str) -> Dict[str, Any]:
        """
        Permanently delete a tenant and everything it owns.

        The confirmation must equal the business name (case-insensitive).
        Applications are kept but unlinked so the history stays reviewable.
        """
        tenant = await self.get_tenant(tenant_id)
        business_name = tenant.business_name
        slug = tenant.slug

        if (confirm_name or "").strip().lower() != business_name.strip().lower():
            raise ValidationError(
                "Business name confirmation does not match",
                reason="name_mismatch",
                details={"expected": business_name}
            )

        removed: Dict[str, int] = {}
        async with atomic(self.db):
            # Children first; branch references on sales/products/expenses/users are not cascaded
            for key, model in (
                ("sales", Sale),
                ("expenses", Expense),
                ("products", Product),
                ("users", User),
                ("branch_requests", BranchRequest),
                ("branches", Branch),
                ("impersonation_logs", ImpersonationLog),
            ):
                outcome = await self.db.execute(
                    delete(model)
                    .where(model.tenant_id == tenant_id)
                    .execution_options(synchronize_session=False)
                )
                removed[key] = outcome.rowcount

            await self.db.execute(
                update(TenantApplication)
                .where(TenantApplication.tenant_id == tenant_id)
                .values(tenant_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Tenant).where(Tenant.id == tenant_id).execution_options(synchronize_session=False)
            )

        self.db.expunge(tenant)
        logger.warning(f"Tenant '{business_name}' ({tenant_id}) permanently deleted: {removed}")
        return {"tenant_id": tenant_id, "business_name": business_name, "slug": slug, "removed": removed}

    # ------------------------------------------------------------------
    # Impersonation
    # ------------------------------------------------------------------

    async def start_impersonation(
        self,
        admin: User,
        tenant_id: str,
        reason: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[ImpersonationLog, str]:
        """Open an impersonation session and issue its token."""
        reason = (reason or "").strip()
        if len(reason) < MIN_IMPERSONATION_REASON:
            raise ValidationError(
                f"Impersonation reason must be at least {MIN_IMPERSONATION_REASON} characters",
                reason="reason_required"
            )

        tenant = await self.get_tenant(tenant_id)
        if not tenant.slug:
            raise InvariantViolation("Tenant has no slug and cannot be opened", reason="tenant_unroutable")

        log = ImpersonationLog(
            admin_id=admin.id,
            tenant_id=tenant.id,
            reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
            actions_performed=[],
        )
        async with atomic(self.db):
            self.db.add(log)

        token = AccessScopeService(self.db).issue_impersonation_token(admin, tenant, log)
        logger.warning(f"Admin {admin.username} started impersonating tenant {tenant.id}: {reason}")
        return log, token

    async def end_impersonation(self, log_id: str, admin: User, now: Optional[datetime] = None) -> ImpersonationLog:
        result = await self.db.execute(
            select(ImpersonationLog).where(ImpersonationLog.id == log_id, ImpersonationLog.admin_id == admin.id)
        )
        log = result.scalar_one_or_none()
        if not log:
            raise NotFoundError("Impersonation session", log_id)
        if log.ended_at is not None:
            raise InvariantViolation("Impersonation session has already ended", reason="impersonation_ended")

        async with atomic(self.db):
            log.ended_at = now or datetime.utcnow()
        logger.info(f"Admin {admin.username} ended impersonation {log_id}")
        return log

    async def list_impersonation_logs(
        self,
        tenant_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Tuple[List[ImpersonationLog], int]:
        query = select(ImpersonationLog)
        count_query = select(func.count(ImpersonationLog.id))
        if tenant_id:
            query = query.where(ImpersonationLog.tenant_id == tenant_id)
            count_query = count_query.where(ImpersonationLog.tenant_id == tenant_id)

        result = await self.db.execute(query.order_by(ImpersonationLog.started_at.desc()).offset(skip).limit(limit))
        total = (await self.db.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total
