"""
Application Service Module

Moves a prospective business from submitted application to provisioned tenant.

PENDING -> APPROVED and PENDING -> REJECTED are the only transitions; both
targets are terminal.
"""

import re
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from dateutil.relativedelta import relativedelta
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.config import settings
from app.core.database import atomic
from app.core.exceptions import ValidationError, ConflictError, InvariantViolation, NotFoundError
from app.core.security import get_password_hash
from app.models.application import TenantApplication, ApplicationStatus
from app.models.branch import Branch
from app.models.tenant import Tenant, BusinessType
from app.models.user import User, UserRole
from app.services.slug_service import SlugService


logger = logging.getLogger(__name__)

MIN_REJECTION_REASON = 10
MAX_REJECTION_REASON = 500


def derive_owner_username(business_name: str) -> str:
    base = re.sub(r"[^a-z0-9]", "", business_name.lower())[:15]
    return f"{base or 'owner'}_admin"


class ApplicationService:
    """Service for the tenant application workflow."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.slugs = SlugService(db)

    async def get_application(self, application_id: str) -> TenantApplication:
        result = await self.db.execute(
            select(TenantApplication).where(TenantApplication.id == application_id)
        )
        application = result.scalar_one_or_none()
        if not application:
            raise NotFoundError("Application", application_id)
        return application

    async def get_latest_by_email(self, business_email: str) -> TenantApplication:
        result = await self.db.execute(
            select(TenantApplication)
            .where(func.lower(TenantApplication.business_email) == business_email.lower())
            .order_by(TenantApplication.created_at.desc())
            .limit(1)
        )
        application = result.scalar_one_or_none()
        if not application:
            raise NotFoundError("Application")
        return application

    async def list_applications(
        self,
        status: Optional[ApplicationStatus] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[TenantApplication], int]:
        query = select(TenantApplication)
        count_query = select(func.count(TenantApplication.id))
        if status:
            query = query.where(TenantApplication.status == status)
            count_query = count_query.where(TenantApplication.status == status)

        result = await self.db.execute(
            query.order_by(TenantApplication.created_at.desc()).offset(skip).limit(limit)
        )
        total = (await self.db.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total

    async def _business_name_taken(self, business_name: str) -> bool:
        result = await self.db.execute(
            select(Tenant.id).where(func.lower(Tenant.business_name) == business_name.lower()).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def submit(self, data: Dict[str, Any]) -> TenantApplication:
        """
        Create a PENDING application.

        A business whose earlier applications were all rejected may apply
        again; an open (PENDING) or APPROVED application blocks a new one.
        """
        business_name = data["business_name"].strip()
        business_email = data["business_email"].lower()

        if await self._business_name_taken(business_name):
            raise ConflictError("A business with this name already exists", reason="business_name_taken")

        result = await self.db.execute(
            select(TenantApplication).where(
                TenantApplication.status.in_([ApplicationStatus.PENDING, ApplicationStatus.APPROVED]),
                or_(
                    func.lower(TenantApplication.business_email) == business_email,
                    func.lower(TenantApplication.business_name) == business_name.lower()
                )
            ).limit(1)
        )
        existing = result.scalar_one_or_none()
        if existing:
            raise ConflictError(
                "An application for this business is already open or approved",
                reason="application_exists",
                details={"application_id": existing.id, "status": existing.status.value}
            )

        application = TenantApplication(
            business_name=business_name,
            business_email=business_email,
            business_phone=data.get("business_phone"),
            business_address=data.get("business_address"),
            business_type=data.get("business_type") or BusinessType.RETAIL,
            owner_full_name=data["owner_full_name"],
            owner_email=data["owner_email"],
            owner_phone=data.get("owner_phone"),
            desired_username=data.get("desired_username"),
            hashed_password=get_password_hash(data["password"]),
        )

        async with atomic(self.db):
            self.db.add(application)

        logger.info(f"Application submitted for '{business_name}' ({application.id})")
        return application

    async def approve(
        self,
        application_id: str,
        slug: str,
        subscription_months: int,
        reviewer: Optional[User] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Provision a tenant from a PENDING application.

        Tenant (with slug), main branch, owner user and the application's
        APPROVED status are committed together or not at all.
        """
        self.slugs.validate(slug)
        if not (1 <= subscription_months <= settings.MAX_SUBSCRIPTION_MONTHS):
            raise ValidationError(
                f"Subscription months must be between 1 and {settings.MAX_SUBSCRIPTION_MONTHS}",
                reason="invalid_months"
            )

        application = await self.get_application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvariantViolation(
                "Application has already been processed",
                reason="application_not_pending",
                details={"status": application.status.value}
            )

        if not await self.slugs.check_availability(slug):
            raise ConflictError("This URL slug is already in use. Please try a different value.", reason="slug_taken")

        if await self._business_name_taken(application.business_name):
            raise ConflictError("A business with this name already exists", reason="business_name_taken")

        now = now or datetime.utcnow()
        business_name = application.business_name
        username = application.desired_username or derive_owner_username(business_name)

        async with atomic(self.db):
            tenant = Tenant(
                business_name=business_name,
                business_type=application.business_type,
                business_logo=application.business_logo,
                currency_code=settings.DEFAULT_CURRENCY_CODE,
                currency_symbol=settings.DEFAULT_CURRENCY_SYMBOL,
                tax_rate=settings.DEFAULT_TAX_RATE,
                subscription_start=now,
                subscription_end=now + relativedelta(months=subscription_months),
                is_active=True,
            )
            # Inserts the tenant with its slug in one statement
            try:
                await self.slugs.assign(tenant, slug)
            except IntegrityError as e:
                if "business_name" not in str(e.orig):
                    raise
                logger.warning(f"Business name '{business_name}' was taken during approval: {e.orig}")
                raise ConflictError("A business with this name already exists", reason="business_name_taken") from e

            main_branch = Branch(
                tenant_id=tenant.id,
                name=business_name,
                address=application.business_address,
                phone=application.business_phone,
                is_main=True,
                is_active=True,
            )
            self.db.add(main_branch)
            await self.db.flush()

            owner = User(
                tenant_id=tenant.id,
                branch_id=main_branch.id,
                username=username,
                hashed_password=application.hashed_password,  # hashed at submission
                full_name=application.owner_full_name,
                email=application.owner_email,
                phone=application.owner_phone,
                role=UserRole.OWNER,
                is_super_admin=False,
                is_active=True,
            )
            self.db.add(owner)

            application.status = ApplicationStatus.APPROVED
            application.reviewed_by = reviewer.id if reviewer else None
            application.reviewed_at = now
            application.tenant_id = tenant.id

        logger.info(f"Application {application_id} approved as tenant {tenant.id} ('{slug}')")

        return {
            "tenant": tenant,
            "main_branch": main_branch,
            "owner": owner,
            "application": application,
        }

    async def reject(self, application_id: str, reason: str, reviewer: Optional[User] = None) -> TenantApplication:
        reason = (reason or "").strip()
        if not (MIN_REJECTION_REASON <= len(reason) <= MAX_REJECTION_REASON):
            raise ValidationError(
                f"Rejection reason must be {MIN_REJECTION_REASON}-{MAX_REJECTION_REASON} characters",
                reason="invalid_rejection_reason"
            )

        application = await self.get_application(application_id)
        if application.status != ApplicationStatus.PENDING:
            raise InvariantViolation(
                "Application has already been processed",
                reason="application_not_pending",
                details={"status": application.status.value}
            )

        async with atomic(self.db):
            application.status = ApplicationStatus.REJECTED
            application.rejection_reason = reason
            application.reviewed_by = reviewer.id if reviewer else None
            application.reviewed_at = datetime.utcnow()

        logger.info(f"Application {application_id} rejected")
        return application
