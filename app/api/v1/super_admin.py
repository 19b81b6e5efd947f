from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ValidationError
from app.api.v1.auth import require_super_admin, record_action
from app.models.application import ApplicationStatus
from app.models.branch import BranchRequestStatus
from app.models.user import User
from app.schemas.application import (
    ApplicationApprove,
    ApplicationReject,
    ApplicationResponse,
    ApplicationListResponse
)
from app.schemas.branch import (
    BranchDelete,
    BranchRequestReject,
    BranchRequestResponse,
    BranchRequestListResponse,
    BranchResponse,
    BranchRetirementResponse
)
from app.schemas.subscription import (
    SubscriptionExtend,
    GracePeriodSet,
    SubscriptionOverviewResponse,
    LockoutResponse
)
from app.schemas.tenant import (
    TenantResponse,
    TenantSummary,
    TenantListResponse,
    TenantStatusUpdate,
    TenantSlugUpdate,
    TenantDelete,
    TenantDeleteResponse,
    SlugAvailabilityResponse,
    SlugSuggestionResponse,
    ApprovalResponse,
    ImpersonationStart,
    ImpersonationResponse,
    ImpersonationLogResponse,
    ImpersonationLogListResponse
)
from app.services.application_service import ApplicationService
from app.services.branch_service import BranchService
from app.services.branch_retirement import BranchRetirementService, TransferStrategy
from app.services.governance_service import GovernanceService
from app.services.slug_service import SlugService
from app.services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)

router = APIRouter()


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def tenant_summary(row) -> TenantSummary:
    return TenantSummary(
        **TenantResponse.model_validate(row["tenant"]).model_dump(),
        health=row["health"],
        branch_count=row["branch_count"]
    )


# -----------------------------------------------------------------------------
# Slugs
# -----------------------------------------------------------------------------

@router.get("/check-slug/{slug}", response_model=SlugAvailabilityResponse)
async def check_slug(
    slug: str,
    exclude_tenant_id: Optional[str] = Query(None),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Advisory availability check; a valid, free slug can still be taken before it is assigned."""
    service = SlugService(db)
    try:
        service.validate(slug)
    except ValidationError as e:
        return SlugAvailabilityResponse(slug=slug, available=False, valid=False, reason=e.reason, message=e.message)

    available = await service.check_availability(slug, exclude_tenant_id=exclude_tenant_id)
    return SlugAvailabilityResponse(
        slug=slug,
        available=available,
        valid=True,
        reason=None if available else "slug_taken"
    )


@router.get("/suggest-slug", response_model=SlugSuggestionResponse)
async def suggest_slug(
    name: str = Query(..., min_length=1),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    service = SlugService(db)
    suggestion = service.suggest(name)
    try:
        service.validate(suggestion)
        available = await service.check_availability(suggestion)
    except ValidationError:
        available = False
    return SlugSuggestionResponse(name=name, suggestion=suggestion, available=available)


# -----------------------------------------------------------------------------
# Applications
# -----------------------------------------------------------------------------

@router.get("/applications", response_model=ApplicationListResponse)
async def list_applications(
    status: Optional[ApplicationStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    applications, total = await ApplicationService(db).list_applications(status=status, skip=skip, limit=limit)
    return {"applications": applications, "total": total, "skip": skip, "limit": limit}


@router.get("/applications/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: str,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    return await ApplicationService(db).get_application(application_id)


@router.post("/applications/{application_id}/approve", response_model=ApprovalResponse)
async def approve_application(
    application_id: str,
    approval: ApplicationApprove,
    request: Request,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Provision tenant, main branch and owner account from a pending application."""
    provisioned = await ApplicationService(db).approve(
        application_id,
        slug=approval.slug,
        subscription_months=approval.subscription_months,
        reviewer=admin
    )
    tenant = provisioned["tenant"]
    owner = provisioned["owner"]

    await record_action(
        db, "application_approved", admin,
        tenant_id=tenant.id,
        description=f"Approved '{tenant.business_name}' as /{tenant.slug}",
        changes={"application_id": application_id, "subscription_months": approval.subscription_months},
        ip_address=client_ip(request)
    )
    return ApprovalResponse(
        tenant=TenantResponse.model_validate(tenant),
        main_branch_id=provisioned["main_branch"].id,
        owner_id=owner.id,
        owner_username=owner.username,
        application_id=application_id
    )


@router.post("/applications/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: str,
    rejection: ApplicationReject,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    application = await ApplicationService(db).reject(application_id, rejection.reason, reviewer=admin)
    await record_action(
        db, "application_rejected", admin,
        description=f"Rejected application from '{application.business_name}'",
        changes={"application_id": application_id}
    )
    return application


# -----------------------------------------------------------------------------
# Tenants
# -----------------------------------------------------------------------------

@router.get("/tenants", response_model=TenantListResponse)
async def list_tenants(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    rows, total = await GovernanceService(db).list_tenants(search=search, status=status, skip=skip, limit=limit)
    return TenantListResponse(
        tenants=[tenant_summary(row) for row in rows],
        total=total,
        skip=skip,
        limit=limit
    )


@router.get("/tenants/{tenant_id}", response_model=TenantSummary)
async def get_tenant(
    tenant_id: str,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    service = GovernanceService(db)
    tenant = await service.get_tenant(tenant_id)
    branches = await BranchService(db).list_branches(tenant_id)
    return tenant_summary({
        "tenant": tenant,
        "health": service.subscriptions.annotate(tenant),
        "branch_count": len(branches),
    })


@router.put("/tenants/{tenant_id}/slug", response_model=TenantResponse)
async def update_tenant_slug(
    tenant_id: str,
    slug_data: TenantSlugUpdate,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    tenant, previous = await GovernanceService(db).update_slug(tenant_id, slug_data.slug)
    await record_action(
        db, "tenant_slug_changed", admin,
        tenant_id=tenant.id,
        changes={"from": previous, "to": tenant.slug}
    )
    return tenant


@router.put("/tenants/{tenant_id}/subscription", response_model=TenantSummary)
async def extend_subscription(
    tenant_id: str,
    extension: SubscriptionExtend,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    service = GovernanceService(db)
    tenant = await service.extend_subscription(tenant_id, months=extension.months, days=extension.days)
    await record_action(
        db, "subscription_extended", admin,
        tenant_id=tenant.id,
        changes={
            "months": extension.months,
            "days": extension.days,
            "subscription_end": tenant.subscription_end.isoformat()
        }
    )
    branches = await BranchService(db).list_branches(tenant_id)
    return tenant_summary({
        "tenant": tenant,
        "health": service.subscriptions.annotate(tenant),
        "branch_count": len(branches),
    })


@router.put("/tenants/{tenant_id}/status", response_model=TenantResponse)
async def toggle_tenant_status(
    tenant_id: str,
    status_data: TenantStatusUpdate,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    tenant = await GovernanceService(db).toggle_status(tenant_id, status_data.is_active)
    await record_action(
        db, "tenant_activated" if tenant.is_active else "tenant_deactivated", admin,
        tenant_id=tenant.id
    )
    return tenant


@router.put("/tenants/{tenant_id}/grace-period", response_model=TenantResponse)
async def set_grace_period(
    tenant_id: str,
    grace: GracePeriodSet,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    tenant = await GovernanceService(db).set_grace_period(tenant_id, days=grace.days)
    await record_action(
        db, "grace_period_granted", admin,
        tenant_id=tenant.id,
        changes={"days": grace.days, "grace_period_end": tenant.grace_period_end.isoformat()}
    )
    return tenant


@router.delete("/tenants/{tenant_id}", response_model=TenantDeleteResponse)
async def delete_tenant(
    tenant_id: str,
    deletion: TenantDelete,
    request: Request,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Permanently delete a tenant and everything it owns. Cannot be undone."""
    removed = await GovernanceService(db).delete_tenant(tenant_id, deletion.confirm_name)
    await record_action(
        db, "tenant_deleted", admin,
        tenant_id=tenant_id,
        description=f"Deleted '{removed['business_name']}'",
        changes=dict(removed),
        ip_address=client_ip(request)
    )
    return removed


# -----------------------------------------------------------------------------
# Subscriptions
# -----------------------------------------------------------------------------

@router.get("/subscriptions/health", response_model=SubscriptionOverviewResponse)
async def subscription_health(
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    return await SubscriptionService(db).health_overview()


@router.post("/subscriptions/enforce-lockout", response_model=LockoutResponse)
async def enforce_lockout(
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Deactivate tenants whose subscription and grace period have both lapsed."""
    locked = await GovernanceService(db).enforce_lockout()
    tenant_ids = [tenant.id for tenant in locked]
    for tenant_id in tenant_ids:
        await record_action(db, "tenant_locked_out", admin, tenant_id=tenant_id)
    return LockoutResponse(locked_out=len(tenant_ids), tenant_ids=tenant_ids)


# -----------------------------------------------------------------------------
# Branch requests and branches
# -----------------------------------------------------------------------------

@router.get("/branch-requests", response_model=BranchRequestListResponse)
async def list_branch_requests(
    status: Optional[BranchRequestStatus] = Query(None),
    tenant_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    requests, total = await BranchService(db).list_requests(
        tenant_id=tenant_id, status=status, skip=skip, limit=limit
    )
    return {"requests": requests, "total": total}


@router.post("/branch-requests/{request_id}/approve", response_model=BranchResponse)
async def approve_branch_request(
    request_id: str,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    branch_request, branch = await BranchService(db).approve_request(request_id, reviewer=admin)
    await record_action(
        db, "branch_request_approved", admin,
        tenant_id=branch.tenant_id,
        branch_id=branch.id,
        description=f"Approved branch '{branch.name}'"
    )
    return branch


@router.post("/branch-requests/{request_id}/reject", response_model=BranchRequestResponse)
async def reject_branch_request(
    request_id: str,
    rejection: BranchRequestReject,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    branch_request = await BranchService(db).reject_request(request_id, rejection.reason, reviewer=admin)
    await record_action(
        db, "branch_request_rejected", admin,
        tenant_id=branch_request.tenant_id,
        description=f"Rejected branch '{branch_request.branch_name}'"
    )
    return branch_request


@router.delete("/branches/{branch_id}", response_model=BranchRetirementResponse)
async def delete_branch(
    branch_id: str,
    deletion: BranchDelete,
    request: Request,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete any tenant's branch; without a transfer target the oldest other active branch is used."""
    strategy = TransferStrategy.OLDEST_ACTIVE_FALLBACK
    result = await BranchRetirementService(db).retire(
        None,
        branch_id,
        deletion.confirm_name,
        transfer_to=deletion.transfer_to,
        strategy=strategy
    )
    await record_action(
        db, "branch_deleted", admin,
        tenant_id=result.tenant_id,
        branch_id=result.transferred_to,
        description=f"Deleted branch '{result.branch_name}'",
        changes=result.to_dict(),
        ip_address=client_ip(request)
    )
    return BranchRetirementResponse(**result.to_dict(), strategy=strategy)


# -----------------------------------------------------------------------------
# Impersonation
# -----------------------------------------------------------------------------

@router.post("/impersonate", response_model=ImpersonationResponse)
async def start_impersonation(
    impersonation: ImpersonationStart,
    request: Request,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """Issue a separate, audited token that acts as the tenant's owner."""
    service = GovernanceService(db)
    log, token = await service.start_impersonation(
        admin,
        impersonation.tenant_id,
        impersonation.reason,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent")
    )
    tenant = await service.get_tenant(impersonation.tenant_id)
    await record_action(
        db, "impersonation_started", admin,
        tenant_id=tenant.id,
        description=impersonation.reason,
        changes={"impersonation_log_id": log.id},
        ip_address=client_ip(request)
    )
    return ImpersonationResponse(
        log_id=log.id,
        tenant_id=tenant.id,
        tenant_slug=tenant.slug,
        access_token=token,
        expires_in_minutes=settings.IMPERSONATION_TOKEN_EXPIRE_MINUTES
    )


@router.post("/impersonate/{log_id}/end", response_model=ImpersonationLogResponse)
async def end_impersonation(
    log_id: str,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    log = await GovernanceService(db).end_impersonation(log_id, admin)
    await record_action(
        db, "impersonation_ended", admin,
        tenant_id=log.tenant_id,
        changes={"impersonation_log_id": log.id}
    )
    return log


@router.get("/impersonation-logs", response_model=ImpersonationLogListResponse)
async def list_impersonation_logs(
    tenant_id: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    logs, total = await GovernanceService(db).list_impersonation_logs(tenant_id=tenant_id, skip=skip, limit=limit)
    return {"logs": logs, "total": total}
