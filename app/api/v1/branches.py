from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from app.core.database import get_db
from app.api.v1.auth import get_current_user, require_tenant_scope, require_owner, record_action
from app.models.user import User
from app.schemas.branch import (
    BranchCreate,
    BranchUpdate,
    BranchDelete,
    BranchResponse,
    BranchDetail,
    BranchRetirementResponse,
    BranchRequestCreate,
    BranchRequestResponse,
    BranchRequestListResponse,
    BranchStatsResponse
)
from app.services.access_scope import SessionScope
from app.services.branch_service import BranchService, DependentCounts
from app.services.branch_retirement import BranchRetirementService, TransferStrategy


logger = logging.getLogger(__name__)

router = APIRouter()


def branch_detail(branch, counts: DependentCounts) -> BranchDetail:
    return BranchDetail(
        **BranchResponse.model_validate(branch).model_dump(),
        counts=counts.to_dict()
    )


@router.get("", response_model=List[BranchDetail])
async def list_branches(
    scope: SessionScope = Depends(require_tenant_scope),
    db: AsyncSession = Depends(get_db)
):
    """List the tenant's branches, main first, with dependent counts."""
    service = BranchService(db)
    branches = await service.list_branches(scope.tenant_id)
    counts = await service.dependent_counts_by_branch(scope.tenant_id)
    return [branch_detail(branch, counts.get(branch.id, DependentCounts())) for branch in branches]


@router.post("", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(
    branch_data: BranchCreate,
    request: Request,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    branch = await BranchService(db).create(scope.tenant_id, **branch_data.model_dump())
    await record_action(
        db, "branch_created", current_user, scope,
        tenant_id=scope.tenant_id,
        branch_id=branch.id,
        description=f"Created branch '{branch.name}'",
        ip_address=request.client.host if request.client else None
    )
    return branch


@router.get("/stats/overview", response_model=BranchStatsResponse)
async def get_branch_stats(
    branch_id: Optional[str] = Query(None, description="Limit to one branch; omit for all branches"),
    scope: SessionScope = Depends(require_tenant_scope),
    db: AsyncSession = Depends(get_db)
):
    service = BranchService(db)
    selection = await service.resolve_selection(scope.tenant_id, branch_id)
    return await service.branch_stats(scope.tenant_id, selection)


# -----------------------------------------------------------------------------
# Branch requests
# -----------------------------------------------------------------------------

@router.get("/requests", response_model=BranchRequestListResponse)
async def list_branch_requests(
    scope: SessionScope = Depends(require_owner),
    db: AsyncSession = Depends(get_db)
):
    requests, total = await BranchService(db).list_requests(tenant_id=scope.tenant_id, limit=100)
    return {"requests": requests, "total": total}


@router.post("/requests", response_model=BranchRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_branch(
    request_data: BranchRequestCreate,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Ask the platform to open an additional branch."""
    branch_request = await BranchService(db).request_branch(
        scope.tenant_id,
        current_user,
        **request_data.model_dump()
    )
    await record_action(
        db, "branch_requested", current_user, scope,
        tenant_id=scope.tenant_id,
        description=f"Requested branch '{branch_request.branch_name}'"
    )
    return branch_request


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_branch_request(
    request_id: str,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    branch_request = await BranchService(db).cancel_request(scope.tenant_id, request_id)
    await record_action(
        db, "branch_request_cancelled", current_user, scope,
        tenant_id=scope.tenant_id,
        description=f"Cancelled request for branch '{branch_request.branch_name}'"
    )


# -----------------------------------------------------------------------------
# Single branch
# -----------------------------------------------------------------------------

@router.get("/{branch_id}", response_model=BranchDetail)
async def get_branch(
    branch_id: str,
    scope: SessionScope = Depends(require_tenant_scope),
    db: AsyncSession = Depends(get_db)
):
    service = BranchService(db)
    branch = await service.get_branch(scope.tenant_id, branch_id)
    return branch_detail(branch, await service.count_dependents(branch.id))


@router.put("/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: str,
    branch_data: BranchUpdate,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    changes = branch_data.model_dump(exclude_unset=True)
    branch = await BranchService(db).update(scope.tenant_id, branch_id, **changes)
    await record_action(
        db, "branch_updated", current_user, scope,
        tenant_id=scope.tenant_id,
        branch_id=branch.id,
        changes=changes
    )
    return branch


@router.post("/{branch_id}/set-main", response_model=BranchResponse)
async def set_main_branch(
    branch_id: str,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    branch = await BranchService(db).set_main(scope.tenant_id, branch_id)
    await record_action(
        db, "main_branch_changed", current_user, scope,
        tenant_id=scope.tenant_id,
        branch_id=branch.id,
        description=f"'{branch.name}' is now the main branch"
    )
    return branch


@router.delete("/{branch_id}", response_model=BranchRetirementResponse)
async def delete_branch(
    branch_id: str,
    deletion: BranchDelete,
    request: Request,
    scope: SessionScope = Depends(require_owner),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a branch.

    Staff and records move to ``transfer_to``; it is required whenever the
    branch has dependents or is the main branch.
    """
    strategy = TransferStrategy.EXPLICIT_TARGET
    result = await BranchRetirementService(db).retire(
        scope.tenant_id,
        branch_id,
        deletion.confirm_name,
        transfer_to=deletion.transfer_to,
        strategy=strategy
    )
    await record_action(
        db, "branch_deleted", current_user, scope,
        tenant_id=scope.tenant_id,
        branch_id=result.transferred_to,
        description=f"Deleted branch '{result.branch_name}'",
        changes=result.to_dict(),
        ip_address=request.client.host if request.client else None
    )
    return BranchRetirementResponse(**result.to_dict(), strategy=strategy)
