"""
Branch Service Module

Ledger of the branches a tenant owns.

Keeps the main-branch invariant: every tenant with active branches has
exactly one main branch, and it is active. Promotion demotes the previous
main and promotes the target inside one transaction; a partial unique index
on branches(tenant_id) WHERE is_main backs this up at the storage layer.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import atomic
from app.core.exceptions import ValidationError, ConflictError, InvariantViolation, NotFoundError
from app.models.branch import Branch, BranchRequest, BranchRequestStatus
from app.models.commerce import Product, Sale, Expense
from app.models.user import User


logger = logging.getLogger(__name__)

MIN_REJECTION_REASON = 10


@dataclass(frozen=True)
class BranchSelection:
    """
    Explicit branch scope for tenant-scoped queries.

    ``BranchSelection.all()`` is the aggregate "all branches" view; any other
    selection names exactly one branch.
    """
    branch_id: Optional[str] = None

    @classmethod
    def all(cls) -> "BranchSelection":
        return cls(branch_id=None)

    @classmethod
    def of(cls, branch_id: str) -> "BranchSelection":
        return cls(branch_id=branch_id)

    @property
    def is_all(self) -> bool:
        return self.branch_id is None

    def apply(self, query, column):
        """Narrow a query on ``column`` (a branch_id column) to this selection."""
        if self.is_all:
            return query
        return query.where(column == self.branch_id)


@dataclass(frozen=True)
class DependentCounts:
    users: int = 0
    sales: int = 0
    products: int = 0
    expenses: int = 0

    @property
    def total(self) -> int:
        return self.users + self.sales + self.products + self.expenses

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# Records that hold a weak reference to a branch
DEPENDENT_MODELS = {
    "users": User,
    "sales": Sale,
    "products": Product,
    "expenses": Expense,
}


class BranchService:
    """
    Service for branch CRUD and main-branch bookkeeping.

    Provides methods for:
    - Listing branches with dependent counts
    - Creating branches directly (owner) or through requests (platform review)
    - Promoting a branch to main
    - Counting records that depend on a branch
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_branch(self, tenant_id: Optional[str], branch_id: str) -> Branch:
        """Fetch a branch, scoped to the tenant when one is given."""
        query = select(Branch).where(Branch.id == branch_id)
        if tenant_id:
            query = query.where(Branch.tenant_id == tenant_id)

        result = await self.db.execute(query)
        branch = result.scalar_one_or_none()
        if not branch:
            raise NotFoundError("Branch", branch_id)
        return branch

    async def list_branches(self, tenant_id: str) -> List[Branch]:
        result = await self.db.execute(
            select(Branch)
            .where(Branch.tenant_id == tenant_id)
            .order_by(Branch.is_main.desc(), Branch.name.asc())
        )
        return list(result.scalars().all())

    async def list_active(self, tenant_id: str) -> List[Branch]:
        result = await self.db.execute(
            select(Branch)
            .where(and_(Branch.tenant_id == tenant_id, Branch.is_active == True))
            .order_by(Branch.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_main(self, tenant_id: str) -> Optional[Branch]:
        result = await self.db.execute(
            select(Branch).where(and_(Branch.tenant_id == tenant_id, Branch.is_main == True))
        )
        return result.scalar_one_or_none()

    async def count_dependents(self, branch_id: str) -> DependentCounts:
        counts = {}
        for key, model in DEPENDENT_MODELS.items():
            result = await self.db.execute(
                select(func.count(model.id)).where(model.branch_id == branch_id)
            )
            counts[key] = result.scalar_one()
        return DependentCounts(**counts)

    async def dependent_counts_by_branch(self, tenant_id: str) -> Dict[str, DependentCounts]:
        """Dependent counts for every branch of a tenant, one grouped query per model."""
        grouped: Dict[str, Dict[str, int]] = {}
        for key, model in DEPENDENT_MODELS.items():
            result = await self.db.execute(
                select(model.branch_id, func.count(model.id))
                .where(and_(model.tenant_id == tenant_id, model.branch_id.is_not(None)))
                .group_by(model.branch_id)
            )
            for branch_id, count in result.all():
                grouped.setdefault(branch_id, {})[key] = count
        return {branch_id: DependentCounts(**values) for branch_id, values in grouped.items()}

    async def _name_taken(self, tenant_id: str, name: str, exclude_branch_id: Optional[str] = None) -> bool:
        query = select(Branch.id).where(
            and_(Branch.tenant_id == tenant_id, func.lower(Branch.name) == name.lower())
        )
        if exclude_branch_id:
            query = query.where(Branch.id != exclude_branch_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def resolve_selection(self, tenant_id: str, branch_id: Optional[str]) -> BranchSelection:
        """Turn an optional branch id from the client into a validated selection."""
        if not branch_id:
            return BranchSelection.all()

        branch = await self.get_branch(tenant_id, branch_id)
        if not branch.is_active:
            raise ValidationError("The selected branch is inactive", reason="branch_inactive")
        return BranchSelection.of(branch.id)

    async def branch_stats(self, tenant_id: str, selection: BranchSelection) -> Dict[str, Any]:
        """Per-branch staff, product and sales figures for the selected scope."""
        query = selection.apply(
            select(Branch).where(Branch.tenant_id == tenant_id).order_by(Branch.is_main.desc(), Branch.name),
            Branch.id
        )
        branches = (await self.db.execute(query)).scalars().all()
        dependents = await self.dependent_counts_by_branch(tenant_id)

        sales_query = selection.apply(
            select(
                Sale.branch_id,
                Sale.payment_status,
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.final_amount), 0)
            )
            .where(Sale.tenant_id == tenant_id)
            .group_by(Sale.branch_id, Sale.payment_status),
            Sale.branch_id
        )
        sales: Dict[Tuple[str, str], Tuple[int, float]] = {}
        for branch_id, payment_status, count, amount in (await self.db.execute(sales_query)).all():
            sales[(branch_id, payment_status)] = (count, float(amount or 0))

        stats = []
        for branch in branches:
            counts = dependents.get(branch.id, DependentCounts())
            transactions, revenue = sales.get((branch.id, "completed"), (0, 0.0))
            voided, _ = sales.get((branch.id, "voided"), (0, 0.0))
            stats.append({
                "id": branch.id,
                "name": branch.name,
                "is_main": branch.is_main,
                "is_active": branch.is_active,
                "staff_count": counts.users,
                "product_count": counts.products,
                "revenue": revenue,
                "transactions": transactions,
                "voided_transactions": voided,
            })

        totals = {
            "total_revenue": sum(item["revenue"] for item in stats),
            "total_transactions": sum(item["transactions"] for item in stats),
            "total_staff": sum(item["staff_count"] for item in stats),
        }
        return {
            "selection": None if selection.is_all else selection.branch_id,
            "branches": stats,
            "totals": totals,
            "branch_count": len(stats),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        tenant_id: str,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Branch:
        """Create a branch. A tenant's first branch becomes its main branch."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Branch name is required", reason="name_required")

        if await self._name_taken(tenant_id, name):
            raise ConflictError("A branch with this name already exists", reason="branch_name_taken")

        existing = await self.db.execute(select(func.count(Branch.id)).where(Branch.tenant_id == tenant_id))
        is_first = existing.scalar_one() == 0

        branch = Branch(
            tenant_id=tenant_id,
            name=name,
            address=address,
            phone=phone,
            is_main=is_first,
            is_active=True,
        )
        async with atomic(self.db):
            self.db.add(branch)

        logger.info(f"Branch '{name}' created for tenant {tenant_id} (main={is_first})")
        return branch

    async def update(
        self,
        tenant_id: str,
        branch_id: str,
        name: Optional[str] = None,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Branch:
        branch = await self.get_branch(tenant_id, branch_id)

        if is_active is False and branch.is_main:
            raise InvariantViolation(
                "Cannot deactivate the main branch. Set another branch as main first.",
                reason="main_branch_deactivation"
            )

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Branch name cannot be empty", reason="name_required")
            if name != branch.name and await self._name_taken(tenant_id, name, exclude_branch_id=branch_id):
                raise ConflictError("A branch with this name already exists", reason="branch_name_taken")

        async with atomic(self.db):
            if name is not None:
                branch.name = name
            if address is not None:
                branch.address = address
            if phone is not None:
                branch.phone = phone
            if is_active is not None:
                branch.is_active = is_active

        return branch

    async def promote_to_main(self, tenant_id: str, branch_id: str):
        """
        Demote the current main branch and promote ``branch_id``.

        Statement-level only: runs inside the caller's transaction. The demote
        runs first so the one-main-per-tenant index holds after each statement.
        """
        await self.db.execute(
            update(Branch)
            .where(and_(Branch.tenant_id == tenant_id, Branch.is_main == True, Branch.id != branch_id))
            .values(is_main=False)
        )
        await self.db.execute(
            update(Branch)
            .where(and_(Branch.tenant_id == tenant_id, Branch.id == branch_id))
            .values(is_main=True)
        )

    async def set_main(self, tenant_id: str, branch_id: str) -> Branch:
        """Make ``branch_id`` the tenant's main branch. No-op if it already is."""
        branch = await self.get_branch(tenant_id, branch_id)

        if branch.is_main:
            return branch

        if not branch.is_active:
            raise ValidationError("An inactive branch cannot be the main branch", reason="branch_inactive")

        async with atomic(self.db):
            await self.promote_to_main(branch.tenant_id, branch.id)

        await self.db.refresh(branch)
        logger.info(f"Branch {branch_id} is now main for tenant {branch.tenant_id}")
        return branch

    # ------------------------------------------------------------------
    # Branch requests
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str, tenant_id: Optional[str] = None) -> BranchRequest:
        query = select(BranchRequest).where(BranchRequest.id == request_id)
        if tenant_id:
            query = query.where(BranchRequest.tenant_id == tenant_id)
        result = await self.db.execute(query)
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError("Branch request", request_id)
        return request

    async def list_requests(
        self,
        tenant_id: Optional[str] = None,
        status: Optional[BranchRequestStatus] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[BranchRequest], int]:
        query = select(BranchRequest)
        count_query = select(func.count(BranchRequest.id))
        if tenant_id:
            query = query.where(BranchRequest.tenant_id == tenant_id)
            count_query = count_query.where(BranchRequest.tenant_id == tenant_id)
        if status:
            query = query.where(BranchRequest.status == status)
            count_query = count_query.where(BranchRequest.status == status)

        result = await self.db.execute(query.order_by(BranchRequest.created_at.desc()).offset(skip).limit(limit))
        total = (await self.db.execute(count_query)).scalar_one()
        return list(result.scalars().all()), total

    async def request_branch(
        self,
        tenant_id: str,
        requester: User,
        branch_name: str,
        reason: str,
        address: Optional[str] = None,
        phone: Optional[str] = None
    ) -> BranchRequest:
        branch_name = (branch_name or "").strip()
        reason = (reason or "").strip()
        if not branch_name:
            raise ValidationError("Branch name is required", reason="name_required")
        if not reason:
            raise ValidationError("Reason is required", reason="reason_required")

        pending = await self.db.execute(
            select(BranchRequest.id).where(
                and_(
                    BranchRequest.tenant_id == tenant_id,
                    func.lower(BranchRequest.branch_name) == branch_name.lower(),
                    BranchRequest.status == BranchRequestStatus.PENDING
                )
            ).limit(1)
        )
        if pending.scalar_one_or_none():
            raise ConflictError("A pending request for this branch name already exists", reason="request_exists")

        if await self._name_taken(tenant_id, branch_name):
            raise ConflictError("A branch with this name already exists", reason="branch_name_taken")

        request = BranchRequest(
            tenant_id=tenant_id,
            requester_id=requester.id,
            branch_name=branch_name,
            address=address,
            phone=phone,
            reason=reason,
        )
        async with atomic(self.db):
            self.db.add(request)
        return request

    async def cancel_request(self, tenant_id: str, request_id: str) -> BranchRequest:
        request = await self.get_request(request_id, tenant_id=tenant_id)
        if request.status != BranchRequestStatus.PENDING:
            raise NotFoundError("Pending request", request_id)

        async with atomic(self.db):
            await self.db.delete(request)
        return request

    async def approve_request(self, request_id: str, reviewer: Optional[User] = None) -> Tuple[BranchRequest, Branch]:
        """Create the requested branch and close the request in one transaction."""
        request = await self.get_request(request_id)
        if request.status != BranchRequestStatus.PENDING:
            raise InvariantViolation("Request has already been processed", reason="request_not_pending")

        if await self._name_taken(request.tenant_id, request.branch_name):
            raise ConflictError(
                "A branch with this name already exists for this tenant",
                reason="branch_name_taken"
            )

        has_main = await self.get_main(request.tenant_id) is not None

        async with atomic(self.db):
            branch = Branch(
                tenant_id=request.tenant_id,
                name=request.branch_name,
                address=request.address,
                phone=request.phone,
                is_main=not has_main,
                is_active=True,
            )
            self.db.add(branch)
            await self.db.flush()

            request.status = BranchRequestStatus.APPROVED
            request.reviewer_id = reviewer.id if reviewer else None
            request.reviewed_at = datetime.utcnow()
            request.branch_id = branch.id

        return request, branch

    async def reject_request(self, request_id: str, reason: str, reviewer: Optional[User] = None) -> BranchRequest:
        reason = (reason or "").strip()
        if len(reason) < MIN_REJECTION_REASON:
            raise ValidationError(
                f"Rejection reason must be at least {MIN_REJECTION_REASON} characters",
                reason="invalid_rejection_reason"
            )

        request = await self.get_request(request_id)
        if request.status != BranchRequestStatus.PENDING:
            raise InvariantViolation("Request has already been processed", reason="request_not_pending")

        async with atomic(self.db):
            request.status = BranchRequestStatus.REJECTED
            request.rejection_reason = reason
            request.reviewer_id = reviewer.id if reviewer else None
            request.reviewed_at = datetime.utcnow()
        return request
