"""
Branch Retirement Module

Deletes a branch without orphaning anything that points at it.

Dependents (staff, sales, products, expenses, audit entries) move to a
transfer target; if the retiring branch was main, the target becomes main.
Reassignment, promotion and deletion commit together or not at all.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Dict
from sqlalchemy import select, update, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.database import atomic
from app.core.exceptions import ValidationError, InvariantViolation
from app.models.audit import AuditLog
from app.models.branch import Branch
from app.services.branch_service import BranchService, DEPENDENT_MODELS


logger = logging.getLogger(__name__)


class TransferStrategy(str, enum.Enum):
    # Caller must name the target whenever one is needed
    EXPLICIT_TARGET = "EXPLICIT_TARGET"
    # Missing target resolves to the oldest other active branch
    OLDEST_ACTIVE_FALLBACK = "OLDEST_ACTIVE_FALLBACK"


@dataclass
class RetirementResult:
    branch_id: str
    branch_name: str
    tenant_id: str
    was_main: bool
    transferred_to: Optional[str] = None
    new_main_branch_id: Optional[str] = None
    transferred: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "tenant_id": self.tenant_id,
            "was_main": self.was_main,
            "transferred_to": self.transferred_to,
            "new_main_branch_id": self.new_main_branch_id,
            "transferred": self.transferred,
        }


class BranchRetirementService:
    """Coordinates branch deletion with dependent transfer and main-branch handoff."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.branches = BranchService(db)

    async def _oldest_other_active(self, tenant_id: str, branch_id: str) -> Optional[Branch]:
        result = await self.db.execute(
            select(Branch)
            .where(and_(Branch.tenant_id == tenant_id, Branch.is_active == True, Branch.id != branch_id))
            .order_by(Branch.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _resolve_target(
        self,
        branch: Branch,
        transfer_to: Optional[str],
        strategy: TransferStrategy,
        needs_target: bool
    ) -> Optional[Branch]:
        if transfer_to:
            if transfer_to == branch.id:
                raise ValidationError("Cannot transfer to the branch being deleted", reason="transfer_target_invalid")
            result = await self.db.execute(
                select(Branch).where(
                    and_(
                        Branch.id == transfer_to,
                        Branch.tenant_id == branch.tenant_id,
                        Branch.is_active == True
                    )
                )
            )
            target = result.scalar_one_or_none()
            if not target:
                raise ValidationError(
                    "Transfer target must be another active branch of this business",
                    reason="transfer_target_invalid"
                )
            return target

        if not needs_target:
            return None

        if strategy == TransferStrategy.EXPLICIT_TARGET:
            raise ValidationError(
                "Choose a branch to transfer staff and records to before deleting this branch",
                reason="transfer_required"
            )

        target = await self._oldest_other_active(branch.tenant_id, branch.id)
        if not target:
            raise InvariantViolation("Cannot delete the only active branch", reason="last_branch")
        return target

    async def retire(
        self,
        tenant_id: Optional[str],
        branch_id: str,
        confirm_name: str,
        transfer_to: Optional[str] = None,
        strategy: TransferStrategy = TransferStrategy.EXPLICIT_TARGET
    ) -> RetirementResult:
        """
        Delete a branch after moving its dependents.

        Args:
            tenant_id: Owning tenant, or None when a super admin acts across tenants
            branch_id: Branch to retire
            confirm_name: Must match the branch name (case-insensitive, trimmed)
            transfer_to: Optional explicit target branch id
            strategy: How to pick a target when none is given

        Raises:
            ValidationError: name_mismatch, transfer_required, transfer_target_invalid
            InvariantViolation: last_branch
            TransactionFailure: storage failed; nothing was changed
        """
        branch = await self.branches.get_branch(tenant_id, branch_id)
        tenant_id = branch.tenant_id
        branch_name = branch.name
        was_main = branch.is_main

        if (confirm_name or "").strip().lower() != branch_name.strip().lower():
            raise ValidationError(
                "Branch name confirmation does not match",
                reason="name_mismatch",
                details={"expected": branch_name}
            )

        active = await self.branches.list_active(tenant_id)
        others = [b for b in active if b.id != branch.id]
        if branch.is_active and not others:
            raise InvariantViolation(
                "Cannot delete the only active branch. A business must have at least one branch.",
                reason="last_branch"
            )

        dependents = await self.branches.count_dependents(branch.id)
        target = await self._resolve_target(
            branch,
            transfer_to,
            strategy,
            needs_target=dependents.total > 0 or was_main
        )
        target_id = target.id if target else None

        result = RetirementResult(
            branch_id=branch.id,
            branch_name=branch_name,
            tenant_id=tenant_id,
            was_main=was_main,
            transferred_to=target_id,
        )

        async with atomic(self.db):
            if target_id:
                for key, model in DEPENDENT_MODELS.items():
                    moved = await self.db.execute(
                        update(model)
                        .where(model.branch_id == branch_id)
                        .values(branch_id=target_id)
                        .execution_options(synchronize_session=False)
                    )
                    result.transferred[key] = moved.rowcount

                await self.db.execute(
                    update(AuditLog)
                    .where(AuditLog.branch_id == branch_id)
                    .values(branch_id=target_id)
                    .execution_options(synchronize_session=False)
                )

            if was_main:
                await self.branches.promote_to_main(tenant_id, target_id)
                result.new_main_branch_id = target_id

            await self.db.execute(
                delete(Branch)
                .where(Branch.id == branch_id)
                .execution_options(synchronize_session=False)
            )

        self.db.expunge(branch)

        logger.info(
            f"Branch '{branch_name}' ({branch_id}) retired for tenant {tenant_id}; "
            f"transferred to {target_id}: {result.transferred}"
        )
        return result
