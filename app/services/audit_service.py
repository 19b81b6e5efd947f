"""
Audit Service Module

Records governance and lifecycle actions after they have been committed.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.models.audit import AuditLog, ImpersonationLog
from app.models.user import User
from app.services.metrics_service import governance_actions_total


logger = logging.getLogger(__name__)


class AuditService:
    """Writes AuditLog rows for successful mutating operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: str,
        actor: Optional[User] = None,
        tenant_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        description: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        Persist an audit entry in its own commit.

        Called only after the audited operation has committed. A failure here
        is logged and does not undo or fail the operation itself.
        """
        entry = AuditLog(
            tenant_id=tenant_id,
            branch_id=branch_id,
            actor_id=actor.id if actor else None,
            actor_username=actor.username if actor else None,
            action=action,
            description=description,
            changes=changes,
            ip_address=ip_address
        )
        governance_actions_total.labels(action=action).inc()

        try:
            self.db.add(entry)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to write audit log for {action}: {e}")
            return None

        logger.info(
            f"Audit: {action}",
            extra={"action": action, "tenant_id": tenant_id, "branch_id": branch_id}
        )
        return entry

    async def note_impersonated_action(self, log_id: str, action: str, now: Optional[datetime] = None):
        """Append an action to the impersonation session it was performed under."""
        result = await self.db.execute(select(ImpersonationLog).where(ImpersonationLog.id == log_id))
        log = result.scalar_one_or_none()
        if not log:
            return

        # JSON column: assign a new list so the change is tracked
        log.actions_performed = list(log.actions_performed or []) + [
            {"action": action, "at": (now or datetime.utcnow()).isoformat()}
        ]
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to note impersonated action {action} on {log_id}: {e}")
