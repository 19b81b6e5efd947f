from sqlalchemy import Column, String, DateTime, JSON, Text
from datetime import datetime
import uuid
from app.core.database import Base


class AuditLog(Base):
    """Immutable audit trail for governance and lifecycle actions."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Snapshots rather than foreign keys so records outlive deleted tenants/branches
    tenant_id = Column(String, index=True)
    branch_id = Column(String, index=True)

    # Actor
    actor_id = Column(String, index=True)
    actor_username = Column(String)

    # Action
    action = Column(String, nullable=False, index=True)  # "branch_deleted", "tenant_deactivated", etc.
    description = Column(Text)  # Human-readable description

    # Example: {"transferred_to": "...", "new_main_branch_id": "..."}
    changes = Column(JSON)

    # Metadata
    ip_address = Column(String)

    # Timestamp (immutable)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class ImpersonationLog(Base):
    """Record of a super admin acting inside a tenant's scope."""
    __tablename__ = "impersonation_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    admin_id = Column(String, nullable=False, index=True)
    tenant_id = Column(String, nullable=False, index=True)
    reason = Column(Text, nullable=False)

    ip_address = Column(String)
    user_agent = Column(String)

    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ended_at = Column(DateTime)
    actions_performed = Column(JSON)
