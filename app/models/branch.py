from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Index, text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class Branch(Base):
    """Physical location owned by exactly one tenant."""
    __tablename__ = "branches"
    __table_args__ = (
        # At most one main branch per tenant, enforced by storage
        Index(
            "uq_branches_tenant_main",
            "tenant_id",
            unique=True,
            sqlite_where=text("is_main"),
            postgresql_where=text("is_main"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    # Basic info
    name = Column(String, nullable=False)
    address = Column(String)
    phone = Column(String)

    # Status
    is_main = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="branches")


class BranchRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class BranchRequest(Base):
    """Owner request for an additional branch, reviewed by the platform."""
    __tablename__ = "branch_requests"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    branch_name = Column(String, nullable=False)
    address = Column(String)
    phone = Column(String)
    reason = Column(Text, nullable=False)

    status = Column(SQLEnum(BranchRequestStatus), nullable=False, default=BranchRequestStatus.PENDING, index=True)
    rejection_reason = Column(Text)

    requester_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"))
    reviewer_id = Column(String)
    reviewed_at = Column(DateTime)
    branch_id = Column(String)  # Set once approved

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
