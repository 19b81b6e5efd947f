from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class UserRole(str, enum.Enum):
    OWNER = "OWNER"  # Business owner
    MANAGER = "MANAGER"  # Branch manager
    CASHIER = "CASHIER"  # Front counter / POS
    KITCHEN = "KITCHEN"  # Kitchen display only


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_users_tenant_username"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Null only for platform super admins
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True, index=True)
    # Weak back-reference; reassigned, never cascaded, when a branch is retired
    branch_id = Column(String, ForeignKey("branches.id"), nullable=True, index=True)

    # Auth
    username = Column(String, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.CASHIER)
    is_super_admin = Column(Boolean, default=False, nullable=False)

    # Profile
    full_name = Column(String, nullable=False)
    email = Column(String)
    phone = Column(String)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
