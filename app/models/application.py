from sqlalchemy import Column, String, DateTime, ForeignKey, Text, Enum as SQLEnum
from datetime import datetime
import uuid
import enum
from app.core.database import Base
from app.models.tenant import BusinessType


class ApplicationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"  # Terminal
    REJECTED = "REJECTED"  # Terminal


class TenantApplication(Base):
    """A prospective business asking to become a tenant."""
    __tablename__ = "tenant_applications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Business
    business_name = Column(String, nullable=False, index=True)
    business_email = Column(String, nullable=False, index=True)
    business_phone = Column(String)
    business_address = Column(String)
    business_type = Column(SQLEnum(BusinessType), nullable=False, default=BusinessType.RETAIL)
    business_logo = Column(String)

    # Owner
    owner_full_name = Column(String, nullable=False)
    owner_email = Column(String, nullable=False)
    owner_phone = Column(String)
    desired_username = Column(String)
    hashed_password = Column(String, nullable=False)

    # Review
    status = Column(SQLEnum(ApplicationStatus), nullable=False, default=ApplicationStatus.PENDING, index=True)
    rejection_reason = Column(Text)
    reviewed_by = Column(String)
    reviewed_at = Column(DateTime)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
