from sqlalchemy import Column, String, Boolean, DateTime, Float, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
import enum
from app.core.database import Base


class BusinessType(str, enum.Enum):
    RETAIL = "RETAIL"
    RESTAURANT = "RESTAURANT"
    HOSPITALITY = "HOSPITALITY"
    SERVICE = "SERVICE"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    business_name = Column(String, unique=True, nullable=False, index=True)

    # Routing key; unique constraint is the authority for concurrent assignment
    slug = Column(String(30), unique=True, nullable=True, index=True)

    # Business profile
    business_type = Column(SQLEnum(BusinessType), nullable=False, default=BusinessType.RETAIL)
    business_logo = Column(String)
    currency_code = Column(String(3), nullable=False, default="NGN")
    currency_symbol = Column(String(5), nullable=False, default="₦")
    tax_rate = Column(Float, nullable=False, default=0.0)

    # Subscription window
    subscription_start = Column(DateTime, nullable=False, default=datetime.utcnow)
    subscription_end = Column(DateTime, nullable=False, index=True)
    grace_period_end = Column(DateTime)
    is_in_grace_period = Column(Boolean, default=False, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    branches = relationship("Branch", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)
    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan", passive_deletes=True)
