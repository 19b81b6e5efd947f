"""
Tenant-owned commercial records.

Only the columns the lifecycle core needs are modelled here: ownership by a
tenant and the weak back-reference to a branch that must be reassigned when
that branch is retired.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Numeric
from datetime import datetime
import uuid
from app.core.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(String, ForeignKey("branches.id"), nullable=True, index=True)

    name = Column(String, nullable=False)
    sku = Column(String, index=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Sale(Base):
    __tablename__ = "sales"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(String, ForeignKey("branches.id"), nullable=True, index=True)
    cashier_id = Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    receipt_number = Column(String, nullable=False, index=True)
    final_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_status = Column(String, nullable=False, default="completed")  # completed, voided

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(String, ForeignKey("branches.id"), nullable=True, index=True)

    description = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
