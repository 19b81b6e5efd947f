from app.core.database import Base
from app.models.tenant import Tenant, BusinessType
from app.models.branch import Branch, BranchRequest, BranchRequestStatus
from app.models.user import User, UserRole
from app.models.application import TenantApplication, ApplicationStatus
from app.models.commerce import Product, Sale, Expense
from app.models.audit import AuditLog, ImpersonationLog

__all__ = [
    "Base",
    "Tenant",
    "BusinessType",
    "Branch",
    "BranchRequest",
    "BranchRequestStatus",
    "User",
    "UserRole",
    "TenantApplication",
    "ApplicationStatus",
    "Product",
    "Sale",
    "Expense",
    "AuditLog",
    "ImpersonationLog",
]
