"""
SmartPOS Platform Services Module

Contains the tenant and branch lifecycle services.
"""

from app.services.slug_service import SlugService
from app.services.subscription_service import SubscriptionService, SubscriptionTier
from app.services.application_service import ApplicationService
from app.services.branch_service import BranchService, BranchSelection
from app.services.branch_retirement import BranchRetirementService, TransferStrategy
from app.services.access_scope import AccessScopeService, SessionScope, RoleVariant
from app.services.governance_service import GovernanceService
from app.services.audit_service import AuditService
from app.services.metrics_service import MetricsCollector, metrics_collector

__all__ = [
    "SlugService",
    "SubscriptionService",
    "SubscriptionTier",
    "ApplicationService",
    "BranchService",
    "BranchSelection",
    "BranchRetirementService",
    "TransferStrategy",
    "AccessScopeService",
    "SessionScope",
    "RoleVariant",
    "GovernanceService",
    "AuditService",
    "MetricsCollector",
    "metrics_collector",
]
