from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict
from app.services.subscription_service import SubscriptionTier


class SubscriptionExtend(BaseModel):
    months: Optional[int] = None
    days: Optional[int] = None


class GracePeriodSet(BaseModel):
    days: int = 7


class SubscriptionHealthResponse(BaseModel):
    tier: SubscriptionTier
    days_remaining: int


class AtRiskTenant(BaseModel):
    id: str
    business_name: str
    slug: Optional[str]
    subscription_end: datetime
    tier: SubscriptionTier
    days_remaining: int
    is_in_grace_period: bool


class SubscriptionOverviewResponse(BaseModel):
    summary: Dict[str, int]
    tenants: List[AtRiskTenant]
    generated_at: datetime


class LockoutResponse(BaseModel):
    locked_out: int
    tenant_ids: List[str]
