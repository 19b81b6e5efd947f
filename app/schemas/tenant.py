from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any
from app.models.tenant import BusinessType
from app.schemas.subscription import SubscriptionHealthResponse


class TenantResponse(BaseModel):
    id: str
    business_name: str
    slug: Optional[str]
    business_type: BusinessType
    business_logo: Optional[str]
    currency_code: str
    currency_symbol: str
    tax_rate: float
    subscription_start: datetime
    subscription_end: datetime
    grace_period_end: Optional[datetime]
    is_in_grace_period: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TenantSummary(TenantResponse):
    health: SubscriptionHealthResponse
    branch_count: int = 0


class TenantListResponse(BaseModel):
    tenants: List[TenantSummary]
    total: int
    skip: int
    limit: int


class TenantStatusUpdate(BaseModel):
    is_active: bool


class TenantSlugUpdate(BaseModel):
    slug: str


class TenantDelete(BaseModel):
    confirm_name: str


class TenantDeleteResponse(BaseModel):
    tenant_id: str
    business_name: str
    slug: Optional[str]
    removed: Dict[str, int]


class SlugAvailabilityResponse(BaseModel):
    slug: str
    available: bool
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None


class SlugSuggestionResponse(BaseModel):
    name: str
    suggestion: str
    available: bool


class ApprovalResponse(BaseModel):
    tenant: TenantResponse
    main_branch_id: str
    owner_id: str
    owner_username: str
    application_id: str


class ImpersonationStart(BaseModel):
    tenant_id: str
    reason: str


class ImpersonationResponse(BaseModel):
    log_id: str
    tenant_id: str
    tenant_slug: Optional[str]
    access_token: str
    token_type: str = "bearer"
    expires_in_minutes: int


class ImpersonationLogResponse(BaseModel):
    id: str
    admin_id: str
    tenant_id: str
    reason: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    started_at: datetime
    ended_at: Optional[datetime]
    actions_performed: Optional[List[Any]]

    class Config:
        from_attributes = True


class ImpersonationLogListResponse(BaseModel):
    logs: List[ImpersonationLogResponse]
    total: int
