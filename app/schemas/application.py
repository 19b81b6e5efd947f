from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, List
from app.models.application import ApplicationStatus
from app.models.tenant import BusinessType


class ApplicationCreate(BaseModel):
    business_name: str = Field(..., min_length=2, max_length=120)
    business_email: EmailStr
    business_phone: Optional[str] = None
    business_address: Optional[str] = None
    business_type: BusinessType = BusinessType.RETAIL
    owner_full_name: str = Field(..., min_length=2)
    owner_email: EmailStr
    owner_phone: Optional[str] = None
    desired_username: Optional[str] = Field(None, min_length=3, max_length=50)
    password: str = Field(..., min_length=6)


class ApplicationApprove(BaseModel):
    slug: str
    subscription_months: int = 12


class ApplicationReject(BaseModel):
    reason: str


class ApplicationStatusResponse(BaseModel):
    id: str
    business_name: str
    status: ApplicationStatus
    rejection_reason: Optional[str]
    created_at: datetime
    reviewed_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApplicationResponse(BaseModel):
    id: str
    business_name: str
    business_email: str
    business_phone: Optional[str]
    business_address: Optional[str]
    business_type: BusinessType
    owner_full_name: str
    owner_email: str
    owner_phone: Optional[str]
    desired_username: Optional[str]
    status: ApplicationStatus
    rejection_reason: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    tenant_id: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ApplicationListResponse(BaseModel):
    applications: List[ApplicationResponse]
    total: int
    skip: int
    limit: int
