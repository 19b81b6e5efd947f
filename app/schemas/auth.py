from pydantic import BaseModel, EmailStr
from datetime import datetime
from typing import Optional
from app.models.user import UserRole
from app.services.access_scope import RoleVariant


class LoginRequest(BaseModel):
    slug: str
    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str
    role: RoleVariant
    home: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    tenant_id: Optional[str]
    branch_id: Optional[str]
    username: str
    email: Optional[EmailStr]
    full_name: str
    role: UserRole
    is_super_admin: bool
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    user_id: str
    username: str
    role: RoleVariant
    tenant_id: Optional[str]
    tenant_slug: Optional[str]
    business_name: Optional[str]
    home: Optional[str]
    impersonating: bool
    impersonation_log_id: Optional[str]
    banner: Optional[str]


class AccessDecisionResponse(BaseModel):
    path: str
    allowed: bool
    redirect_to: Optional[str]


class TenantLookupResponse(BaseModel):
    slug: str
    business_name: str
    business_type: str
    business_logo: Optional[str]
    is_active: bool
