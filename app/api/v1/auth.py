from fastapi import APIRouter, Depends, Query, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Tuple
import logging

from app.core.database import get_db
from app.core.exceptions import PermissionDenied
from app.middleware.monitoring import bind_session_context
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    Token,
    UserResponse,
    SessionResponse,
    AccessDecisionResponse,
    TenantLookupResponse
)
from app.services.access_scope import AccessScopeService, SessionScope, RoleVariant
from app.services.audit_service import AuditService


logger = logging.getLogger(__name__)

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_session(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Tuple[User, SessionScope]:
    """Resolve the bearer token once per request into the acting user and scope."""
    user, scope = await AccessScopeService(db).scope_from_token(token)
    bind_session_context(request, scope.tenant_id, scope.username, impersonating=scope.impersonating)
    return user, scope


async def get_current_user(session: Tuple[User, SessionScope] = Depends(get_current_session)) -> User:
    return session[0]


async def get_current_scope(session: Tuple[User, SessionScope] = Depends(get_current_session)) -> SessionScope:
    return session[1]


async def require_super_admin(session: Tuple[User, SessionScope] = Depends(get_current_session)) -> User:
    user, scope = session
    if not scope.is_super_admin:
        raise PermissionDenied("Super admin access required", reason="super_admin_required")
    return user


async def require_tenant_scope(scope: SessionScope = Depends(get_current_scope)) -> SessionScope:
    """Any session acting inside a tenant, including an impersonating admin."""
    if not scope.tenant_id:
        raise PermissionDenied("This action requires a business session", reason="tenant_scope_required")
    return scope


async def require_owner(scope: SessionScope = Depends(require_tenant_scope)) -> SessionScope:
    if scope.role != RoleVariant.OWNER:
        raise PermissionDenied("Owner access required", reason="owner_required")
    return scope


@router.post("/login", response_model=Token)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Sign in with business slug, username and password."""
    service = AccessScopeService(db)
    user, tenant = await service.authenticate(credentials.slug, credentials.username, credentials.password)
    scope = service.scope_for(user, tenant)

    return Token(
        access_token=service.issue_token(user),
        token_type="bearer",
        role=scope.role,
        home=scope.home,
    )


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@router.get("/session", response_model=SessionResponse)
async def read_session(scope: SessionScope = Depends(get_current_scope)):
    """Resolved session scope, including the impersonation banner when present."""
    return SessionResponse(**scope.to_dict())


@router.get("/scope", response_model=AccessDecisionResponse)
async def check_route_access(
    path: str = Query(..., description="Client route to check, e.g. /acme/owner/dashboard"),
    scope: SessionScope = Depends(get_current_scope)
):
    decision = scope.resolve(path)
    return AccessDecisionResponse(path=path, allowed=decision.allowed, redirect_to=decision.redirect_to)


@router.get("/tenant/{slug}", response_model=TenantLookupResponse)
async def lookup_tenant(slug: str, db: AsyncSession = Depends(get_db)):
    """Public lookup used by the tenant login page."""
    tenant = await AccessScopeService(db).get_tenant_by_slug(slug)
    return TenantLookupResponse(
        slug=tenant.slug,
        business_name=tenant.business_name,
        business_type=tenant.business_type.value,
        business_logo=tenant.business_logo,
        is_active=tenant.is_active,
    )


async def record_action(
    db: AsyncSession,
    action: str,
    actor: User,
    scope: SessionScope = None,
    **kwargs
):
    """Audit a committed action, noting the impersonation session when there is one."""
    changes = kwargs.pop("changes", None) or {}
    if scope is not None and scope.impersonating:
        changes["impersonation_log_id"] = scope.impersonation_log_id
    audit = AuditService(db)
    entry = await audit.record(action, actor=actor, changes=changes or None, **kwargs)
    if scope is not None and scope.impersonating:
        await audit.note_impersonated_action(scope.impersonation_log_id, action)
    return entry
