"""
Access Scope Module

Authenticates sessions and decides which client routes a session may reach.

A session's role variant and tenant are resolved once, when its token is
read, into a SessionScope. Route decisions are then pure functions of that
scope and the requested path.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple, FrozenSet
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.config import settings
from app.core.exceptions import AuthenticationError, PermissionDenied, NotFoundError
from app.core.security import verify_password, create_access_token, decode_access_token
from app.models.audit import ImpersonationLog
from app.models.tenant import Tenant
from app.models.user import User, UserRole


logger = logging.getLogger(__name__)


class RoleVariant(str, enum.Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    CASHIER = "CASHIER"
    KITCHEN = "KITCHEN"
    SUPER_ADMIN = "SUPER_ADMIN"


# First path segment after the tenant slug that each role may open
ROLE_SECTIONS: Dict[RoleVariant, FrozenSet[str]] = {
    RoleVariant.OWNER: frozenset({"owner", "dashboard", "pos"}),
    RoleVariant.MANAGER: frozenset({"manager", "dashboard", "pos"}),
    RoleVariant.CASHIER: frozenset({"dashboard", "pos"}),
    RoleVariant.KITCHEN: frozenset({"kitchen"}),
}

ROLE_HOMES: Dict[RoleVariant, str] = {
    RoleVariant.OWNER: "owner/dashboard",
    RoleVariant.MANAGER: "manager/dashboard",
    RoleVariant.CASHIER: "dashboard",
    RoleVariant.KITCHEN: "kitchen",
    RoleVariant.SUPER_ADMIN: "dashboard",
}

LOGIN_SEGMENT = "login"


def role_variant_for(user: User) -> RoleVariant:
    if user.is_super_admin:
        return RoleVariant.SUPER_ADMIN
    return RoleVariant(user.role.value)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    redirect_to: Optional[str] = None


@dataclass(frozen=True)
class SessionScope:
    """Identity of an authenticated session, fixed for the session's lifetime."""
    user_id: str
    username: str
    role: RoleVariant
    tenant_id: Optional[str] = None
    tenant_slug: Optional[str] = None
    business_name: Optional[str] = None
    impersonating: bool = False
    impersonation_log_id: Optional[str] = None
    real_admin_id: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == RoleVariant.SUPER_ADMIN

    @property
    def banner(self) -> Optional[str]:
        if not self.impersonating:
            return None
        return f"You are viewing {self.business_name} as a platform administrator"

    @property
    def home(self) -> Optional[str]:
        if self.is_super_admin:
            return f"/{settings.SUPER_ADMIN_SLUG}/{ROLE_HOMES[self.role]}"
        if not self.tenant_slug:
            return None
        return f"/{self.tenant_slug}/{ROLE_HOMES[self.role]}"

    def _redirect(self) -> AccessDecision:
        return AccessDecision(allowed=False, redirect_to=self.home)

    def resolve(self, path: str) -> AccessDecision:
        """
        Decide whether this session may open ``path``.

        Denied paths carry the session's home route to redirect to, except
        for tenants without a slug, which have no reachable route at all.
        """
        segments = [part for part in (path or "").split("/") if part]

        if self.is_super_admin:
            if segments and segments[0] == settings.SUPER_ADMIN_SLUG:
                return AccessDecision(allowed=True)
            return self._redirect()

        if not self.tenant_slug:
            return AccessDecision(allowed=False, redirect_to=None)

        if len(segments) == 2 and segments[1] == LOGIN_SEGMENT:
            return AccessDecision(allowed=True)

        if not segments or segments[0] != self.tenant_slug:
            return self._redirect()

        if self.role == RoleVariant.KITCHEN:
            if segments[1:] == ["kitchen"]:
                return AccessDecision(allowed=True)
            return self._redirect()

        if len(segments) > 1 and segments[1] in ROLE_SECTIONS[self.role]:
            return AccessDecision(allowed=True)
        return self._redirect()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "tenant_id": self.tenant_id,
            "tenant_slug": self.tenant_slug,
            "business_name": self.business_name,
            "home": self.home,
            "impersonating": self.impersonating,
            "impersonation_log_id": self.impersonation_log_id,
            "banner": self.banner,
        }


class AccessScopeService:
    """
    Service for logging in and turning tokens back into session scopes.

    Provides methods for:
    - Authenticating with slug, username and password
    - Issuing session and impersonation tokens
    - Resolving a token into a SessionScope
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_tenant_by_slug(self, slug: str) -> Tenant:
        result = await self.db.execute(select(Tenant).where(Tenant.slug == slug.lower()))
        tenant = result.scalar_one_or_none()
        if not tenant:
            raise NotFoundError("Business", slug)
        return tenant

    async def _get_user(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _get_tenant(self, tenant_id: Optional[str]) -> Optional[Tenant]:
        if not tenant_id:
            return None
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        return result.scalar_one_or_none()

    @staticmethod
    def check_tenant_access(tenant: Tenant, now: datetime):
        """Inactive tenants and lapsed subscriptions (outside grace) cannot sign in."""
        if not tenant.is_active:
            raise PermissionDenied("This business account is inactive", reason="tenant_inactive")

        in_grace = tenant.is_in_grace_period and tenant.grace_period_end and tenant.grace_period_end > now
        if tenant.subscription_end <= now and not in_grace:
            raise PermissionDenied("This business subscription has expired", reason="subscription_expired")

    async def authenticate(
        self,
        slug: str,
        username: str,
        password: str,
        now: Optional[datetime] = None
    ) -> Tuple[User, Optional[Tenant]]:
        now = now or datetime.utcnow()
        slug = (slug or "").strip().lower()

        if slug == settings.SUPER_ADMIN_SLUG:
            tenant = None
            result = await self.db.execute(
                select(User).where(
                    and_(User.username == username, User.is_super_admin == True, User.tenant_id.is_(None))
                )
            )
        else:
            tenant = await self.get_tenant_by_slug(slug)
            result = await self.db.execute(
                select(User).where(and_(User.tenant_id == tenant.id, User.username == username))
            )

        user = result.scalar_one_or_none()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Incorrect username or password", reason="invalid_credentials")
        if not user.is_active:
            raise AuthenticationError("This account is disabled", reason="user_inactive")

        if tenant is not None:
            self.check_tenant_access(tenant, now)

        user.last_login_at = now
        await self.db.commit()

        logger.info(f"User {user.username} signed in to '{slug}'")
        return user, tenant

    def issue_token(self, user: User) -> str:
        return create_access_token({
            "sub": user.id,
            "tenant_id": user.tenant_id,
            "role": role_variant_for(user).value,
        })

    def issue_impersonation_token(self, admin: User, tenant: Tenant, log: ImpersonationLog) -> str:
        return create_access_token(
            {
                "sub": admin.id,
                "tenant_id": tenant.id,
                "role": RoleVariant.OWNER.value,
                "imp": log.id,
                "real_admin_id": admin.id,
            },
            expires_delta=timedelta(minutes=settings.IMPERSONATION_TOKEN_EXPIRE_MINUTES)
        )

    def scope_for(self, user: User, tenant: Optional[Tenant] = None) -> SessionScope:
        if user.is_super_admin:
            return SessionScope(
                user_id=user.id,
                username=user.username,
                role=RoleVariant.SUPER_ADMIN,
                tenant_slug=settings.SUPER_ADMIN_SLUG,
            )
        return SessionScope(
            user_id=user.id,
            username=user.username,
            role=role_variant_for(user),
            tenant_id=tenant.id if tenant else None,
            tenant_slug=tenant.slug if tenant else None,
            business_name=tenant.business_name if tenant else None,
        )

    async def scope_from_token(self, token: str) -> Tuple[User, SessionScope]:
        """
        Resolve a token into the acting user and their SessionScope.

        Raises AuthenticationError for unreadable, expired or ended sessions and
        PermissionDenied when the user or tenant has since been deactivated or
        the subscription has lapsed outside a grace period.
        """
        payload = decode_access_token(token)
        if not payload or not payload.get("sub"):
            raise AuthenticationError("Could not validate credentials", reason="invalid_token")

        user = await self._get_user(payload["sub"])
        if not user:
            raise AuthenticationError("Could not validate credentials", reason="invalid_token")
        if not user.is_active:
            raise PermissionDenied("This account is disabled", reason="user_inactive")

        if payload.get("imp"):
            return user, await self._impersonation_scope(user, payload)

        if user.is_super_admin:
            return user, self.scope_for(user)

        tenant = await self._get_tenant(user.tenant_id)
        if not tenant:
            raise AuthenticationError("Could not validate credentials", reason="invalid_token")
        # Checked on every request, so a token outliving the subscription stops working
        self.check_tenant_access(tenant, datetime.utcnow())

        return user, self.scope_for(user, tenant)

    async def _impersonation_scope(self, admin: User, payload: Dict[str, Any]) -> SessionScope:
        if not admin.is_super_admin:
            raise AuthenticationError("Could not validate credentials", reason="invalid_token")

        result = await self.db.execute(select(ImpersonationLog).where(ImpersonationLog.id == payload["imp"]))
        log = result.scalar_one_or_none()
        # Ending the session invalidates this token only
        if not log or log.ended_at is not None or log.admin_id != admin.id:
            raise AuthenticationError("Impersonation session has ended", reason="impersonation_ended")

        tenant = await self._get_tenant(log.tenant_id)
        if not tenant:
            raise AuthenticationError("Impersonated business no longer exists", reason="invalid_token")

        return SessionScope(
            user_id=admin.id,
            username=admin.username,
            role=RoleVariant.OWNER,
            tenant_id=tenant.id,
            tenant_slug=tenant.slug,
            business_name=tenant.business_name,
            impersonating=True,
            impersonation_log_id=log.id,
            real_admin_id=payload.get("real_admin_id", admin.id),
        )
