"""
Subscription Service Module

Classifies subscription health and moves subscription windows.

Health tiers are derived from the time left until subscription_end and are
never stored: every read recomputes them against the caller's ``now``.
"""

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Iterable

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.models.tenant import Tenant


logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class SubscriptionTier(str, enum.Enum):
    HEALTHY = "HEALTHY"    # more than 30 days left
    WARNING = "WARNING"    # 8-30 days
    CRITICAL = "CRITICAL"  # 1-7 days
    EXPIRED = "EXPIRED"    # 0 or fewer


@dataclass(frozen=True)
class SubscriptionHealth:
    tier: SubscriptionTier
    days_remaining: int


def classify(subscription_end: datetime, now: datetime) -> SubscriptionHealth:
    """
    Classify a subscription window.

    days_remaining = ceil((subscription_end - now) / 1 day). Pure function of
    its two inputs.
    """
    seconds_left = (subscription_end - now).total_seconds()
    days_remaining = math.ceil(seconds_left / SECONDS_PER_DAY)

    if days_remaining <= 0:
        tier = SubscriptionTier.EXPIRED
    elif days_remaining <= settings.SUBSCRIPTION_CRITICAL_DAYS:
        tier = SubscriptionTier.CRITICAL
    elif days_remaining <= settings.SUBSCRIPTION_WARNING_DAYS:
        tier = SubscriptionTier.WARNING
    else:
        tier = SubscriptionTier.HEALTHY

    return SubscriptionHealth(tier=tier, days_remaining=days_remaining)


def extended_end(current_end: Optional[datetime], now: datetime, months: int = 0, days: int = 0) -> datetime:
    """
    Compute a new subscription end.

    Extends from the later of ``now`` and the current end, so an expired
    subscription restarts from today rather than from its stale expiry.
    """
    base = max(now, current_end) if current_end else now
    return base + relativedelta(months=months, days=days)


def validate_extension(months: Optional[int], days: Optional[int]):
    if not months and not days:
        raise ValidationError("Provide months or days to extend the subscription", reason="extension_required")
    if months is not None and not (1 <= months <= settings.MAX_SUBSCRIPTION_MONTHS):
        raise ValidationError(
            f"Months must be between 1 and {settings.MAX_SUBSCRIPTION_MONTHS}",
            reason="invalid_months"
        )
    if days is not None and not (1 <= days <= settings.MAX_EXTENSION_DAYS):
        raise ValidationError(
            f"Days must be between 1 and {settings.MAX_EXTENSION_DAYS}",
            reason="invalid_days"
        )


class SubscriptionService:
    """
    Service for subscription windows.

    Provides methods for:
    - Extending a tenant's subscription
    - Summarising subscription health across tenants
    - Grace periods and lockout of lapsed tenants
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    classify = staticmethod(classify)

    def extend(self, tenant: Tenant, months: Optional[int] = None, days: Optional[int] = None,
               now: Optional[datetime] = None) -> datetime:
        """Move the tenant's subscription_end forward. Caller commits."""
        validate_extension(months, days)
        now = now or datetime.utcnow()

        new_end = extended_end(tenant.subscription_end, now, months=months or 0, days=days or 0)
        tenant.subscription_end = new_end
        # A fresh window ends any grace period
        if new_end > now:
            tenant.is_in_grace_period = False
            tenant.grace_period_end = None
        return new_end

    def annotate(self, tenant: Tenant, now: Optional[datetime] = None) -> Dict[str, Any]:
        health = classify(tenant.subscription_end, now or datetime.utcnow())
        return {"tier": health.tier, "days_remaining": health.days_remaining}

    def summarize(self, tenants: Iterable[Tenant], now: datetime) -> Dict[str, Any]:
        """
        Per-tier counts for active tenants plus the list of those at risk.

        Inactive tenants are counted separately and not tiered.
        """
        summary = {tier.value: 0 for tier in SubscriptionTier}
        summary["INACTIVE"] = 0
        at_risk: List[Dict[str, Any]] = []

        for tenant in tenants:
            if not tenant.is_active:
                summary["INACTIVE"] += 1
                continue

            health = classify(tenant.subscription_end, now)
            summary[health.tier.value] += 1

            if health.tier != SubscriptionTier.HEALTHY:
                at_risk.append({
                    "id": tenant.id,
                    "business_name": tenant.business_name,
                    "slug": tenant.slug,
                    "subscription_end": tenant.subscription_end,
                    "tier": health.tier,
                    "days_remaining": health.days_remaining,
                    "is_in_grace_period": tenant.is_in_grace_period,
                })

        at_risk.sort(key=lambda item: item["subscription_end"])
        return {"summary": summary, "tenants": at_risk, "generated_at": now}

    async def health_overview(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.utcnow()
        result = await self.db.execute(select(Tenant).order_by(Tenant.subscription_end.asc()))
        return self.summarize(result.scalars().all(), now)

    def set_grace_period(self, tenant: Tenant, days: Optional[int] = None, now: Optional[datetime] = None) -> datetime:
        """Grant a grace period starting now. Caller commits."""
        if days is None:
            days = settings.DEFAULT_GRACE_PERIOD_DAYS
        if not (1 <= days <= settings.MAX_EXTENSION_DAYS):
            raise ValidationError(
                f"Grace days must be between 1 and {settings.MAX_EXTENSION_DAYS}",
                reason="invalid_grace_days"
            )
        now = now or datetime.utcnow()
        tenant.grace_period_end = now + timedelta(days=days)
        tenant.is_in_grace_period = True
        return tenant.grace_period_end

    async def find_lapsed(self, now: Optional[datetime] = None) -> List[Tenant]:
        """Active tenants whose subscription has expired and who are not inside a running grace period."""
        now = now or datetime.utcnow()
        result = await self.db.execute(
            select(Tenant).where(
                and_(
                    Tenant.is_active == True,
                    Tenant.subscription_end < now,
                    or_(Tenant.grace_period_end.is_(None), Tenant.grace_period_end < now)
                )
            ).order_by(Tenant.subscription_end.asc())
        )
        return list(result.scalars().all())

    def lock_out(self, tenants: Iterable[Tenant]) -> int:
        """Deactivate the given tenants. Caller commits."""
        count = 0
        for tenant in tenants:
            tenant.is_active = False
            tenant.is_in_grace_period = False
            count += 1
        return count
