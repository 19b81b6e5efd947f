"""
Slug Service Module

Validates, checks and assigns the URL slug that routes all traffic for a tenant.
"""

import re
from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.core.config import settings
from app.core.exceptions import ValidationError, ConflictError
from app.models.tenant import Tenant


logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")
SLUG_FORMAT_MESSAGE = (
    "Slug must be 3-30 characters, lowercase letters, numbers, and hyphens only "
    "(no hyphens at start/end)"
)


def validate_slug(candidate: Optional[str]) -> str:
    """
    Check a candidate slug against the format rules.

    Raises ValidationError with reason too_short, too_long, invalid_chars or
    reserved. Returns the candidate unchanged when it is acceptable.
    """
    if not candidate or len(candidate) < settings.SLUG_MIN_LENGTH:
        raise ValidationError(SLUG_FORMAT_MESSAGE, reason="too_short")
    if len(candidate) > settings.SLUG_MAX_LENGTH:
        raise ValidationError(SLUG_FORMAT_MESSAGE, reason="too_long")
    if not SLUG_PATTERN.match(candidate):
        raise ValidationError(SLUG_FORMAT_MESSAGE, reason="invalid_chars")
    if candidate in settings.reserved_slugs:
        raise ValidationError("This slug is reserved and cannot be used", reason="reserved")
    return candidate


def suggest_slug(business_name: str) -> str:
    """Derive a slug suggestion from a business name. Advisory only."""
    slug = business_name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug.strip())
    return slug[:settings.SLUG_MAX_LENGTH].strip("-")


class SlugService:
    """
    Allocator for tenant slugs.

    The availability check is advisory. The unique constraint on
    tenants.slug decides between concurrent writers; the loser gets a
    ConflictError instead of overwriting.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    validate = staticmethod(validate_slug)
    suggest = staticmethod(suggest_slug)

    async def check_availability(self, candidate: str, exclude_tenant_id: Optional[str] = None) -> bool:
        """
        Return True when no other tenant holds the slug.

        A tenant re-checking its own current slug sees it as available.
        """
        query = select(Tenant.id).where(Tenant.slug == candidate)
        if exclude_tenant_id:
            query = query.where(Tenant.id != exclude_tenant_id)

        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none() is None

    async def assign(self, tenant: Tenant, candidate: str) -> Tenant:
        """
        Set the tenant's slug and flush it to storage.

        Must run inside the caller's transaction (see app.core.database.atomic).
        Works for a tenant that is being created in the same transaction.
        """
        validate_slug(candidate)

        if tenant.slug == candidate:
            return tenant

        if not await self.check_availability(candidate, exclude_tenant_id=tenant.id):
            raise ConflictError(
                "This URL slug is already in use. Please try a different value.",
                reason="slug_taken"
            )

        previous = tenant.slug
        tenant.slug = candidate
        self.db.add(tenant)

        try:
            await self.db.flush()
        except IntegrityError as e:
            # Other unique columns on the row are the caller's to report
            if "slug" not in str(e.orig):
                raise
            logger.warning(f"Slug '{candidate}' lost a concurrent assignment race: {e.orig}")
            raise ConflictError(
                "This URL slug was just taken. Please try a different value.",
                reason="slug_taken"
            ) from e

        logger.info(f"Slug assigned: '{previous}' -> '{candidate}' for tenant {tenant.id}")
        return tenant
