"""Resolve public tenant slugs to tenant records."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from couponflow.core.exceptions import TenantInactive, TenantNotFound
from couponflow.models.tenant import Tenant
from couponflow.repositories.tenant_repository import TenantRepository

logger = logging.getLogger(__name__)


class TenantResolver:
    def __init__(self, db: Session):
        self.repo = TenantRepository(db)

    def resolve(self, slug: str) -> UUID:
        """Return the id of the active tenant with this exact slug.

        Inactive tenants are reported as not found here.
        """
        tenant = self.repo.get_by_slug(slug)
        if tenant is None or not tenant.active:
            raise TenantNotFound(slug)
        return tenant.id  # type: ignore[return-value]

    def fetch_active(self, slug: str) -> Tenant:
        """Return the tenant record whether active or not, so callers can show a deactivated page."""
        tenant = self.repo.get_by_slug(slug)
        if tenant is None:
            raise TenantNotFound(slug)
        return tenant

    def require_active(self, slug: str) -> Tenant:
        tenant = self.fetch_active(slug)
        if not tenant.active:
            logger.info("Rejected request for deactivated tenant %s", slug)
            raise TenantInactive(slug, tenant.name)  # type: ignore[arg-type]
        return tenant
