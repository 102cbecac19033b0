"""Tenant repository for data access.

Tenants are the root of isolation, so lookups here run on a plain session
before any tenant context exists.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from couponflow.models.tenant import Tenant
from couponflow.schemas.tenant import TenantCreate, TenantUpdate


class TenantRepository:
    """Repository for Tenant model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_slug(self, slug: str) -> Tenant | None:
        """Get a tenant by its exact (case-sensitive) slug."""
        return self.db.query(Tenant).filter(Tenant.slug == slug).first()

    def get_all_ids(self) -> list[UUID]:
        """Every tenant, active or not."""
        return [tenant_id for (tenant_id,) in self.db.query(Tenant.id).order_by(Tenant.slug).all()]

    def create(self, data: TenantCreate) -> Tenant:
        tenant = Tenant(**data.model_dump())
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)
        return tenant

    def update(self, slug: str, data: TenantUpdate) -> Tenant | None:
        tenant = self.get_by_slug(slug)
        if not tenant:
            return None

        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(tenant, key, value)

        self.db.commit()
        self.db.refresh(tenant)
        return tenant
