"""Tenant-scoped data access.

Every read and write for tenant-owned data goes through a :class:`TenantScope`.
The scope filters reads by ``tenant_id``, stamps writes with it, and before
each statement tags the connection with the tenant so PostgreSQL row-level
security policies can check ``current_setting('app.tenant_id')``.

The tag is set with ``set_config(..., is_local => true)``, which lasts until the
end of the current transaction. A pooled connection therefore never carries a
tag into another request, and the scope re-tags after every commit or rollback.
"""

import logging
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from couponflow.core.exceptions import TenantContextError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

TENANT_SETTING = "app.tenant_id"

_SET_TENANT_SQL = text("SELECT set_config(:setting, :tenant_id, true)")


class TenantScope:
    """Data-access handle bound to one tenant for one logical request."""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _supports_tagging(self) -> bool:
        return self.db.get_bind().dialect.name == "postgresql"

    def apply_tenant_tag(self) -> None:
        """Tag the current transaction with the tenant id.

        Raises :class:`TenantContextError` if the database refuses the tag or
        echoes back a different value.
        """
        if not self._supports_tagging():
            return

        expected = str(self.tenant_id)
        try:
            applied = self.db.execute(
                _SET_TENANT_SQL, {"setting": TENANT_SETTING, "tenant_id": expected}
            ).scalar()
        except SQLAlchemyError as exc:
            logger.error("Failed to set tenant context for %s: %s", expected, exc)
            raise TenantContextError(self.tenant_id, str(exc)) from exc

        if applied != expected:
            logger.error("Tenant context mismatch: expected %s, got %r", expected, applied)
            raise TenantContextError(self.tenant_id, f"tag mismatch ({applied!r})")

    def _check_owner(self, obj: Any) -> None:
        owner = getattr(obj, "tenant_id", None)
        if owner is not None and owner != self.tenant_id:
            raise TenantContextError(
                self.tenant_id, f"{type(obj).__name__} belongs to tenant {owner}"
            )

    def query(self, model: type[ModelT]) -> "Query[ModelT]":
        self.apply_tenant_tag()
        return self.db.query(model).filter(model.tenant_id == self.tenant_id)  # type: ignore[attr-defined]

    def get(self, model: type[ModelT], object_id: UUID) -> ModelT | None:
        """Fetch by primary key. Rows of other tenants read as missing."""
        return self.query(model).filter(model.id == object_id).first()  # type: ignore[attr-defined]

    def add(self, obj: ModelT) -> ModelT:
        if getattr(obj, "tenant_id", None) is None:
            obj.tenant_id = self.tenant_id  # type: ignore[attr-defined]
        self._check_owner(obj)
        self.db.add(obj)
        return obj

    def update(self, model: type[Any], *criteria: Any, values: dict[str, Any]) -> int:
        """Bulk update this tenant's rows of ``model`` matching ``criteria``.

        Does not commit. Returns the number of rows updated.
        """
        self.apply_tenant_tag()
        result = self.db.execute(
            update(model)
            .where(model.tenant_id == self.tenant_id, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    def flush(self) -> None:
        self.apply_tenant_tag()
        self.db.flush()

    def commit(self) -> None:
        self.apply_tenant_tag()
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, obj: ModelT) -> ModelT:
        self._check_owner(obj)
        self.apply_tenant_tag()
        self.db.refresh(obj)
        return obj


def scope(db: Session, tenant_id: UUID) -> TenantScope:
    """Open a tenant-scoped handle on ``db``. Build one per request; never cache it."""
    return TenantScope(db, tenant_id)
