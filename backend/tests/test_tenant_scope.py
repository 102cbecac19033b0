"""Tenant isolation through the tenant-scoped accessor.

Two tenants share one session; every read and write through a scope must
only ever see and touch its own tenant's rows.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from couponflow.core.exceptions import TenantContextError
from couponflow.core.tenant_scope import TENANT_SETTING, TenantScope, scope
from couponflow.models.coupon import Coupon
from couponflow.models.email_opt_in import EmailOptIn
from tests.conftest import ACME_ID, GLOBEX_ID, make_coupon


class TestIsolation:
    def test_query_only_returns_own_rows(self, db_session):
        make_coupon(db_session, ACME_ID, title="Acme deal")
        make_coupon(db_session, GLOBEX_ID, title="Globex deal")

        acme_titles = [c.title for c in scope(db_session, ACME_ID).query(Coupon).all()]
        globex_titles = [c.title for c in scope(db_session, GLOBEX_ID).query(Coupon).all()]

        assert acme_titles == ["Acme deal"]
        assert globex_titles == ["Globex deal"]

    def test_get_hides_other_tenants_rows(self, db_session):
        globex_coupon = make_coupon(db_session, GLOBEX_ID)

        assert scope(db_session, ACME_ID).get(Coupon, globex_coupon.id) is None
        assert scope(db_session, GLOBEX_ID).get(Coupon, globex_coupon.id) is not None

    def test_add_stamps_tenant(self, db_session):
        acme = scope(db_session, ACME_ID)
        opt_in = acme.add(EmailOptIn(email="a@example.com", source="direct"))
        acme.commit()

        assert opt_in.tenant_id == ACME_ID
        assert scope(db_session, GLOBEX_ID).query(EmailOptIn).count() == 0

    def test_add_rejects_foreign_object(self, db_session):
        with pytest.raises(TenantContextError):
            scope(db_session, ACME_ID).add(Coupon(tenant_id=GLOBEX_ID, title="Sneaky"))

    def test_refresh_rejects_foreign_object(self, db_session):
        globex_coupon = make_coupon(db_session, GLOBEX_ID)
        with pytest.raises(TenantContextError):
            scope(db_session, ACME_ID).refresh(globex_coupon)

    def test_sqlite_skips_tagging(self, db_session):
        # No row-level policies on SQLite; tagging is a no-op rather than an error
        scope(db_session, ACME_ID).apply_tenant_tag()


def _postgres_session(returned=None, error=None) -> MagicMock:
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "postgresql"
    if error is not None:
        db.execute.side_effect = error
    else:
        db.execute.return_value.scalar.return_value = returned
    return db


class TestTenantTagging:
    def test_tag_applied_and_verified(self):
        db = _postgres_session(returned=str(ACME_ID))
        TenantScope(db, ACME_ID).apply_tenant_tag()

        params = db.execute.call_args.args[1]
        assert params == {"setting": TENANT_SETTING, "tenant_id": str(ACME_ID)}

    def test_mismatched_tag_raises(self):
        db = _postgres_session(returned=str(GLOBEX_ID))
        with pytest.raises(TenantContextError):
            TenantScope(db, ACME_ID).apply_tenant_tag()

    def test_void_result_raises(self):
        db = _postgres_session(returned=None)
        with pytest.raises(TenantContextError):
            TenantScope(db, ACME_ID).apply_tenant_tag()

    def test_driver_error_raises(self):
        db = _postgres_session(error=OperationalError("SELECT set_config", {}, Exception("boom")))
        with pytest.raises(TenantContextError):
            TenantScope(db, ACME_ID).apply_tenant_tag()

    def test_every_query_retags(self):
        db = _postgres_session(returned=str(ACME_ID))
        tenant_scope = TenantScope(db, ACME_ID)

        tenant_scope.query(Coupon)
        tenant_scope.query(EmailOptIn)
        tenant_scope.commit()

        assert db.execute.call_count == 3
        db.commit.assert_called_once()

    def test_commit_not_attempted_when_tag_fails(self):
        db = _postgres_session(returned="something-else")
        with pytest.raises(TenantContextError):
            TenantScope(db, ACME_ID).commit()
        db.commit.assert_not_called()
