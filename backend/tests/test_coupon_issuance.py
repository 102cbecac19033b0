"""Tests for idempotent coupon issuance and code redemption."""

import re
import uuid
from datetime import UTC, datetime, timedelta
from itertools import cycle
from unittest.mock import patch

import pytest

from couponflow.core.exceptions import CouponNotFound, CouponUnavailable, IssuanceExhausted
from couponflow.core.tenant_scope import TenantScope, scope
from couponflow.models.issued_coupon import IssuedCoupon, IssuedCouponStatus
from couponflow.repositories.issued_coupon_repository import IssuedCouponRepository
from couponflow.services.coupon_issuance import CODE_ALPHABET, CouponIssuanceEngine, generate_code
from tests.conftest import ACME_ID, DEFUNCT_ID, GLOBEX_ID, make_coupon


@pytest.fixture
def coupon(db_session):
    return make_coupon(db_session, ACME_ID, title="Free latte", discount="1 free latte")


@pytest.fixture
def engine(db_session):
    return CouponIssuanceEngine(db_session)


def _fixed_codes(*codes):
    it = iter(codes)
    return lambda: next(it)


class TestGenerateCode:
    def test_format(self):
        code = generate_code("CPN", 10)
        assert re.fullmatch(rf"CPN-[{CODE_ALPHABET}]{{10}}", code)

    def test_codes_differ(self):
        assert len({generate_code() for _ in range(50)}) == 50

    def test_alphabet_has_32_symbols(self):
        assert len(set(CODE_ALPHABET)) == 32


class TestIssueOrFetch:
    def test_issues_once_per_email(self, db_session, engine, coupon):
        first = engine.issue_or_fetch(ACME_ID, coupon.id, "visitor@example.com")
        second = engine.issue_or_fetch(ACME_ID, coupon.id, "  VISITOR@example.com")

        assert first.code == second.code
        assert first.status == "issued"
        assert first.extra == {"title": "Free latte", "discount": "1 free latte"}
        assert scope(db_session, ACME_ID).query(IssuedCoupon).count() == 1

    def test_different_emails_get_different_codes(self, engine, coupon):
        a = engine.issue_or_fetch(ACME_ID, coupon.id, "a@example.com")
        b = engine.issue_or_fetch(ACME_ID, coupon.id, "b@example.com")
        assert a.code != b.code

    def test_fetch_existing(self, engine, coupon):
        assert engine.fetch_existing(ACME_ID, coupon.id, "v@example.com") is None
        issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")
        assert engine.fetch_existing(ACME_ID, coupon.id, "V@EXAMPLE.COM").id == issued.id

    def test_unknown_coupon(self, engine):
        with pytest.raises(CouponNotFound):
            engine.issue_or_fetch(ACME_ID, uuid.uuid4(), "v@example.com")

    def test_coupon_from_another_tenant(self, db_session, engine):
        globex_coupon = make_coupon(db_session, GLOBEX_ID)
        with pytest.raises(CouponNotFound):
            engine.issue_or_fetch(ACME_ID, globex_coupon.id, "v@example.com")

    def test_inactive_coupon(self, db_session, engine):
        inactive = make_coupon(db_session, ACME_ID, active=False)
        with pytest.raises(CouponUnavailable) as exc_info:
            engine.issue_or_fetch(ACME_ID, inactive.id, "v@example.com")
        assert exc_info.value.reason == "inactive"

    def test_expired_coupon(self, db_session, engine):
        expired = make_coupon(db_session, ACME_ID, expires_at=datetime.now(UTC) - timedelta(days=1))
        with pytest.raises(CouponUnavailable) as exc_info:
            engine.issue_or_fetch(ACME_ID, expired.id, "v@example.com")
        assert exc_info.value.reason == "expired"

    def test_existing_code_survives_deactivation(self, db_session, engine, coupon):
        issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")
        coupon.active = False
        db_session.commit()

        assert engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com").code == issued.code

    def test_copies_coupon_expiry(self, db_session, engine):
        expires = datetime.now(UTC) + timedelta(days=7)
        dated = make_coupon(db_session, ACME_ID, expires_at=expires)

        issued = engine.issue_or_fetch(ACME_ID, dated.id, "v@example.com")

        assert issued.expires_at is not None
        assert abs(issued.expires_at.replace(tzinfo=UTC) - expires) < timedelta(seconds=1)

    def test_lost_race_returns_winners_code(self, db_session, engine, coupon):
        winner = IssuedCoupon(
            tenant_id=ACME_ID, coupon_id=coupon.id, email="v@example.com", code="CPN-WINNER0001"
        )
        db_session.add(winner)
        db_session.commit()

        real_get = IssuedCouponRepository.get_for_email
        calls = {"n": 0}

        def stale_first_read(self, coupon_id, email):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_get(self, coupon_id, email)

        with patch.object(IssuedCouponRepository, "get_for_email", stale_first_read):
            issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")

        assert issued.code == "CPN-WINNER0001"
        assert scope(db_session, ACME_ID).query(IssuedCoupon).count() == 1

    def test_code_collision_retries(self, db_session, coupon):
        engine = CouponIssuanceEngine(
            db_session, code_generator=_fixed_codes("CPN-AAAAAAAAAA", "CPN-AAAAAAAAAA", "CPN-BBBBBBBBBB")
        )
        engine.issue_or_fetch(ACME_ID, coupon.id, "a@example.com")

        second = engine.issue_or_fetch(ACME_ID, coupon.id, "b@example.com")

        assert second.code == "CPN-BBBBBBBBBB"

    def test_exhausted_after_max_attempts(self, db_session, coupon):
        engine = CouponIssuanceEngine(
            db_session, code_generator=cycle(["CPN-SAMESAMESA"]).__next__, max_attempts=3
        )
        engine.issue_or_fetch(ACME_ID, coupon.id, "a@example.com")

        with pytest.raises(IssuanceExhausted) as exc_info:
            engine.issue_or_fetch(ACME_ID, coupon.id, "b@example.com")

        assert exc_info.value.attempts == 3
        assert engine.fetch_existing(ACME_ID, coupon.id, "b@example.com") is None

    def test_same_code_allowed_in_other_tenant(self, db_session):
        acme_coupon = make_coupon(db_session, ACME_ID)
        globex_coupon = make_coupon(db_session, GLOBEX_ID)
        engine = CouponIssuanceEngine(db_session, code_generator=cycle(["CPN-SHARED0000"]).__next__)

        engine.issue_or_fetch(ACME_ID, acme_coupon.id, "v@example.com")
        issued = engine.issue_or_fetch(GLOBEX_ID, globex_coupon.id, "v@example.com")

        assert issued.code == "CPN-SHARED0000"


class TestValidateCode:
    def _issue(self, db_session, coupon, code="CPN-VALID00001", **kwargs):
        engine = CouponIssuanceEngine(db_session, code_generator=_fixed_codes(code))
        issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")
        for key, value in kwargs.items():
            setattr(issued, key, value)
        db_session.commit()
        return engine, issued

    def test_unknown_code(self, engine):
        result = engine.validate_code(ACME_ID, "CPN-NOPE")
        assert result.valid is False
        assert result.error == "Coupon code not found"

    def test_valid_without_redeeming(self, db_session, coupon):
        engine, issued = self._issue(db_session, coupon)

        result = engine.validate_code(ACME_ID, " cpn-valid00001 ")

        assert result.valid is True
        assert result.redeemed is False
        assert result.issued_coupon.redemptions_count == 0

    def test_redeem_once(self, db_session, coupon):
        engine, _ = self._issue(db_session, coupon)

        result = engine.validate_code(ACME_ID, "CPN-VALID00001", redeem=True)
        again = engine.validate_code(ACME_ID, "CPN-VALID00001", redeem=True)

        assert result.valid is True
        assert result.issued_coupon.status == "redeemed"
        assert result.issued_coupon.redemptions_count == 1
        assert result.issued_coupon.redeemed_at is not None
        assert again.valid is False
        assert again.error == "This coupon has already been redeemed"

    def test_multi_use_code(self, db_session, coupon):
        engine, _ = self._issue(db_session, coupon, max_redemptions=2)

        first = engine.validate_code(ACME_ID, "CPN-VALID00001", redeem=True)
        assert first.issued_coupon.status == "issued"
        second = engine.validate_code(ACME_ID, "CPN-VALID00001", redeem=True)
        assert second.issued_coupon.status == "redeemed"
        assert second.issued_coupon.redemptions_count == 2

    def test_expired_code_is_marked(self, db_session, coupon):
        engine, issued = self._issue(
            db_session, coupon, expires_at=datetime.now(UTC) - timedelta(minutes=1)
        )

        result = engine.validate_code(ACME_ID, "CPN-VALID00001", redeem=True)

        assert result.valid is False
        assert result.error == "This coupon has expired"
        db_session.refresh(issued)
        assert issued.status == "expired"

    def test_revoked_code(self, db_session, coupon):
        engine, issued = self._issue(db_session, coupon)
        engine.revoke(ACME_ID, issued.id)

        result = engine.validate_code(ACME_ID, "CPN-VALID00001")

        assert result.valid is False
        assert result.error == "This coupon has been revoked"

    def test_code_invisible_to_other_tenant(self, db_session, coupon):
        engine, _ = self._issue(db_session, coupon)
        assert engine.validate_code(GLOBEX_ID, "CPN-VALID00001").valid is False


class TestStatusAndAdmin:
    def test_get_status_priority(self, db_session, coupon, engine):
        issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")
        assert engine.get_status(ACME_ID, coupon.id, "v@example.com") is None

        issued.status = "redeemed"
        db_session.commit()
        assert engine.get_status(ACME_ID, coupon.id, "v@example.com") is IssuedCouponStatus.REDEEMED

        issued.expires_at = datetime.now(UTC) - timedelta(days=1)
        db_session.commit()
        assert engine.get_status(ACME_ID, coupon.id, "v@example.com") is IssuedCouponStatus.EXPIRED

        issued.status = "revoked"
        db_session.commit()
        assert engine.get_status(ACME_ID, coupon.id, "v@example.com") is IssuedCouponStatus.REVOKED

    def test_get_status_without_code(self, engine, coupon):
        assert engine.get_status(ACME_ID, coupon.id, "nobody@example.com") is None

    def test_revoke(self, engine, coupon):
        issued = engine.issue_or_fetch(ACME_ID, coupon.id, "v@example.com")

        revoked = engine.revoke(ACME_ID, issued.id)

        assert revoked.status == "revoked"
        assert revoked.revoked_at is not None
        assert engine.revoke(GLOBEX_ID, issued.id) is None

    def test_list_and_count(self, engine, coupon):
        for i in range(3):
            engine.issue_or_fetch(ACME_ID, coupon.id, f"v{i}@example.com")

        assert engine.count_issued(ACME_ID) == 3
        assert len(engine.list_issued(ACME_ID, skip=1, limit=10)) == 2
        assert engine.count_issued(GLOBEX_ID) == 0
        assert engine.count_issued(ACME_ID, status=IssuedCouponStatus.REDEEMED) == 0

    def test_expire_overdue_across_tenants(self, db_session, engine):
        acme_coupon = make_coupon(db_session, ACME_ID)
        globex_coupon = make_coupon(db_session, GLOBEX_ID)
        a = engine.issue_or_fetch(ACME_ID, acme_coupon.id, "v@example.com")
        b = engine.issue_or_fetch(GLOBEX_ID, globex_coupon.id, "v@example.com")
        fresh = engine.issue_or_fetch(ACME_ID, acme_coupon.id, "fresh@example.com")
        past = datetime.now(UTC) - timedelta(hours=1)
        a.expires_at = past
        b.expires_at = past
        db_session.commit()

        assert engine.expire_overdue() == 2

        for issued in (a, b, fresh):
            db_session.refresh(issued)
        assert a.status == "expired"
        assert b.status == "expired"
        assert fresh.status == "issued"

    def test_expire_overdue_tags_each_tenant(self, db_session, engine):
        with patch.object(TenantScope, "apply_tenant_tag", autospec=True) as tag:
            engine.expire_overdue()

        tagged = {call.args[0].tenant_id for call in tag.call_args_list}
        assert tagged == {ACME_ID, GLOBEX_ID, DEFUNCT_ID}

    def test_repository_expiry_stays_in_tenant(self, db_session, engine):
        acme_coupon = make_coupon(db_session, ACME_ID)
        globex_coupon = make_coupon(db_session, GLOBEX_ID)
        a = engine.issue_or_fetch(ACME_ID, acme_coupon.id, "v@example.com")
        b = engine.issue_or_fetch(GLOBEX_ID, globex_coupon.id, "v@example.com")
        a.expires_at = b.expires_at = datetime.now(UTC) - timedelta(hours=1)
        db_session.commit()

        count = IssuedCouponRepository(scope(db_session, ACME_ID)).mark_overdue_expired(datetime.now(UTC))

        assert count == 1
        db_session.refresh(b)
        assert b.status == "issued"
