"""Tests for the visitor-facing API under /t/{slug}."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from couponflow.core.tenant_scope import scope
from couponflow.models.analytics_event import AnalyticsEvent
from couponflow.models.email_opt_in import EmailOptIn
from couponflow.models.issued_coupon import IssuedCoupon
from couponflow.models.survey_response import SurveyResponse
from couponflow.services.qualification import DEACTIVATED_MESSAGE
from tests.conftest import ACME_ID, DEFUNCT_ID, make_coupon, make_question


def _events(db_session, tenant_id=ACME_ID):
    return [e.event_type for e in scope(db_session, tenant_id).query(AnalyticsEvent).all()]


class TestTenantPage:
    def test_active_tenant(self, client, db_session):
        response = client.get("/t/acme", params={"session_id": "s-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "active"
        assert data["tenant"]["name"] == "Acme Coffee"
        assert data["tenant"]["theme"] == {"primary": "#123456"}
        assert _events(db_session) == ["page_visit"]

    def test_deactivated_tenant(self, client, db_session):
        response = client.get("/t/defunct")

        assert response.status_code == 200
        assert response.json()["state"] == "deactivated"
        assert response.json()["tenant"]["name"] == "Defunct Diner"
        assert _events(db_session, DEFUNCT_ID) == []

    def test_unknown_tenant(self, client):
        response = client.get("/t/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Business not found"


class TestCoupons:
    def test_lists_active_coupons_only(self, client, db_session):
        make_coupon(db_session, ACME_ID, title="Free latte")
        make_coupon(db_session, ACME_ID, title="Old deal", active=False)

        response = client.get("/t/acme/coupons")

        assert response.status_code == 200
        assert [c["title"] for c in response.json()] == ["Free latte"]

    def test_deactivated_tenant(self, client):
        response = client.get("/t/defunct/coupons")
        assert response.status_code == 403
        assert response.json()["detail"] == {"state": "deactivated", "message": DEACTIVATED_MESSAGE}


class TestOptIn:
    def test_opt_in(self, client, db_session):
        response = client.post("/t/acme/opt-in", json={"email": "Visitor@Example.com"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert scope(db_session, ACME_ID).query(EmailOptIn).one().email == "visitor@example.com"

    def test_duplicate_reports_success(self, client):
        client.post("/t/acme/opt-in", json={"email": "v@example.com"})
        response = client.post("/t/acme/opt-in", json={"email": "v@example.com", "source": "oauth"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Email already registered"}

    def test_invalid_email(self, client):
        response = client.post("/t/acme/opt-in", json={"email": "not-an-email"})
        assert response.status_code == 422

    def test_survey_source_not_accepted(self, client):
        response = client.post("/t/acme/opt-in", json={"email": "v@example.com", "source": "survey"})
        assert response.status_code == 422

    def test_rate_limited(self, client):
        for _ in range(5):
            assert client.post("/t/acme/opt-in", json={"email": "v@example.com"}).status_code == 200

        response = client.post("/t/acme/opt-in", json={"email": "v@example.com"})

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1
        assert response.json()["detail"].startswith("Too many requests")


class TestTenantSurvey:
    def test_get_survey(self, client, db_session):
        question = make_question(db_session, ACME_ID)

        response = client.get("/t/acme/survey")

        assert response.status_code == 200
        assert [q["id"] for q in response.json()["questions"]] == [str(question.id)]

    def test_submit(self, client, db_session):
        question = make_question(db_session, ACME_ID)

        response = client.post(
            "/t/acme/survey",
            json={
                "email": "v@example.com",
                "session_id": "s-1",
                "answers": [{"question_id": str(question.id), "value": "Red"}],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["answer_count"] == 1
        assert data["opt_in_recorded"] is True
        assert "survey_completion" in _events(db_session)

    def test_submit_invalid(self, client, db_session):
        question = make_question(db_session, ACME_ID, type="nps")

        response = client.post(
            "/t/acme/survey",
            json={"answers": [{"question_id": str(question.id), "value": 11}]},
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["errors"] == {str(question.id): "Must be at most 10"}
        assert scope(db_session, ACME_ID).query(SurveyResponse).count() == 0

    def test_duplicate_answers_rejected(self, client, db_session):
        question = make_question(db_session, ACME_ID)

        response = client.post(
            "/t/acme/survey",
            json={
                "email": "v@example.com",
                "answers": [
                    {"question_id": str(question.id), "value": "Red"},
                    {"question_id": str(question.id), "value": "Blue"},
                ],
            },
        )

        assert response.status_code == 422
        assert "more than once" in response.text
        assert scope(db_session, ACME_ID).query(SurveyResponse).count() == 0


class TestQualificationFlow:
    def test_full_flow(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID)
        question = make_question(db_session, ACME_ID, type="yes_no")
        base = f"/t/acme/coupons/{coupon.id}"

        start = client.get(f"{base}/qualification")
        assert start.json()["state"] == "awaiting_email"
        assert start.json()["redirect_to"] == f"{base}/email"

        gated = client.get(f"{base}/qualification", params={"email": "v@example.com"})
        assert gated.json()["state"] == "survey_required"
        assert gated.json()["survey"]["questions"][0]["id"] == str(question.id)

        submitted = client.post(
            f"{base}/survey",
            json={
                "email": "v@example.com",
                "answers": [{"question_id": str(question.id), "value": True}],
            },
        )
        assert submitted.status_code == 200
        assert submitted.json()["state"] == "completed"
        code = submitted.json()["issued_coupon"]["code"]
        assert code.startswith("CPN-")

        claimed = client.get(f"{base}/completed", params={"email": "v@example.com"})
        assert claimed.json()["issued_coupon"]["code"] == code

        events = _events(db_session)
        assert events.count("coupon_issued") == 1
        assert events.count("survey_completion") == 1

    def test_coupon_survey_requires_email(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID)
        response = client.post(f"/t/acme/coupons/{coupon.id}/survey", json={"answers": []})
        assert response.status_code == 422

    def test_deactivated(self, client, db_session):
        coupon = make_coupon(db_session, DEFUNCT_ID)

        response = client.get(
            f"/t/defunct/coupons/{coupon.id}/qualification", params={"email": "v@example.com"}
        )

        assert response.status_code == 403
        assert response.json()["detail"]["state"] == "deactivated"

    def test_unknown_coupon(self, client):
        response = client.get(f"/t/acme/coupons/{uuid.uuid4()}/qualification")
        assert response.status_code == 404
        assert response.json()["detail"] == "Coupon not found"

    def test_expired_coupon(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID, expires_at=datetime.now(UTC) - timedelta(days=1))

        response = client.get(
            f"/t/acme/coupons/{coupon.id}/qualification", params={"email": "v@example.com"}
        )

        assert response.status_code == 410
        assert scope(db_session, ACME_ID).query(IssuedCoupon).count() == 0


class TestEvents:
    @pytest.mark.parametrize("event_type", ["code_copy", "coupon_download", "wallet_add"])
    def test_track(self, client, db_session, event_type):
        response = client.post(
            "/t/acme/events",
            json={"event_type": event_type, "session_id": "s-1", "metadata": {"code": "CPN-X"}},
        )

        assert response.status_code == 202
        event = scope(db_session, ACME_ID).query(AnalyticsEvent).one()
        assert event.event_type == event_type
        assert event.event_metadata == {"code": "CPN-X"}

    def test_unknown_event_type(self, client):
        response = client.post("/t/acme/events", json={"event_type": "bogus"})
        assert response.status_code == 422

    def test_deactivated_tenant_not_tracked(self, client):
        response = client.post("/t/defunct/events", json={"event_type": "code_copy"})
        assert response.status_code == 404

    def test_rate_limited_by_ip(self, client):
        headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        for _ in range(20):
            client.post("/t/acme/events", json={"event_type": "code_copy"}, headers=headers)

        response = client.post("/t/acme/events", json={"event_type": "code_copy"}, headers=headers)
        other = client.post(
            "/t/acme/events", json={"event_type": "code_copy"}, headers={"X-Real-IP": "198.51.100.1"}
        )

        assert response.status_code == 429
        assert other.status_code == 202


class TestQualificationInput:
    @pytest.mark.parametrize("step", ["qualification", "completed"])
    def test_blank_email_issues_nothing(self, client, db_session, step):
        coupon = make_coupon(db_session, ACME_ID)

        response = client.get(f"/t/acme/coupons/{coupon.id}/{step}", params={"email": "   "})

        assert response.status_code == 200
        assert response.json()["state"] == "awaiting_email"
        assert response.json()["issued_coupon"] is None
        assert scope(db_session, ACME_ID).query(IssuedCoupon).count() == 0

    @pytest.mark.parametrize("step", ["qualification", "completed"])
    def test_malformed_email_rejected(self, client, db_session, step):
        coupon = make_coupon(db_session, ACME_ID)

        response = client.get(
            f"/t/acme/coupons/{coupon.id}/{step}", params={"email": "not-an-email"}
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Enter a valid email address"
        assert scope(db_session, ACME_ID).query(IssuedCoupon).count() == 0

    def test_email_is_normalized(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID)

        response = client.get(
            f"/t/acme/coupons/{coupon.id}/qualification", params={"email": " V@Example.com "}
        )

        assert response.json()["issued_coupon"]["email"] == "v@example.com"

    def test_inactive_coupon_survey_stores_nothing(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID, active=False)
        question = make_question(db_session, ACME_ID)
        base = f"/t/acme/coupons/{coupon.id}"

        gated = client.get(f"{base}/qualification", params={"email": "v@example.com"})
        submitted = client.post(
            f"{base}/survey",
            json={
                "email": "v@example.com",
                "answers": [{"question_id": str(question.id), "value": "Red"}],
            },
        )

        assert gated.status_code == 410
        assert submitted.status_code == 410
        tenant_scope = scope(db_session, ACME_ID)
        assert tenant_scope.query(SurveyResponse).count() == 0
        assert tenant_scope.query(EmailOptIn).count() == 0

    def test_coupon_survey_duplicate_answers_rejected(self, client, db_session):
        coupon = make_coupon(db_session, ACME_ID)
        question = make_question(db_session, ACME_ID)

        response = client.post(
            f"/t/acme/coupons/{coupon.id}/survey",
            json={
                "email": "v@example.com",
                "answers": [
                    {"question_id": str(question.id), "value": "Red"},
                    {"question_id": str(question.id), "value": "Green"},
                ],
            },
        )

        assert response.status_code == 422
        tenant_scope = scope(db_session, ACME_ID)
        assert tenant_scope.query(SurveyResponse).count() == 0
        assert tenant_scope.query(IssuedCoupon).count() == 0
