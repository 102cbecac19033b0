"""Qualification orchestrator: decides whether a visitor must take a survey
before receiving a coupon, and drives them to an issued code.

States::

    awaiting_email -> checking_opt_in -> survey_required -> survey_in_progress -> completed
                                      \\-> already_qualified ----------------------/

plus ``deactivated`` when the tenant has been switched off. ``completed``
always carries an issued code; the only hard stop is tenant inactivity.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from couponflow.core.config import settings
from couponflow.core.exceptions import CouponNotFound
from couponflow.core.rate_limiter import EndpointClass, RateLimiter, get_client_identifier
from couponflow.core.tenant_scope import scope
from couponflow.models.coupon import Coupon
from couponflow.models.issued_coupon import IssuedCoupon
from couponflow.models.shared import normalize_email
from couponflow.models.tenant import Tenant
from couponflow.repositories.coupon_repository import CouponRepository
from couponflow.services.coupon_issuance import CouponIssuanceEngine, ensure_issuable
from couponflow.services.opt_in_registry import OptInRegistry, OptInStatus
from couponflow.services.survey_engine import StoredResponse, Survey, SurveyContext, SurveyEngine
from couponflow.services.tenant_resolver import TenantResolver

logger = logging.getLogger(__name__)

DEACTIVATED_MESSAGE = "This business is no longer offering coupons."


class QualificationState(str, Enum):
    AWAITING_EMAIL = "awaiting_email"
    CHECKING_OPT_IN = "checking_opt_in"
    SURVEY_REQUIRED = "survey_required"
    ALREADY_QUALIFIED = "already_qualified"
    SURVEY_IN_PROGRESS = "survey_in_progress"
    COMPLETED = "completed"
    DEACTIVATED = "deactivated"


@dataclass
class QualificationOutcome:
    state: QualificationState
    tenant: Tenant
    redirect_to: str | None = None
    survey: Survey | None = None
    issued_coupon: IssuedCoupon | None = None
    newly_issued: bool = False
    stored_response: StoredResponse | None = None
    message: str | None = None
    # Every state passed through on the way to ``state``
    path: list[QualificationState] = field(default_factory=list)


class QualificationOrchestrator:
    def __init__(
        self,
        db: Session,
        limiter: RateLimiter,
        trust_inconclusive: bool | None = None,
    ):
        self.db = db
        self.limiter = limiter
        self.trust_inconclusive = (
            settings.TRUST_EMAIL_ON_INCONCLUSIVE_OPT_IN
            if trust_inconclusive is None
            else trust_inconclusive
        )
        self.resolver = TenantResolver(db)
        self.opt_ins = OptInRegistry(db)
        self.surveys = SurveyEngine(db)
        self.issuance = CouponIssuanceEngine(db)

    def begin(
        self,
        slug: str,
        coupon_id: UUID,
        email: str | None,
        headers: Mapping[str, Any] | None = None,
    ) -> QualificationOutcome:
        """Entry point when a visitor picks a coupon."""
        tenant = self.resolver.fetch_active(slug)
        path = [QualificationState.AWAITING_EMAIL]
        if not tenant.active:
            return self._deactivated(tenant, path)

        coupon = self._require_coupon(tenant, coupon_id)
        email = normalize_email(email) if email else ""
        if not email:
            return self._awaiting_email(tenant, coupon_id, path)

        identifier = get_client_identifier(email, headers)
        self.limiter.enforce(identifier, EndpointClass.COUPON_CHECK)
        if self.issuance.fetch_existing(tenant.id, coupon_id, email) is None:  # type: ignore[arg-type]
            ensure_issuable(coupon)
        return self._gate(tenant, coupon_id, email, identifier, path)

    def submit_survey(
        self,
        slug: str,
        coupon_id: UUID,
        email: str,
        answers: Mapping[Any, Any],
        headers: Mapping[str, Any] | None = None,
        session_id: str | None = None,
    ) -> QualificationOutcome:
        """Store a completed survey (recording the opt-in) and issue the coupon."""
        email = normalize_email(email)
        identifier = get_client_identifier(email, headers)
        self.limiter.enforce(identifier, EndpointClass.SURVEY_SUBMIT)

        tenant = self.resolver.fetch_active(slug)
        path = [QualificationState.SURVEY_IN_PROGRESS]
        if not tenant.active:
            return self._deactivated(tenant, path)
        coupon = self._require_coupon(tenant, coupon_id)
        if self.issuance.fetch_existing(tenant.id, coupon_id, email) is None:  # type: ignore[arg-type]
            ensure_issuable(coupon)

        stored = self.surveys.validate_and_store(
            tenant.id,  # type: ignore[arg-type]
            SurveyContext(coupon_id=coupon_id, email=email, session_id=session_id),
            answers,
        )
        outcome = self._issue(tenant, coupon_id, email, identifier, path)
        outcome.stored_response = stored
        return outcome

    def complete(
        self,
        slug: str,
        coupon_id: UUID,
        email: str | None,
        headers: Mapping[str, Any] | None = None,
    ) -> QualificationOutcome:
        """The claim step. Returns an existing code, or gates and mints a new one."""
        tenant = self.resolver.fetch_active(slug)
        path = [QualificationState.AWAITING_EMAIL]
        if not tenant.active:
            return self._deactivated(tenant, path)
        email = normalize_email(email) if email else ""
        if not email:
            return self._awaiting_email(tenant, coupon_id, path)

        identifier = get_client_identifier(email, headers)
        self.limiter.enforce(identifier, EndpointClass.COUPON_CHECK)

        existing = self.issuance.fetch_existing(tenant.id, coupon_id, email)  # type: ignore[arg-type]
        if existing is not None:
            path.append(QualificationState.COMPLETED)
            return QualificationOutcome(
                state=QualificationState.COMPLETED,
                tenant=tenant,
                issued_coupon=existing,
                path=path,
            )

        ensure_issuable(self._require_coupon(tenant, coupon_id))
        return self._gate(tenant, coupon_id, email, identifier, path)

    def _gate(
        self,
        tenant: Tenant,
        coupon_id: UUID,
        email: str,
        identifier: str,
        path: list[QualificationState],
    ) -> QualificationOutcome:
        path.append(QualificationState.CHECKING_OPT_IN)
        if self._is_qualified(tenant, email):
            path.append(QualificationState.ALREADY_QUALIFIED)
            return self._issue(tenant, coupon_id, email, identifier, path)

        survey = self.surveys.load_survey(tenant.id, coupon_id)  # type: ignore[arg-type]
        if survey.is_empty:
            logger.info("No survey configured for coupon %s, issuing directly", coupon_id)
            return self._issue(tenant, coupon_id, email, identifier, path)

        path.append(QualificationState.SURVEY_REQUIRED)
        return QualificationOutcome(
            state=QualificationState.SURVEY_REQUIRED,
            tenant=tenant,
            survey=survey,
            redirect_to=f"/t/{tenant.slug}/coupons/{coupon_id}/survey",
            path=path,
        )

    def _is_qualified(self, tenant: Tenant, email: str) -> bool:
        status = self.opt_ins.lookup(tenant.id, email)  # type: ignore[arg-type]
        if status is OptInStatus.INCONCLUSIVE:
            logger.warning(
                "Opt-in status unknown for tenant %s, %s",
                tenant.slug,
                "trusting the email from the link" if self.trust_inconclusive else "requiring the survey",
            )
            return self.trust_inconclusive
        return status is OptInStatus.OPTED_IN

    def _issue(
        self,
        tenant: Tenant,
        coupon_id: UUID,
        email: str,
        identifier: str,
        path: list[QualificationState],
    ) -> QualificationOutcome:
        issued = self.issuance.fetch_existing(tenant.id, coupon_id, email)  # type: ignore[arg-type]
        newly_issued = False
        if issued is None:
            self.limiter.enforce(identifier, EndpointClass.COUPON_ISSUE)
            issued = self.issuance.issue_or_fetch(tenant.id, coupon_id, email)  # type: ignore[arg-type]
            newly_issued = True

        path.append(QualificationState.COMPLETED)
        return QualificationOutcome(
            state=QualificationState.COMPLETED,
            tenant=tenant,
            issued_coupon=issued,
            newly_issued=newly_issued,
            path=path,
        )

    def _require_coupon(self, tenant: Tenant, coupon_id: UUID) -> Coupon:
        coupon = CouponRepository(scope(self.db, tenant.id)).get_by_id(coupon_id)  # type: ignore[arg-type]
        if coupon is None:
            raise CouponNotFound(coupon_id)
        return coupon

    @staticmethod
    def _awaiting_email(
        tenant: Tenant, coupon_id: UUID, path: list[QualificationState]
    ) -> QualificationOutcome:
        return QualificationOutcome(
            state=QualificationState.AWAITING_EMAIL,
            tenant=tenant,
            redirect_to=f"/t/{tenant.slug}/coupons/{coupon_id}/email",
            path=path,
        )

    @staticmethod
    def _deactivated(tenant: Tenant, path: list[QualificationState]) -> QualificationOutcome:
        logger.info("Qualification stopped for deactivated tenant %s", tenant.slug)
        path.append(QualificationState.DEACTIVATED)
        return QualificationOutcome(
            state=QualificationState.DEACTIVATED,
            tenant=tenant,
            message=DEACTIVATED_MESSAGE,
            path=path,
        )
