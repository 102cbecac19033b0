"""Visitor-facing endpoints under ``/t/{slug}``."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from couponflow.core.database import get_db
from couponflow.core.exceptions import CouponFlowError
from couponflow.core.rate_limiter import EndpointClass, RateLimiter, get_client_identifier, get_rate_limiter
from couponflow.core.tenant_scope import scope
from couponflow.models.analytics_event import EventType
from couponflow.models.coupon import Coupon
from couponflow.models.email_opt_in import OptInSource
from couponflow.repositories.coupon_repository import CouponRepository
from couponflow.routers.errors import deactivated_exception, to_http_exception
from couponflow.schemas.analytics import TrackEventRequest
from couponflow.schemas.coupon import CouponResponse, IssuedCouponResponse
from couponflow.schemas.opt_in import OptInRequest, OptInResponse
from couponflow.schemas.qualification import QualificationResponse
from couponflow.schemas.survey import (
    CouponSurveySubmission,
    StoredResponseOut,
    SurveyOut,
    SurveyQuestionResponse,
    SurveySubmission,
)
from couponflow.schemas.tenant import TenantPageResponse, TenantResponse
from couponflow.services.analytics_service import track_event
from couponflow.services.opt_in_registry import OptInRegistry
from couponflow.services.qualification import (
    QualificationOrchestrator,
    QualificationOutcome,
    QualificationState,
)
from couponflow.services.survey_engine import Survey, SurveyContext, SurveyEngine
from couponflow.services.tenant_resolver import TenantResolver

router = APIRouter()

_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


def qualification_email(
    email: str | None = Query(default=None, max_length=320),
) -> str | None:
    """The visitor's email from the link. Blank means not given yet."""
    if email is None or not email.strip():
        return None
    try:
        return _email_adapter.validate_python(email.strip())
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="Enter a valid email address") from exc


def _survey_out(survey: Survey) -> SurveyOut:
    return SurveyOut(
        coupon_id=survey.coupon_id,
        questions=[SurveyQuestionResponse.model_validate(q) for q in survey.questions],
    )


def _qualification_response(
    outcome: QualificationOutcome,
    background_tasks: BackgroundTasks,
    session_id: str | None = None,
) -> QualificationResponse:
    if outcome.state is QualificationState.DEACTIVATED:
        raise deactivated_exception()

    issued = outcome.issued_coupon
    if outcome.stored_response is not None:
        background_tasks.add_task(
            track_event,
            outcome.tenant.id,
            EventType.SURVEY_COMPLETION,
            session_id,
            issued.email if issued else None,
            {"response_id": str(outcome.stored_response.response_id)},
        )
    if issued is not None and outcome.newly_issued:
        background_tasks.add_task(
            track_event,
            outcome.tenant.id,
            EventType.COUPON_ISSUED,
            session_id,
            issued.email,
            {"coupon_id": str(issued.coupon_id)},
        )

    return QualificationResponse(
        state=outcome.state.value,
        redirect_to=outcome.redirect_to,
        survey=_survey_out(outcome.survey) if outcome.survey is not None else None,
        issued_coupon=IssuedCouponResponse.model_validate(issued) if issued is not None else None,
        message=outcome.message,
    )


@router.get(
    "/{slug}",
    response_model=TenantPageResponse,
    summary="Tenant landing page",
    responses={404: {"description": "Tenant not found"}},
)
async def tenant_page(
    slug: str,
    background_tasks: BackgroundTasks,
    session_id: str | None = Query(default=None, max_length=255),
    db: Session = Depends(get_db),
) -> TenantPageResponse:
    """Tenant display data, or a deactivated state for switched-off tenants."""
    try:
        tenant = TenantResolver(db).fetch_active(slug)
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc

    if tenant.active:
        background_tasks.add_task(track_event, tenant.id, EventType.PAGE_VISIT, session_id)
    return TenantPageResponse(
        state="active" if tenant.active else "deactivated",
        tenant=TenantResponse.model_validate(tenant),
    )


@router.get(
    "/{slug}/coupons",
    response_model=list[CouponResponse],
    summary="List available coupons",
    responses={403: {"description": "Tenant deactivated"}, 404: {"description": "Tenant not found"}},
)
async def list_coupons(slug: str, db: Session = Depends(get_db)) -> list[Coupon]:
    try:
        tenant = TenantResolver(db).require_active(slug)
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return CouponRepository(scope(db, tenant.id)).get_all(active_only=True)


@router.post(
    "/{slug}/opt-in",
    response_model=OptInResponse,
    summary="Opt in an email address",
    responses={
        403: {"description": "Tenant deactivated"},
        404: {"description": "Tenant not found"},
        429: {"description": "Too many requests"},
    },
)
async def opt_in(
    slug: str,
    data: OptInRequest,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> OptInResponse:
    """Direct or OAuth-verified opt-in from the landing page."""
    try:
        identifier = get_client_identifier(data.email)
        limiter.enforce(identifier, EndpointClass.EMAIL_SUBMIT)
        limiter.enforce(identifier, EndpointClass.EMAIL_OPT_IN)
        tenant = TenantResolver(db).require_active(slug)
        result = OptInRegistry(db).record_opt_in(
            tenant.id, data.email, source=OptInSource(data.source)
        )
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return OptInResponse(success=result.success, message=result.message)


@router.get(
    "/{slug}/survey",
    response_model=SurveyOut,
    summary="Get the tenant-wide survey",
    responses={403: {"description": "Tenant deactivated"}, 404: {"description": "Tenant not found"}},
)
async def get_survey(slug: str, db: Session = Depends(get_db)) -> SurveyOut:
    try:
        tenant = TenantResolver(db).require_active(slug)
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return _survey_out(SurveyEngine(db).load_survey(tenant.id))


@router.post(
    "/{slug}/survey",
    response_model=StoredResponseOut,
    status_code=201,
    summary="Submit the tenant-wide survey",
    responses={
        403: {"description": "Tenant deactivated"},
        404: {"description": "Tenant not found"},
        422: {"description": "Invalid answers"},
        429: {"description": "Too many requests"},
    },
)
async def submit_survey(
    slug: str,
    data: SurveySubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> StoredResponseOut:
    try:
        limiter.enforce(
            get_client_identifier(data.email, request.headers), EndpointClass.SURVEY_SUBMIT
        )
        tenant = TenantResolver(db).require_active(slug)
        stored = SurveyEngine(db).validate_and_store(
            tenant.id,
            SurveyContext(email=data.email, session_id=data.session_id),
            {answer.question_id: answer.value for answer in data.answers},
        )
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(
        track_event,
        tenant.id,
        EventType.SURVEY_COMPLETION,
        data.session_id,
        data.email,
        {"response_id": str(stored.response_id)},
    )
    return StoredResponseOut(
        response_id=stored.response_id,
        answer_count=len(stored.answers),
        opt_in_recorded=stored.opt_in_recorded,
    )


@router.get(
    "/{slug}/coupons/{coupon_id}/qualification",
    response_model=QualificationResponse,
    summary="Start qualifying for a coupon",
    responses={
        403: {"description": "Tenant deactivated"},
        404: {"description": "Tenant or coupon not found"},
        410: {"description": "Coupon no longer available"},
        422: {"description": "Invalid email address"},
        429: {"description": "Too many requests"},
    },
)
async def begin_qualification(
    slug: str,
    coupon_id: UUID,
    request: Request,
    background_tasks: BackgroundTasks,
    email: str | None = Depends(qualification_email),
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> QualificationResponse:
    try:
        outcome = QualificationOrchestrator(db, limiter).begin(
            slug, coupon_id, email, request.headers
        )
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return _qualification_response(outcome, background_tasks)


@router.post(
    "/{slug}/coupons/{coupon_id}/survey",
    response_model=QualificationResponse,
    summary="Submit a coupon survey and claim the coupon",
    responses={
        403: {"description": "Tenant deactivated"},
        404: {"description": "Tenant or coupon not found"},
        410: {"description": "Coupon no longer available"},
        422: {"description": "Invalid answers"},
        429: {"description": "Too many requests"},
    },
)
async def submit_coupon_survey(
    slug: str,
    coupon_id: UUID,
    data: CouponSurveySubmission,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> QualificationResponse:
    try:
        outcome = QualificationOrchestrator(db, limiter).submit_survey(
            slug,
            coupon_id,
            data.email,
            {answer.question_id: answer.value for answer in data.answers},
            request.headers,
            session_id=data.session_id,
        )
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return _qualification_response(outcome, background_tasks, data.session_id)


@router.get(
    "/{slug}/coupons/{coupon_id}/completed",
    response_model=QualificationResponse,
    summary="Claim a coupon code",
    responses={
        403: {"description": "Tenant deactivated"},
        404: {"description": "Tenant or coupon not found"},
        410: {"description": "Coupon no longer available"},
        422: {"description": "Invalid email address"},
        429: {"description": "Too many requests"},
    },
)
async def complete_qualification(
    slug: str,
    coupon_id: UUID,
    request: Request,
    background_tasks: BackgroundTasks,
    email: str | None = Depends(qualification_email),
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> QualificationResponse:
    try:
        outcome = QualificationOrchestrator(db, limiter).complete(
            slug, coupon_id, email, request.headers
        )
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc
    return _qualification_response(outcome, background_tasks)


@router.post(
    "/{slug}/events",
    status_code=202,
    summary="Track a client-side event",
    responses={404: {"description": "Tenant not found"}, 429: {"description": "Too many requests"}},
)
async def track_client_event(
    slug: str,
    data: TrackEventRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> dict[str, str]:
    """Code copies, downloads and wallet adds reported by the page."""
    try:
        limiter.enforce(get_client_identifier(None, request.headers), EndpointClass.GENERAL)
        tenant_id = TenantResolver(db).resolve(slug)
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(
        track_event, tenant_id, data.event_type, data.session_id, data.email, data.metadata
    )
    return {"status": "accepted"}
