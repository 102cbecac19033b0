"""Admin API endpoints.

Every route requires the ``X-Admin-Key`` header (see ``core.auth``). Admin
routes resolve tenants whether or not they are active, so a deactivated
tenant can still be inspected and its codes validated.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from couponflow.core.database import get_db
from couponflow.core.exceptions import CouponFlowError
from couponflow.core.tenant_scope import scope
from couponflow.models.analytics_event import EventType
from couponflow.models.coupon import Coupon
from couponflow.models.email_opt_in import OptInSource
from couponflow.models.issued_coupon import IssuedCoupon, IssuedCouponStatus
from couponflow.models.survey_question import SurveyQuestion
from couponflow.models.tenant import Tenant
from couponflow.repositories.analytics_event_repository import AnalyticsEventRepository
from couponflow.repositories.coupon_repository import CouponRepository
from couponflow.repositories.email_opt_in_repository import EmailOptInRepository
from couponflow.repositories.survey_question_repository import SurveyQuestionRepository
from couponflow.repositories.tenant_repository import TenantRepository
from couponflow.routers.errors import to_http_exception
from couponflow.schemas.analytics import AnalyticsSummaryResponse
from couponflow.schemas.coupon import (
    CodeValidationResponse,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    IssuedCouponListResponse,
    IssuedCouponResponse,
)
from couponflow.schemas.opt_in import EmailOptInListResponse, EmailOptInResponse
from couponflow.schemas.survey import (
    QuestionResultsResponse,
    SurveyQuestionCreate,
    SurveyQuestionResponse,
)
from couponflow.schemas.tenant import TenantCreate, TenantResponse, TenantUpdate
from couponflow.services.coupon_issuance import CouponIssuanceEngine
from couponflow.services.survey_results_service import SurveyResultsService
from couponflow.services.tenant_resolver import TenantResolver

tenants_router = APIRouter()
router = APIRouter()


def _tenant(slug: str, db: Session) -> Tenant:
    try:
        return TenantResolver(db).fetch_active(slug)
    except CouponFlowError as exc:
        raise to_http_exception(exc) from exc


@tenants_router.post(
    "/tenants",
    response_model=TenantResponse,
    status_code=201,
    summary="Create tenant",
    responses={409: {"description": "Slug already taken"}},
)
async def create_tenant(data: TenantCreate, db: Session = Depends(get_db)) -> Tenant:
    repo = TenantRepository(db)
    if repo.get_by_slug(data.slug):
        raise HTTPException(status_code=409, detail="Tenant with this slug already exists")
    try:
        return repo.create(data)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Tenant with this slug already exists") from None


@tenants_router.patch(
    "/tenants/{slug}",
    response_model=TenantResponse,
    summary="Update or deactivate tenant",
    responses={404: {"description": "Tenant not found"}},
)
async def update_tenant(slug: str, data: TenantUpdate, db: Session = Depends(get_db)) -> Tenant:
    tenant = TenantRepository(db).update(slug, data)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.post(
    "/{slug}/coupons",
    response_model=CouponResponse,
    status_code=201,
    summary="Create coupon",
    responses={404: {"description": "Tenant not found"}},
)
async def create_coupon(slug: str, data: CouponCreate, db: Session = Depends(get_db)) -> Coupon:
    tenant = _tenant(slug, db)
    return CouponRepository(scope(db, tenant.id)).create(data)


@router.get(
    "/{slug}/coupons",
    response_model=list[CouponResponse],
    summary="List coupons",
    responses={404: {"description": "Tenant not found"}},
)
async def list_coupons(
    slug: str,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[Coupon]:
    tenant = _tenant(slug, db)
    return CouponRepository(scope(db, tenant.id)).get_all(skip=skip, limit=limit)


@router.patch(
    "/{slug}/coupons/{coupon_id}",
    response_model=CouponResponse,
    summary="Update coupon",
    responses={404: {"description": "Tenant or coupon not found"}},
)
async def update_coupon(
    slug: str,
    coupon_id: UUID,
    data: CouponUpdate,
    db: Session = Depends(get_db),
) -> Coupon:
    tenant = _tenant(slug, db)
    coupon = CouponRepository(scope(db, tenant.id)).update(coupon_id, data)
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")
    return coupon


@router.post(
    "/{slug}/questions",
    response_model=SurveyQuestionResponse,
    status_code=201,
    summary="Create survey question",
    responses={404: {"description": "Tenant or coupon not found"}},
)
async def create_question(
    slug: str,
    data: SurveyQuestionCreate,
    db: Session = Depends(get_db),
) -> SurveyQuestion:
    tenant = _tenant(slug, db)
    tenant_scope = scope(db, tenant.id)
    if data.coupon_id and not CouponRepository(tenant_scope).get_by_id(data.coupon_id):
        raise HTTPException(status_code=404, detail="Coupon not found")
    return SurveyQuestionRepository(tenant_scope).create(data)


@router.get(
    "/{slug}/questions",
    response_model=list[SurveyQuestionResponse],
    summary="List survey questions",
    responses={404: {"description": "Tenant not found"}},
)
async def list_questions(
    slug: str,
    coupon_id: UUID | None = None,
    db: Session = Depends(get_db),
) -> list[SurveyQuestion]:
    tenant = _tenant(slug, db)
    return SurveyQuestionRepository(scope(db, tenant.id)).get_all(coupon_id=coupon_id)


@router.get(
    "/{slug}/questions/{question_id}/results",
    response_model=QuestionResultsResponse,
    summary="Aggregated answers for a question",
    responses={404: {"description": "Tenant or question not found"}},
)
async def question_results(
    slug: str,
    question_id: UUID,
    text_skip: int = Query(default=0, ge=0),
    text_limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> QuestionResultsResponse:
    tenant = _tenant(slug, db)
    results = SurveyResultsService(db).summarize(
        tenant.id, question_id, text_skip=text_skip, text_limit=text_limit
    )
    if results is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return results


@router.get(
    "/{slug}/issued",
    response_model=IssuedCouponListResponse,
    summary="List issued coupon codes",
    responses={404: {"description": "Tenant not found"}},
)
async def list_issued(
    slug: str,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    coupon_id: UUID | None = None,
    status: IssuedCouponStatus | None = None,
    db: Session = Depends(get_db),
) -> IssuedCouponListResponse:
    tenant = _tenant(slug, db)
    engine = CouponIssuanceEngine(db)
    total = engine.count_issued(tenant.id, coupon_id=coupon_id, status=status)
    response.headers["X-Total-Count"] = str(total)
    items = engine.list_issued(tenant.id, skip=skip, limit=limit, coupon_id=coupon_id, status=status)
    return IssuedCouponListResponse(
        items=[IssuedCouponResponse.model_validate(item) for item in items],
        total=total,
    )


@router.post(
    "/{slug}/codes/{code}/validate",
    response_model=CodeValidationResponse,
    summary="Validate and optionally redeem a code",
    responses={404: {"description": "Tenant not found"}},
)
async def validate_code(
    slug: str,
    code: str,
    redeem: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> CodeValidationResponse:
    tenant = _tenant(slug, db)
    result = CouponIssuanceEngine(db).validate_code(tenant.id, code, redeem=redeem)
    return CodeValidationResponse(
        valid=result.valid,
        error=result.error,
        redeemed=result.redeemed,
        issued_coupon=(
            IssuedCouponResponse.model_validate(result.issued_coupon)
            if result.issued_coupon is not None
            else None
        ),
    )


@router.post(
    "/{slug}/issued/{issued_coupon_id}/revoke",
    response_model=IssuedCouponResponse,
    summary="Revoke an issued code",
    responses={404: {"description": "Tenant or issued coupon not found"}},
)
async def revoke_issued(
    slug: str,
    issued_coupon_id: UUID,
    db: Session = Depends(get_db),
) -> IssuedCoupon:
    tenant = _tenant(slug, db)
    issued = CouponIssuanceEngine(db).revoke(tenant.id, issued_coupon_id)
    if not issued:
        raise HTTPException(status_code=404, detail="Issued coupon not found")
    return issued


@router.get(
    "/{slug}/opt-ins",
    response_model=EmailOptInListResponse,
    summary="List opted-in emails",
    responses={404: {"description": "Tenant not found"}},
)
async def list_opt_ins(
    slug: str,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    source: OptInSource | None = None,
    db: Session = Depends(get_db),
) -> EmailOptInListResponse:
    """Newest consent first."""
    tenant = _tenant(slug, db)
    repo = EmailOptInRepository(scope(db, tenant.id))
    total = repo.count(source=source)
    response.headers["X-Total-Count"] = str(total)
    return EmailOptInListResponse(
        items=[
            EmailOptInResponse.model_validate(item)
            for item in repo.get_all(skip=skip, limit=limit, source=source)
        ],
        total=total,
    )


_ACTION_EVENTS = (EventType.CODE_COPY, EventType.COUPON_DOWNLOAD, EventType.WALLET_ADD)


@router.get(
    "/{slug}/analytics/summary",
    response_model=AnalyticsSummaryResponse,
    summary="Get analytics summary",
    responses={404: {"description": "Tenant not found"}},
)
async def analytics_summary(slug: str, db: Session = Depends(get_db)) -> AnalyticsSummaryResponse:
    tenant = _tenant(slug, db)
    repo = AnalyticsEventRepository(scope(db, tenant.id))
    counts = repo.count_by_type()
    return AnalyticsSummaryResponse(
        page_visits=counts.get(EventType.PAGE_VISIT.value, 0),
        survey_completions=counts.get(EventType.SURVEY_COMPLETION.value, 0),
        code_copies=counts.get(EventType.CODE_COPY.value, 0),
        coupon_downloads=counts.get(EventType.COUPON_DOWNLOAD.value, 0),
        wallet_adds=counts.get(EventType.WALLET_ADD.value, 0),
        coupons_issued=counts.get(EventType.COUPON_ISSUED.value, 0),
        unique_visitors=repo.count_unique_visitors([EventType.PAGE_VISIT]),
        unique_survey_takers=repo.count_unique_visitors([EventType.SURVEY_COMPLETION]),
        unique_action_takers=repo.count_unique_visitors(_ACTION_EVENTS),
    )
