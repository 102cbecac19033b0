from couponflow.schemas.analytics import TrackEventRequest
from couponflow.schemas.coupon import (
    CodeValidationResponse,
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    IssuedCouponListResponse,
    IssuedCouponResponse,
)
from couponflow.schemas.opt_in import OptInRequest, OptInResponse
from couponflow.schemas.qualification import QualificationResponse
from couponflow.schemas.survey import (
    AnswerIn,
    CouponSurveySubmission,
    QuestionResultsResponse,
    StoredResponseOut,
    SurveyOut,
    SurveyQuestionCreate,
    SurveyQuestionResponse,
    SurveySubmission,
)
from couponflow.schemas.tenant import (
    TenantCreate,
    TenantPageResponse,
    TenantResponse,
    TenantUpdate,
)

__all__ = [
    "AnswerIn",
    "CodeValidationResponse",
    "CouponCreate",
    "CouponResponse",
    "CouponSurveySubmission",
    "CouponUpdate",
    "IssuedCouponListResponse",
    "IssuedCouponResponse",
    "OptInRequest",
    "OptInResponse",
    "QualificationResponse",
    "QuestionResultsResponse",
    "StoredResponseOut",
    "SurveyOut",
    "SurveyQuestionCreate",
    "SurveyQuestionResponse",
    "SurveySubmission",
    "TenantCreate",
    "TenantPageResponse",
    "TenantResponse",
    "TenantUpdate",
    "TrackEventRequest",
]
