from couponflow.models.analytics_event import AnalyticsEvent, EventType
from couponflow.models.coupon import Coupon
from couponflow.models.email_opt_in import EmailOptIn, OptInSource
from couponflow.models.issued_coupon import IssuedCoupon, IssuedCouponStatus
from couponflow.models.survey_question import QuestionType, SurveyQuestion
from couponflow.models.survey_response import SurveyAnswerRecord, SurveyResponse
from couponflow.models.tenant import Tenant

__all__ = [
    "AnalyticsEvent",
    "Coupon",
    "EmailOptIn",
    "EventType",
    "IssuedCoupon",
    "IssuedCouponStatus",
    "OptInSource",
    "QuestionType",
    "SurveyAnswerRecord",
    "SurveyQuestion",
    "SurveyResponse",
    "Tenant",
]
