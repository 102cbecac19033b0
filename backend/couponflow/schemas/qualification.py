from typing import Literal

from pydantic import BaseModel

from couponflow.schemas.coupon import IssuedCouponResponse
from couponflow.schemas.survey import SurveyOut

QualificationStateName = Literal[
    "awaiting_email",
    "survey_required",
    "completed",
    "deactivated",
]


class QualificationResponse(BaseModel):
    state: QualificationStateName
    redirect_to: str | None = None
    survey: SurveyOut | None = None
    issued_coupon: IssuedCouponResponse | None = None
    message: str | None = None
