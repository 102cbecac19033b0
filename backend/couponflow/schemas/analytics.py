from typing import Any

from pydantic import BaseModel, EmailStr, Field

from couponflow.models.analytics_event import EventType


class TrackEventRequest(BaseModel):
    event_type: EventType
    session_id: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnalyticsSummaryResponse(BaseModel):
    # Raw event counts
    page_visits: int
    survey_completions: int
    code_copies: int
    coupon_downloads: int
    wallet_adds: int
    coupons_issued: int
    # Distinct visitors, by email or else session id
    unique_visitors: int
    unique_survey_takers: int
    unique_action_takers: int
