"""SurveyResponse header and its per-question answer rows."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid


class SurveyResponse(Base):
    __tablename__ = "survey_responses"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    coupon_id = Column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email = Column(String(320), nullable=True, index=True)
    session_id = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SurveyAnswerRecord(Base):
    __tablename__ = "survey_answers"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    response_id = Column(
        UUIDType,
        ForeignKey("survey_responses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        UUIDType,
        ForeignKey("survey_questions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # {"kind": ..., "value": ...}
    answer = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
