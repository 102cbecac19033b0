"""SurveyQuestion model and the closed set of question types."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    RANKED_CHOICE = "ranked_choice"
    NUMERIC = "numeric"
    RATING = "rating"
    SLIDER = "slider"
    NPS = "nps"
    LIKERT = "likert"
    SENTIMENT = "sentiment"
    YES_NO = "yes_no"
    OPEN_TEXT = "open_text"
    DATE = "date"
    TIME = "time"


CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE, QuestionType.RANKED_CHOICE})

# Scale types collapse to numeric answers; these bounds apply when the
# question declares none.
NUMERIC_DEFAULT_BOUNDS: dict[QuestionType, tuple[float | None, float | None]] = {
    QuestionType.NUMERIC: (None, None),
    QuestionType.RATING: (1, 5),
    QuestionType.LIKERT: (1, 5),
    QuestionType.SENTIMENT: (1, 5),
    QuestionType.NPS: (0, 10),
    QuestionType.SLIDER: (0, 100),
}


class SurveyQuestion(Base):
    __tablename__ = "survey_questions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # NULL means the question belongs to the tenant-wide survey
    coupon_id = Column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    question = Column(Text, nullable=False)
    type = Column(String(30), nullable=False)
    options = Column(JSON, nullable=False, default=list)
    order_index = Column(Integer, nullable=False, default=0)
    required = Column(Boolean, nullable=False, default=True)
    min_value = Column(Float, nullable=True)
    max_value = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
