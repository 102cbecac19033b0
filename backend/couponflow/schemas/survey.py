"""Survey question, submission and results schemas."""

from datetime import datetime
from typing import Any, Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from couponflow.models.survey_question import CHOICE_TYPES, QuestionType


class SurveyQuestionCreate(BaseModel):
    question: str = Field(min_length=1)
    type: QuestionType
    coupon_id: UUID | None = None
    options: list[str] = Field(default_factory=list)
    order_index: int = 0
    required: bool = True
    min_value: float | None = None
    max_value: float | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def validate_options(self) -> Self:
        """Choice questions need at least two distinct options."""
        if self.type in CHOICE_TYPES:
            if len(self.options) < 2:
                raise ValueError(f"{self.type.value} questions need at least two options")
            if len(set(self.options)) != len(self.options):
                raise ValueError("options must be unique")
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        return self


class SurveyQuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID | None = None
    question: str
    type: str
    options: list[str] = Field(default_factory=list)
    order_index: int
    required: bool
    min_value: float | None = None
    max_value: float | None = None
    is_active: bool


class SurveyOut(BaseModel):
    coupon_id: UUID | None = None
    questions: list[SurveyQuestionResponse]


class AnswerIn(BaseModel):
    question_id: UUID
    value: Any = None


class SurveySubmission(BaseModel):
    email: EmailStr | None = None
    session_id: str | None = Field(default=None, max_length=255)
    answers: list[AnswerIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def reject_duplicate_answers(self) -> Self:
        seen: set[UUID] = set()
        for answer in self.answers:
            if answer.question_id in seen:
                raise ValueError(f"Question {answer.question_id} is answered more than once")
            seen.add(answer.question_id)
        return self


class CouponSurveySubmission(SurveySubmission):
    email: EmailStr


class StoredResponseOut(BaseModel):
    response_id: UUID
    answer_count: int
    opt_in_recorded: bool


class OptionCount(BaseModel):
    option: str
    count: int


class NumericSummary(BaseModel):
    min: float
    max: float
    mean: float
    median: float
    distribution: dict[str, int]


class TextAnswerOut(BaseModel):
    response_id: UUID
    value: str
    created_at: datetime | None = None


class QuestionResultsResponse(BaseModel):
    question_id: UUID
    question: str
    type: str
    total_responses: int
    option_counts: list[OptionCount] | None = None
    numeric: NumericSummary | None = None
    yes_count: int | None = None
    no_count: int | None = None
    value_counts: dict[str, int] | None = None
    text_answers: list[TextAnswerOut] | None = None
    text_total: int | None = None
