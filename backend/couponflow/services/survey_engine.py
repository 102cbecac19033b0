"""Survey loading, answer validation and atomic storage."""

import logging
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from couponflow.core.exceptions import SurveyValidationError, TenantContextError
from couponflow.core.tenant_scope import scope
from couponflow.models.email_opt_in import OptInSource
from couponflow.models.shared import normalize_email
from couponflow.models.survey_question import NUMERIC_DEFAULT_BOUNDS, QuestionType, SurveyQuestion
from couponflow.repositories.email_opt_in_repository import EmailOptInRepository
from couponflow.repositories.survey_question_repository import SurveyQuestionRepository
from couponflow.repositories.survey_response_repository import SurveyResponseRepository
from couponflow.schemas.survey_answer import (
    BooleanAnswer,
    ChoiceAnswer,
    DateAnswer,
    MultiChoiceAnswer,
    NumberAnswer,
    RankedAnswer,
    TextAnswer,
    TimeAnswer,
    dump_answer,
)
from couponflow.services.opt_in_registry import OptInRegistry

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 5000

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


@dataclass
class Survey:
    tenant_id: UUID
    coupon_id: UUID | None
    questions: list[SurveyQuestion] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.questions


@dataclass
class SurveyContext:
    coupon_id: UUID | None = None
    email: str | None = None
    session_id: str | None = None


@dataclass
class StoredResponse:
    response_id: UUID
    answers: dict[UUID, Any]
    opt_in_recorded: bool


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, list):
        return not value
    return False


def _choice(question: SurveyQuestion, value: Any) -> ChoiceAnswer:
    if not isinstance(value, str) or value not in (question.options or []):
        raise ValueError("Choose one of the offered options")
    return ChoiceAnswer(value=value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError("Expected a list of options")
    return value


def _multi_choice(question: SurveyQuestion, value: Any) -> MultiChoiceAnswer:
    selected = _string_list(value)
    if not selected:
        raise ValueError("Choose at least one option")
    options = question.options or []
    if any(item not in options for item in selected):
        raise ValueError("Choose only offered options")
    if len(set(selected)) != len(selected):
        raise ValueError("Each option may be chosen once")
    return MultiChoiceAnswer(value=selected)


def _ranked(question: SurveyQuestion, value: Any) -> RankedAnswer:
    ranking = _string_list(value)
    options = question.options or []
    if len(ranking) != len(options) or set(ranking) != set(options):
        raise ValueError("Rank every option exactly once")
    return RankedAnswer(value=ranking)


def _numeric_bounds(question: SurveyQuestion) -> tuple[float | None, float | None]:
    default_low, default_high = NUMERIC_DEFAULT_BOUNDS[QuestionType(question.type)]
    low = question.min_value if question.min_value is not None else default_low
    high = question.max_value if question.max_value is not None else default_high
    return low, high


def _number(question: SurveyQuestion, value: Any) -> NumberAnswer:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError("Enter a number")
    low, high = _numeric_bounds(question)
    if low is not None and value < low:
        raise ValueError(f"Must be at least {low:g}")
    if high is not None and value > high:
        raise ValueError(f"Must be at most {high:g}")
    return NumberAnswer(value=value)


def _yes_no(question: SurveyQuestion, value: Any) -> BooleanAnswer:
    if not isinstance(value, bool):
        raise ValueError("Answer yes or no")
    return BooleanAnswer(value=value)


def _text(question: SurveyQuestion, value: Any) -> TextAnswer:
    if not isinstance(value, str):
        raise ValueError("Expected text")
    text = value.strip()
    if len(text) > MAX_TEXT_LENGTH:
        raise ValueError(f"Keep it under {MAX_TEXT_LENGTH} characters")
    return TextAnswer(value=text)


def _date(question: SurveyQuestion, value: Any) -> DateAnswer:
    if isinstance(value, str) and _DATE_RE.match(value):
        try:
            return DateAnswer(value=date.fromisoformat(value))
        except ValueError:
            pass
    raise ValueError("Enter a date as YYYY-MM-DD")


def _time(question: SurveyQuestion, value: Any) -> TimeAnswer:
    match = _TIME_RE.match(value) if isinstance(value, str) else None
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        second = int(match.group(3) or 0)
        if hour < 24 and minute < 60 and second < 60:
            return TimeAnswer(value=f"{hour:02d}:{minute:02d}")
    raise ValueError("Enter a time as HH:MM")


_VALIDATORS: dict[QuestionType, Callable[[SurveyQuestion, Any], Any]] = {
    QuestionType.SINGLE_CHOICE: _choice,
    QuestionType.MULTIPLE_CHOICE: _multi_choice,
    QuestionType.RANKED_CHOICE: _ranked,
    QuestionType.YES_NO: _yes_no,
    QuestionType.OPEN_TEXT: _text,
    QuestionType.DATE: _date,
    QuestionType.TIME: _time,
    **{qtype: _number for qtype in NUMERIC_DEFAULT_BOUNDS},
}


class SurveyEngine:
    def __init__(self, db: Session):
        self.db = db
        self.opt_ins = OptInRegistry(db)

    def load_survey(self, tenant_id: UUID, coupon_id: UUID | None = None) -> Survey:
        """Active questions for a coupon, falling back to the tenant-wide set.

        A coupon with its own questions never shows the tenant-wide ones.
        """
        repo = SurveyQuestionRepository(scope(self.db, tenant_id))
        if coupon_id is not None:
            questions = repo.get_active(coupon_id)
            if questions:
                return Survey(tenant_id=tenant_id, coupon_id=coupon_id, questions=questions)
        return Survey(tenant_id=tenant_id, coupon_id=coupon_id, questions=repo.get_active(None))

    def validate_answers(
        self,
        questions: list[SurveyQuestion],
        raw_answers: Mapping[Any, Any],
    ) -> dict[UUID, Any]:
        """Check every answer against its question and return typed answers.

        All problems are collected and raised together as a
        :class:`SurveyValidationError` keyed by question id.
        """
        by_id = {str(question.id): question for question in questions}
        provided = {str(key): value for key, value in raw_answers.items()}
        errors: dict[str, str] = {}
        answers: dict[UUID, Any] = {}

        for key in provided:
            if key not in by_id:
                errors[key] = "Unknown question"

        for key, question in by_id.items():
            value = provided.get(key)
            if _is_blank(value):
                if question.required:
                    errors[key] = "This question is required"
                continue

            try:
                validator = _VALIDATORS[QuestionType(question.type)]
            except (KeyError, ValueError):
                logger.error("Question %s has unsupported type %r", key, question.type)
                errors[key] = "Unsupported question type"
                continue

            try:
                answers[question.id] = validator(question, value)  # type: ignore[index]
            except ValueError as exc:
                errors[key] = str(exc)

        if errors:
            raise SurveyValidationError(errors)
        return answers

    def validate_and_store(
        self,
        tenant_id: UUID,
        context: SurveyContext,
        raw_answers: Mapping[Any, Any],
    ) -> StoredResponse:
        """Validate, then store the response, its answers and any opt-in together.

        Nothing is written if a single answer is invalid.
        """
        survey = self.load_survey(tenant_id, context.coupon_id)
        answers = self.validate_answers(survey.questions, raw_answers)
        email = normalize_email(context.email) if context.email else None

        try:
            return self._store(tenant_id, context, email, answers, with_opt_in=email is not None)
        except IntegrityError:
            if email is None:
                raise
            # Another request recorded the same opt-in first
            logger.info("Opt-in for tenant %s recorded concurrently, storing survey alone", tenant_id)
            return self._store(tenant_id, context, email, answers, with_opt_in=False)

    def _store(
        self,
        tenant_id: UUID,
        context: SurveyContext,
        email: str | None,
        answers: dict[UUID, Any],
        with_opt_in: bool,
    ) -> StoredResponse:
        tenant_scope = scope(self.db, tenant_id)
        opt_in_recorded = False
        try:
            response = SurveyResponseRepository(tenant_scope).stage(
                coupon_id=context.coupon_id,
                email=email,
                session_id=context.session_id,
                answers={question_id: dump_answer(answer) for question_id, answer in answers.items()},
            )
            response_id = response.id
            if with_opt_in and email is not None:
                if EmailOptInRepository(tenant_scope).get_by_email(email) is None:
                    self.opt_ins.stage_opt_in(tenant_scope, email, source=OptInSource.SURVEY)
                    opt_in_recorded = True
            tenant_scope.commit()
        except (SQLAlchemyError, TenantContextError):
            tenant_scope.rollback()
            raise

        logger.info(
            "Stored survey response %s for tenant %s (%d answers)",
            response_id,
            tenant_id,
            len(answers),
        )
        return StoredResponse(
            response_id=response_id,  # type: ignore[arg-type]
            answers=answers,
            opt_in_recorded=opt_in_recorded,
        )
