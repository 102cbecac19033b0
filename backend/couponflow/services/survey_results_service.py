"""Per-question aggregates for the admin results view."""

import logging
import statistics
from collections import Counter
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from couponflow.core.tenant_scope import scope
from couponflow.models.survey_question import NUMERIC_DEFAULT_BOUNDS, QuestionType
from couponflow.repositories.survey_question_repository import SurveyQuestionRepository
from couponflow.repositories.survey_response_repository import SurveyResponseRepository
from couponflow.schemas.survey import (
    NumericSummary,
    OptionCount,
    QuestionResultsResponse,
    TextAnswerOut,
)
from couponflow.schemas.survey_answer import load_answer

logger = logging.getLogger(__name__)


def _format_number(value: float) -> str:
    return f"{value:g}"


class SurveyResultsService:
    def __init__(self, db: Session):
        self.db = db

    def summarize(
        self,
        tenant_id: UUID,
        question_id: UUID,
        text_skip: int = 0,
        text_limit: int = 50,
    ) -> QuestionResultsResponse | None:
        """Aggregate every stored answer to one question. None if the question is unknown."""
        tenant_scope = scope(self.db, tenant_id)
        question = SurveyQuestionRepository(tenant_scope).get_by_id(question_id)
        if question is None:
            return None

        parsed: list[tuple[Any, Any]] = []
        for record, response in SurveyResponseRepository(tenant_scope).answers_for_question(
            question_id
        ):
            try:
                parsed.append((load_answer(record.answer), response))
            except ValidationError:
                logger.warning("Skipping unreadable answer %s for question %s", record.id, question_id)

        qtype = QuestionType(question.type)
        results = QuestionResultsResponse(
            question_id=question.id,
            question=question.question,
            type=question.type,
            total_responses=len(parsed),
        )
        answers = [answer for answer, _ in parsed]

        if qtype in (QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE, QuestionType.RANKED_CHOICE):
            counts: Counter[str] = Counter()
            for answer in answers:
                if qtype == QuestionType.SINGLE_CHOICE:
                    counts[answer.value] += 1
                elif qtype == QuestionType.MULTIPLE_CHOICE:
                    counts.update(answer.value)
                elif answer.value:
                    # Ranked questions count first places
                    counts[answer.value[0]] += 1
            results.option_counts = [
                OptionCount(option=option, count=counts.get(option, 0))
                for option in question.options or []
            ]
        elif qtype in NUMERIC_DEFAULT_BOUNDS:
            values = [float(answer.value) for answer in answers]
            if values:
                results.numeric = NumericSummary(
                    min=min(values),
                    max=max(values),
                    mean=statistics.fmean(values),
                    median=statistics.median(values),
                    distribution=dict(
                        sorted(Counter(_format_number(v) for v in values).items(), key=lambda kv: float(kv[0]))
                    ),
                )
        elif qtype == QuestionType.YES_NO:
            results.yes_count = sum(1 for answer in answers if answer.value is True)
            results.no_count = sum(1 for answer in answers if answer.value is False)
        elif qtype in (QuestionType.DATE, QuestionType.TIME):
            results.value_counts = dict(sorted(Counter(str(answer.value) for answer in answers).items()))
        elif qtype == QuestionType.OPEN_TEXT:
            page = parsed[text_skip : text_skip + text_limit]
            results.text_total = len(parsed)
            results.text_answers = [
                TextAnswerOut(response_id=response.id, value=answer.value, created_at=response.created_at)
                for answer, response in page
            ]

        return results
