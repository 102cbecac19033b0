"""SurveyResponse repository for data access."""

from typing import Any
from uuid import UUID

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.survey_response import SurveyAnswerRecord, SurveyResponse


class SurveyResponseRepository:
    """Repository for SurveyResponse and SurveyAnswerRecord models.

    ``stage`` only adds rows to the session; the caller owns the transaction.
    """

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def stage(
        self,
        coupon_id: UUID | None,
        email: str | None,
        session_id: str | None,
        answers: dict[UUID, dict[str, Any]],
    ) -> SurveyResponse:
        response = SurveyResponse(coupon_id=coupon_id, email=email, session_id=session_id)
        self.scope.add(response)
        self.scope.flush()
        for question_id, answer in answers.items():
            self.scope.add(
                SurveyAnswerRecord(
                    response_id=response.id,
                    question_id=question_id,
                    answer=answer,
                )
            )
        return response

    def answers_for_question(self, question_id: UUID) -> list[tuple[SurveyAnswerRecord, SurveyResponse]]:
        query = (
            self.scope.query(SurveyAnswerRecord)
            .join(SurveyResponse, SurveyResponse.id == SurveyAnswerRecord.response_id)
            .filter(SurveyAnswerRecord.question_id == question_id)
            .add_entity(SurveyResponse)
            .order_by(SurveyResponse.created_at.desc())
        )
        return [(record, response) for record, response in query.all()]
