"""SurveyQuestion repository for data access."""

from uuid import UUID

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.survey_question import SurveyQuestion
from couponflow.schemas.survey import SurveyQuestionCreate


class SurveyQuestionRepository:
    """Repository for SurveyQuestion model."""

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def get_active(self, coupon_id: UUID | None) -> list[SurveyQuestion]:
        """Active questions attached to ``coupon_id``, or the tenant-wide set for None."""
        query = self.scope.query(SurveyQuestion).filter(SurveyQuestion.is_active.is_(True))
        if coupon_id is None:
            query = query.filter(SurveyQuestion.coupon_id.is_(None))
        else:
            query = query.filter(SurveyQuestion.coupon_id == coupon_id)
        return query.order_by(SurveyQuestion.order_index.asc(), SurveyQuestion.id.asc()).all()

    def get_all(self, coupon_id: UUID | None = None) -> list[SurveyQuestion]:
        query = self.scope.query(SurveyQuestion)
        if coupon_id is not None:
            query = query.filter(SurveyQuestion.coupon_id == coupon_id)
        return query.order_by(SurveyQuestion.order_index.asc()).all()

    def get_by_id(self, question_id: UUID) -> SurveyQuestion | None:
        return self.scope.get(SurveyQuestion, question_id)

    def create(self, data: SurveyQuestionCreate) -> SurveyQuestion:
        question = SurveyQuestion(**data.model_dump(exclude={"type"}), type=data.type.value)
        self.scope.add(question)
        self.scope.commit()
        self.scope.refresh(question)
        return question
