"""Tagged answer variants.

Stored answers are JSON objects ``{"kind": ..., "value": ...}``; the ``kind``
tag selects the variant when reading them back.
"""

from datetime import date
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class ChoiceAnswer(BaseModel):
    kind: Literal["choice"] = "choice"
    value: str


class MultiChoiceAnswer(BaseModel):
    kind: Literal["multi_choice"] = "multi_choice"
    value: list[str]


class RankedAnswer(BaseModel):
    kind: Literal["ranked"] = "ranked"
    value: list[str]


class NumberAnswer(BaseModel):
    kind: Literal["number"] = "number"
    value: int | float


class BooleanAnswer(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class TextAnswer(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class DateAnswer(BaseModel):
    kind: Literal["date"] = "date"
    value: date


class TimeAnswer(BaseModel):
    kind: Literal["time"] = "time"
    value: str = Field(pattern=r"^\d{2}:\d{2}$")


SurveyAnswer = Annotated[
    ChoiceAnswer
    | MultiChoiceAnswer
    | RankedAnswer
    | NumberAnswer
    | BooleanAnswer
    | TextAnswer
    | DateAnswer
    | TimeAnswer,
    Field(discriminator="kind"),
]

survey_answer_adapter: TypeAdapter[Any] = TypeAdapter(SurveyAnswer)


def dump_answer(answer: Any) -> dict[str, Any]:
    return answer.model_dump(mode="json")


def load_answer(data: dict[str, Any]) -> Any:
    return survey_answer_adapter.validate_python(data)
