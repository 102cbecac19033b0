from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr


class OptInRequest(BaseModel):
    email: EmailStr
    # Survey opt-ins are only ever recorded with the survey itself
    source: Literal["direct", "oauth"] = "direct"


class OptInResponse(BaseModel):
    success: bool
    message: str


class EmailOptInResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    source: str
    consent_at: datetime


class EmailOptInListResponse(BaseModel):
    items: list[EmailOptInResponse]
    total: int
