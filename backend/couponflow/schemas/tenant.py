from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class TenantCreate(BaseModel):
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=255)
    logo_url: str | None = Field(default=None, max_length=2048)
    website_url: str | None = Field(default=None, max_length=2048)
    theme: dict[str, Any] = Field(default_factory=dict)
    active: bool = True


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slug: str
    name: str
    logo_url: str | None = None
    website_url: str | None = None
    theme: dict[str, Any] = Field(default_factory=dict)
    active: bool
    created_at: datetime | None = None


class TenantPageResponse(BaseModel):
    """Landing page payload; ``tenant`` is shown even when deactivated."""

    state: Literal["active", "deactivated"]
    tenant: TenantResponse


class TenantUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    logo_url: str | None = Field(default=None, max_length=2048)
    website_url: str | None = Field(default=None, max_length=2048)
    theme: dict[str, Any] | None = None
    active: bool | None = None
