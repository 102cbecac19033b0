"""Coupon and IssuedCoupon schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CouponCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    discount: str | None = Field(default=None, max_length=255)
    image_url: str | None = Field(default=None, max_length=2048)
    expires_at: datetime | None = None
    active: bool = True


class CouponUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    discount: str | None = Field(default=None, max_length=255)
    image_url: str | None = Field(default=None, max_length=2048)
    expires_at: datetime | None = None
    active: bool | None = None


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    title: str
    description: str | None = None
    discount: str | None = None
    image_url: str | None = None
    expires_at: datetime | None = None
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class IssuedCouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    email: str
    code: str
    status: str
    max_redemptions: int
    redemptions_count: int
    expires_at: datetime | None = None
    issued_at: datetime
    redeemed_at: datetime | None = None
    revoked_at: datetime | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class IssuedCouponListResponse(BaseModel):
    items: list[IssuedCouponResponse]
    total: int


class CodeValidationResponse(BaseModel):
    valid: bool
    error: str | None = None
    redeemed: bool = False
    issued_coupon: IssuedCouponResponse | None = None
