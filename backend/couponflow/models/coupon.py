"""Coupon model: an offer a tenant hands out to qualified visitors."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, func

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Free-form descriptor shown to visitors, e.g. "20% off" or "Free coffee"
    discount = Column(String(255), nullable=True)
    image_url = Column(String(2048), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
