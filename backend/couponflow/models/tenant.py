"""Tenant model: one business running coupon campaigns."""

from sqlalchemy import JSON, Boolean, Column, DateTime, String, func

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    # Case-sensitive, used verbatim in public URLs
    slug = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    logo_url = Column(String(2048), nullable=True)
    website_url = Column(String(2048), nullable=True)
    theme = Column(JSON, nullable=False, default=dict)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
