"""EmailOptIn model: a visitor's consent to hear from a tenant."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, func

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid, utc_now


class OptInSource(str, Enum):
    SURVEY = "survey"
    DIRECT = "direct"
    OAUTH = "oauth"


class EmailOptIn(Base):
    __tablename__ = "email_opt_ins"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_email_opt_ins_tenant_id_email"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    email = Column(String(320), nullable=False)
    consent_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    source = Column(String(20), nullable=False, default=OptInSource.DIRECT.value)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
