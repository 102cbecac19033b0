"""IssuedCoupon model: a unique code bound to one (tenant, coupon, email)."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid, utc_now


class IssuedCouponStatus(str, Enum):
    ISSUED = "issued"
    REDEEMED = "redeemed"
    REVOKED = "revoked"
    EXPIRED = "expired"


class IssuedCoupon(Base):
    __tablename__ = "issued_coupons"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "coupon_id", "email", name="uq_issued_coupons_tenant_coupon_email"
        ),
        UniqueConstraint(
            "tenant_id", "coupon_id", "code", name="uq_issued_coupons_tenant_coupon_code"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    coupon_id = Column(
        UUIDType,
        ForeignKey("coupons.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    email = Column(String(320), nullable=False)
    code = Column(String(64), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=IssuedCouponStatus.ISSUED.value)
    max_redemptions = Column(Integer, nullable=False, default=1)
    redemptions_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    issued_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    extra = Column(JSON, nullable=False, default=dict)
