"""Coupon repository for data access."""

from uuid import UUID

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.coupon import Coupon
from couponflow.schemas.coupon import CouponCreate, CouponUpdate


class CouponRepository:
    """Repository for Coupon model."""

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def get_all(self, skip: int = 0, limit: int = 100, active_only: bool = False) -> list[Coupon]:
        query = self.scope.query(Coupon)
        if active_only:
            query = query.filter(Coupon.active.is_(True))
        return query.order_by(Coupon.created_at.desc()).offset(skip).limit(limit).all()

    def get_by_id(self, coupon_id: UUID) -> Coupon | None:
        return self.scope.get(Coupon, coupon_id)

    def create(self, data: CouponCreate) -> Coupon:
        coupon = Coupon(**data.model_dump())
        self.scope.add(coupon)
        self.scope.commit()
        self.scope.refresh(coupon)
        return coupon

    def update(self, coupon_id: UUID, data: CouponUpdate) -> Coupon | None:
        coupon = self.get_by_id(coupon_id)
        if not coupon:
            return None

        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(coupon, key, value)

        self.scope.commit()
        self.scope.refresh(coupon)
        return coupon
