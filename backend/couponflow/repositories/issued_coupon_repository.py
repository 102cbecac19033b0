"""IssuedCoupon repository for data access."""

from datetime import datetime
from uuid import UUID

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.issued_coupon import IssuedCoupon, IssuedCouponStatus


class IssuedCouponRepository:
    """Repository for IssuedCoupon model."""

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def get_by_id(self, issued_coupon_id: UUID) -> IssuedCoupon | None:
        return self.scope.get(IssuedCoupon, issued_coupon_id)

    def get_for_email(self, coupon_id: UUID, email: str) -> IssuedCoupon | None:
        return (
            self.scope.query(IssuedCoupon)
            .filter(IssuedCoupon.coupon_id == coupon_id, IssuedCoupon.email == email)
            .first()
        )

    def get_by_code(self, code: str) -> IssuedCoupon | None:
        return self.scope.query(IssuedCoupon).filter(IssuedCoupon.code == code).first()

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        coupon_id: UUID | None = None,
        status: IssuedCouponStatus | None = None,
    ) -> list[IssuedCoupon]:
        query = self.scope.query(IssuedCoupon)
        if coupon_id:
            query = query.filter(IssuedCoupon.coupon_id == coupon_id)
        if status:
            query = query.filter(IssuedCoupon.status == status.value)
        return query.order_by(IssuedCoupon.issued_at.desc()).offset(skip).limit(limit).all()

    def count(self, coupon_id: UUID | None = None, status: IssuedCouponStatus | None = None) -> int:
        query = self.scope.query(IssuedCoupon)
        if coupon_id:
            query = query.filter(IssuedCoupon.coupon_id == coupon_id)
        if status:
            query = query.filter(IssuedCoupon.status == status.value)
        return query.count()

    def insert(self, issued: IssuedCoupon) -> IssuedCoupon:
        """Insert and commit. Uniqueness violations propagate as IntegrityError."""
        self.scope.add(issued)
        self.scope.commit()
        self.scope.refresh(issued)
        return issued

    def mark_overdue_expired(self, now: datetime) -> int:
        """Flip this tenant's past-due ``issued`` codes to ``expired`` and commit."""
        count = self.scope.update(
            IssuedCoupon,
            IssuedCoupon.status == IssuedCouponStatus.ISSUED.value,
            IssuedCoupon.expires_at.is_not(None),
            IssuedCoupon.expires_at < now,
            values={"status": IssuedCouponStatus.EXPIRED.value},
        )
        self.scope.commit()
        return count
