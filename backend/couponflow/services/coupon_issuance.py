"""Coupon issuance: one unique code per (tenant, coupon, email), plus redemption.

Issuance is idempotent. The first request for a triple mints a code; every
later request, including one that loses an insert race, gets the same code
back. Correctness rests on the unique constraint on the triple, not on locks.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from couponflow.core.config import settings
from couponflow.core.exceptions import CouponNotFound, CouponUnavailable, IssuanceExhausted
from couponflow.core.tenant_scope import scope
from couponflow.models.coupon import Coupon
from couponflow.models.issued_coupon import IssuedCoupon, IssuedCouponStatus
from couponflow.models.shared import as_utc, normalize_email, utc_now
from couponflow.repositories.coupon_repository import CouponRepository
from couponflow.repositories.issued_coupon_repository import IssuedCouponRepository
from couponflow.repositories.tenant_repository import TenantRepository

logger = logging.getLogger(__name__)

# Crockford base32: no I, L, O or U
CODE_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def generate_code(prefix: str | None = None, length: int | None = None) -> str:
    """Generate an unguessable coupon code like ``CPN-7K2M9QX4TB``."""
    prefix = settings.COUPON_CODE_PREFIX if prefix is None else prefix
    length = length or settings.COUPON_CODE_LENGTH
    body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
    return f"{prefix}-{body}" if prefix else body


def ensure_issuable(coupon: Coupon) -> datetime | None:
    """Raise CouponUnavailable unless new codes may be minted for ``coupon``.

    Returns the coupon's expiry as an aware datetime.
    """
    if not coupon.active:
        raise CouponUnavailable(coupon.id, "inactive")  # type: ignore[arg-type]
    expires_at = as_utc(coupon.expires_at)  # type: ignore[arg-type]
    if expires_at is not None and expires_at <= utc_now():
        raise CouponUnavailable(coupon.id, "expired")  # type: ignore[arg-type]
    return expires_at


@dataclass
class CodeValidation:
    valid: bool
    error: str | None = None
    issued_coupon: IssuedCoupon | None = None
    redeemed: bool = False


class CouponIssuanceEngine:
    def __init__(
        self,
        db: Session,
        code_generator: Callable[[], str] | None = None,
        max_attempts: int | None = None,
    ):
        self.db = db
        self.code_generator = code_generator or generate_code
        self.max_attempts = max_attempts or settings.COUPON_CODE_MAX_ATTEMPTS

    def fetch_existing(self, tenant_id: UUID, coupon_id: UUID, email: str) -> IssuedCoupon | None:
        repo = IssuedCouponRepository(scope(self.db, tenant_id))
        return repo.get_for_email(coupon_id, normalize_email(email))

    def issue_or_fetch(self, tenant_id: UUID, coupon_id: UUID, email: str) -> IssuedCoupon:
        """Return the code for this triple, minting one if none exists.

        Raises:
            CouponNotFound: the coupon does not exist in this tenant.
            CouponUnavailable: no code exists yet and the coupon is inactive or expired.
            IssuanceExhausted: every generated code collided with an existing one.
        """
        email = normalize_email(email)
        tenant_scope = scope(self.db, tenant_id)
        repo = IssuedCouponRepository(tenant_scope)

        existing = repo.get_for_email(coupon_id, email)
        if existing is not None:
            return existing

        coupon = CouponRepository(tenant_scope).get_by_id(coupon_id)
        if coupon is None:
            raise CouponNotFound(coupon_id)
        expires_at = ensure_issuable(coupon)

        extra = {"title": coupon.title, "discount": coupon.discount}

        for attempt in range(1, self.max_attempts + 1):
            issued = IssuedCoupon(
                coupon_id=coupon_id,
                email=email,
                code=self.code_generator(),
                expires_at=expires_at,
                extra=extra,
            )
            try:
                issued = repo.insert(issued)
            except IntegrityError:
                tenant_scope.rollback()
                winner = repo.get_for_email(coupon_id, email)
                if winner is not None:
                    logger.info(
                        "Concurrent issuance won for coupon %s in tenant %s, returning its code",
                        coupon_id,
                        tenant_id,
                    )
                    return winner
                logger.warning(
                    "Code collision issuing coupon %s (attempt %d/%d)",
                    coupon_id,
                    attempt,
                    self.max_attempts,
                )
                continue

            logger.info("Issued code for coupon %s in tenant %s", coupon_id, tenant_id)
            return issued

        logger.error(
            "Gave up issuing coupon %s in tenant %s after %d attempts",
            coupon_id,
            tenant_id,
            self.max_attempts,
        )
        raise IssuanceExhausted(coupon_id, self.max_attempts)

    def get_status(
        self, tenant_id: UUID, coupon_id: UUID, email: str
    ) -> IssuedCouponStatus | None:
        """Why an issued code is no longer usable, or None while it still is.

        Revoked wins over expired, which wins over redeemed.
        """
        issued = self.fetch_existing(tenant_id, coupon_id, email)
        if issued is None:
            return None
        if issued.status == IssuedCouponStatus.REVOKED.value:
            return IssuedCouponStatus.REVOKED
        expires_at = as_utc(issued.expires_at)  # type: ignore[arg-type]
        if issued.status == IssuedCouponStatus.EXPIRED.value or (
            expires_at is not None and expires_at <= utc_now()
        ):
            return IssuedCouponStatus.EXPIRED
        if issued.status == IssuedCouponStatus.REDEEMED.value:
            return IssuedCouponStatus.REDEEMED
        return None

    def validate_code(self, tenant_id: UUID, code: str, redeem: bool = False) -> CodeValidation:
        """Check a code presented at the counter and optionally redeem it.

        Codes keep working after their tenant is deactivated.
        """
        tenant_scope = scope(self.db, tenant_id)
        issued = IssuedCouponRepository(tenant_scope).get_by_code(code.strip().upper())
        if issued is None:
            return CodeValidation(valid=False, error="Coupon code not found")

        if issued.status == IssuedCouponStatus.REVOKED.value:
            return CodeValidation(valid=False, error="This coupon has been revoked", issued_coupon=issued)

        now = utc_now()
        expires_at = as_utc(issued.expires_at)  # type: ignore[arg-type]
        if issued.status == IssuedCouponStatus.EXPIRED.value or (
            expires_at is not None and expires_at <= now
        ):
            if issued.status != IssuedCouponStatus.EXPIRED.value:
                issued.status = IssuedCouponStatus.EXPIRED.value  # type: ignore[assignment]
                tenant_scope.commit()
                tenant_scope.refresh(issued)
            return CodeValidation(valid=False, error="This coupon has expired", issued_coupon=issued)

        if (
            issued.status == IssuedCouponStatus.REDEEMED.value
            or issued.redemptions_count >= issued.max_redemptions
        ):
            return CodeValidation(
                valid=False, error="This coupon has already been redeemed", issued_coupon=issued
            )

        if redeem:
            issued.redemptions_count = IssuedCoupon.redemptions_count + 1  # type: ignore[assignment]
            issued.redeemed_at = now  # type: ignore[assignment]
            tenant_scope.commit()
            tenant_scope.refresh(issued)
            if issued.redemptions_count >= issued.max_redemptions:
                issued.status = IssuedCouponStatus.REDEEMED.value  # type: ignore[assignment]
                tenant_scope.commit()
                tenant_scope.refresh(issued)
            logger.info("Redeemed code for coupon %s in tenant %s", issued.coupon_id, tenant_id)

        return CodeValidation(valid=True, issued_coupon=issued, redeemed=redeem)

    def revoke(self, tenant_id: UUID, issued_coupon_id: UUID) -> IssuedCoupon | None:
        tenant_scope = scope(self.db, tenant_id)
        issued = IssuedCouponRepository(tenant_scope).get_by_id(issued_coupon_id)
        if issued is None:
            return None
        if issued.status != IssuedCouponStatus.REVOKED.value:
            issued.status = IssuedCouponStatus.REVOKED.value  # type: ignore[assignment]
            issued.revoked_at = utc_now()  # type: ignore[assignment]
            tenant_scope.commit()
            tenant_scope.refresh(issued)
            logger.info("Revoked issued coupon %s in tenant %s", issued_coupon_id, tenant_id)
        return issued

    def list_issued(
        self,
        tenant_id: UUID,
        skip: int = 0,
        limit: int = 100,
        coupon_id: UUID | None = None,
        status: IssuedCouponStatus | None = None,
    ) -> list[IssuedCoupon]:
        return IssuedCouponRepository(scope(self.db, tenant_id)).get_all(
            skip=skip, limit=limit, coupon_id=coupon_id, status=status
        )

    def count_issued(
        self,
        tenant_id: UUID,
        coupon_id: UUID | None = None,
        status: IssuedCouponStatus | None = None,
    ) -> int:
        return IssuedCouponRepository(scope(self.db, tenant_id)).count(coupon_id=coupon_id, status=status)

    def expire_overdue(self, now: datetime | None = None) -> int:
        """Mark past-due codes expired for every tenant. Returns the number updated.

        Each tenant is handled in its own scope, so row-level security applies
        to the sweep like any other write.
        """
        now = now or utc_now()
        total = 0
        for tenant_id in TenantRepository(self.db).get_all_ids():
            count = IssuedCouponRepository(scope(self.db, tenant_id)).mark_overdue_expired(now)
            if count:
                logger.info("Expired %d overdue issued coupons for tenant %s", count, tenant_id)
            total += count
        return total
