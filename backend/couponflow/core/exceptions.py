"""Error taxonomy shared by services and routers.

Services raise these; routers translate them into HTTP responses with a
plain-language ``detail``. Anything that would corrupt data is raised; anything
that would only block a visitor from their coupon is avoided where possible.
"""

from uuid import UUID


class CouponFlowError(Exception):
    """Base class for all domain errors."""


class TenantNotFound(CouponFlowError):
    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Tenant not found: {slug}")


class TenantInactive(CouponFlowError):
    def __init__(self, slug: str, name: str | None = None):
        self.slug = slug
        self.name = name
        super().__init__(f"Tenant is deactivated: {slug}")


class TenantContextError(CouponFlowError):
    """The storage layer refused or failed to apply the tenant tag."""

    def __init__(self, tenant_id: UUID | None, reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Tenant context error for {tenant_id}: {reason}")


class SurveyValidationError(CouponFlowError):
    """One or more answers broke their question's contract.

    ``errors`` maps question id (as a string) to a message.
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        super().__init__(f"{len(errors)} invalid answer(s)")


class RateLimited(CouponFlowError):
    def __init__(self, endpoint_class: str, retry_after_seconds: int):
        self.endpoint_class = endpoint_class
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Too many requests. Please try again in {retry_after_seconds} seconds."
        )


class IssuanceExhausted(CouponFlowError):
    def __init__(self, coupon_id: UUID, attempts: int):
        self.coupon_id = coupon_id
        self.attempts = attempts
        super().__init__(
            f"Failed to generate a unique code for coupon {coupon_id} after {attempts} attempts"
        )


class CouponNotFound(CouponFlowError):
    def __init__(self, coupon_id: UUID):
        self.coupon_id = coupon_id
        super().__init__(f"Coupon {coupon_id} not found")


class CouponUnavailable(CouponFlowError):
    """The coupon exists but no new codes may be minted for it."""

    def __init__(self, coupon_id: UUID, reason: str):
        self.coupon_id = coupon_id
        self.reason = reason
        super().__init__(f"Coupon {coupon_id} is unavailable: {reason}")


class TrackingFailure(CouponFlowError):
    """Analytics write failed. Only ever logged, never surfaced."""
