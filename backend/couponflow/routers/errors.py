"""Translate domain errors into HTTP responses."""

import logging

from fastapi import HTTPException

from couponflow.core.exceptions import (
    CouponFlowError,
    CouponNotFound,
    CouponUnavailable,
    RateLimited,
    SurveyValidationError,
    TenantInactive,
    TenantNotFound,
)
from couponflow.services.qualification import DEACTIVATED_MESSAGE

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."


def deactivated_exception() -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={"state": "deactivated", "message": DEACTIVATED_MESSAGE},
    )


def to_http_exception(exc: CouponFlowError) -> HTTPException:
    if isinstance(exc, TenantNotFound):
        return HTTPException(status_code=404, detail="Business not found")
    if isinstance(exc, TenantInactive):
        return deactivated_exception()
    if isinstance(exc, CouponNotFound):
        return HTTPException(status_code=404, detail="Coupon not found")
    if isinstance(exc, CouponUnavailable):
        return HTTPException(status_code=410, detail="This coupon is no longer available")
    if isinstance(exc, SurveyValidationError):
        return HTTPException(
            status_code=422,
            detail={"message": "Please fix the highlighted answers", "errors": exc.errors},
        )
    if isinstance(exc, RateLimited):
        return HTTPException(
            status_code=429,
            detail=str(exc),
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    # TenantContextError, IssuanceExhausted and anything new
    logger.error("Internal error (%s): %s", type(exc).__name__, exc)
    return HTTPException(status_code=500, detail=GENERIC_ERROR)
