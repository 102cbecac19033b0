import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from couponflow.core.config import settings
from couponflow.core.database import SessionLocal
from couponflow.services.coupon_issuance import CouponIssuanceEngine

logger = logging.getLogger(__name__)

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL or "redis://localhost:6379")


async def expire_issued_coupons_task(ctx: dict[str, Any]) -> int:
    """Background task: mark issued codes past their expiry as expired.

    Runs hourly. Validation also catches expired codes on read, so this only
    keeps stored statuses and admin listings accurate.
    """
    db = SessionLocal()
    try:
        count = CouponIssuanceEngine(db).expire_overdue()
        if count > 0:
            logger.info("Expired %d issued coupons", count)
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [expire_issued_coupons_task]
    cron_jobs = [
        cron(expire_issued_coupons_task, minute={0}),  # hourly
    ]
    redis_settings = redis_settings
