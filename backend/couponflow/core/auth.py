import hmac

from fastapi import Header, HTTPException

from couponflow.core.config import settings


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Gate admin endpoints on the shared ``X-Admin-Key`` header.

    With no ``ADMIN_API_KEY`` configured the admin API is closed entirely.
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=503, detail="Admin API is not configured")

    if not x_admin_key:
        raise HTTPException(status_code=401, detail="Admin key is required")

    if not hmac.compare_digest(x_admin_key.encode(), settings.ADMIN_API_KEY.encode()):
        raise HTTPException(status_code=401, detail="Invalid admin key")
