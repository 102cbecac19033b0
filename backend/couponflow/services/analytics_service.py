"""Fire-and-forget visitor event tracking.

``track_event`` runs after the response has been sent (FastAPI background
task) on its own session. A tracking failure is logged and dropped; it never
reaches the visitor.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from couponflow.core import database
from couponflow.core.exceptions import TenantContextError, TrackingFailure
from couponflow.core.tenant_scope import scope
from couponflow.models.analytics_event import EventType
from couponflow.models.shared import normalize_email
from couponflow.repositories.analytics_event_repository import AnalyticsEventRepository

logger = logging.getLogger(__name__)


def _write_event(
    tenant_id: UUID,
    event_type: EventType,
    session_id: str | None,
    email: str | None,
    metadata: dict[str, Any] | None,
) -> None:
    db = database.SessionLocal()
    try:
        AnalyticsEventRepository(scope(db, tenant_id)).create(
            event_type,
            session_id=session_id,
            email=normalize_email(email) if email else None,
            metadata=metadata,
        )
    except (SQLAlchemyError, TenantContextError) as exc:
        db.rollback()
        raise TrackingFailure(f"{event_type.value}: {exc}") from exc
    finally:
        db.close()


def track_event(
    tenant_id: UUID,
    event_type: EventType,
    session_id: str | None = None,
    email: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Record an analytics event. Never raises."""
    try:
        _write_event(tenant_id, event_type, session_id, email, metadata)
    except TrackingFailure as exc:
        logger.warning("Dropped analytics event for tenant %s: %s", tenant_id, exc)
    except Exception:
        logger.exception("Unexpected error tracking %s for tenant %s", event_type.value, tenant_id)
