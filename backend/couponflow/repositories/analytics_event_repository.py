"""AnalyticsEvent repository for data access."""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import distinct
from sqlalchemy import func as sa_func

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.analytics_event import AnalyticsEvent, EventType


class AnalyticsEventRepository:
    """Repository for AnalyticsEvent model."""

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def create(
        self,
        event_type: EventType,
        session_id: str | None = None,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AnalyticsEvent:
        event = AnalyticsEvent(
            event_type=event_type.value,
            session_id=session_id,
            email=email,
            event_metadata=metadata or {},
        )
        self.scope.add(event)
        self.scope.commit()
        return event

    def count(self, event_type: EventType | None = None) -> int:
        query = self.scope.query(AnalyticsEvent)
        if event_type:
            query = query.filter(AnalyticsEvent.event_type == event_type.value)
        return query.count()

    def count_by_type(self) -> dict[str, int]:
        rows = (
            self.scope.query(AnalyticsEvent)
            .with_entities(AnalyticsEvent.event_type, sa_func.count(AnalyticsEvent.id))
            .group_by(AnalyticsEvent.event_type)
            .all()
        )
        return {event_type: count for event_type, count in rows}

    def count_unique_visitors(self, event_types: Iterable[EventType]) -> int:
        """Distinct visitors behind the given events, by email or else session id.

        Events carrying neither are not counted.
        """
        identifier = sa_func.coalesce(AnalyticsEvent.email, AnalyticsEvent.session_id)
        return (
            self.scope.query(AnalyticsEvent)
            .with_entities(sa_func.count(distinct(identifier)))
            .filter(AnalyticsEvent.event_type.in_([t.value for t in event_types]))
            .scalar()
            or 0
        )
