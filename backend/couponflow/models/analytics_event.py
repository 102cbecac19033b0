"""AnalyticsEvent model for best-effort visitor tracking."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, func

from couponflow.core.database import Base
from couponflow.models.shared import UUIDType, generate_uuid


class EventType(str, Enum):
    PAGE_VISIT = "page_visit"
    CODE_COPY = "code_copy"
    COUPON_DOWNLOAD = "coupon_download"
    WALLET_ADD = "wallet_add"
    SURVEY_COMPLETION = "survey_completion"
    COUPON_ISSUED = "coupon_issued"


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    event_type = Column(String(50), nullable=False, index=True)
    session_id = Column(String(255), nullable=True)
    email = Column(String(320), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
