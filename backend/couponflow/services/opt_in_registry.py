"""Opt-in registry: which emails have consented to hear from which tenant.

An opt-in is the tenant-wide qualification signal. Once an email is on file
for a tenant, every coupon of that tenant can be claimed without another
survey.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from couponflow.core.exceptions import TenantContextError
from couponflow.core.tenant_scope import TenantScope, scope
from couponflow.models.email_opt_in import EmailOptIn, OptInSource
from couponflow.models.shared import normalize_email, utc_now
from couponflow.repositories.email_opt_in_repository import EmailOptInRepository

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_MESSAGE = "Email already registered"


class OptInStatus(str, Enum):
    OPTED_IN = "opted_in"
    NOT_OPTED_IN = "not_opted_in"
    # The read was blocked or failed; the answer is unknown
    INCONCLUSIVE = "inconclusive"


@dataclass
class OptInResult:
    success: bool
    created: bool
    message: str


class OptInRegistry:
    def __init__(self, db: Session):
        self.db = db

    def lookup(self, tenant_id: UUID, email: str) -> OptInStatus:
        """Check for an opt-in. Never raises for a blocked or failed read."""
        tenant_scope = scope(self.db, tenant_id)
        try:
            record = EmailOptInRepository(tenant_scope).get_by_email(normalize_email(email))
        except (TenantContextError, SQLAlchemyError) as exc:
            logger.warning("Opt-in lookup inconclusive for tenant %s: %s", tenant_id, exc)
            tenant_scope.rollback()
            return OptInStatus.INCONCLUSIVE
        return OptInStatus.OPTED_IN if record is not None else OptInStatus.NOT_OPTED_IN

    def has_opted_in(self, tenant_id: UUID, email: str) -> bool:
        return self.lookup(tenant_id, email) is OptInStatus.OPTED_IN

    def stage_opt_in(
        self,
        tenant_scope: TenantScope,
        email: str,
        consent_at: datetime | None = None,
        source: OptInSource = OptInSource.SURVEY,
    ) -> EmailOptIn:
        """Add an opt-in to the caller's transaction without committing."""
        return EmailOptInRepository(tenant_scope).stage(
            normalize_email(email), consent_at or utc_now(), source
        )

    def record_opt_in(
        self,
        tenant_id: UUID,
        email: str,
        consent_at: datetime | None = None,
        source: OptInSource = OptInSource.DIRECT,
    ) -> OptInResult:
        """Record consent. A duplicate is reported as success."""
        tenant_scope = scope(self.db, tenant_id)
        try:
            self.stage_opt_in(tenant_scope, email, consent_at, source)
            tenant_scope.commit()
        except IntegrityError:
            tenant_scope.rollback()
            logger.info("Opt-in already on file for tenant %s", tenant_id)
            return OptInResult(success=True, created=False, message=ALREADY_REGISTERED_MESSAGE)

        logger.info("Recorded %s opt-in for tenant %s", source.value, tenant_id)
        return OptInResult(success=True, created=True, message="Thanks for signing up!")
