"""EmailOptIn repository for data access."""

from datetime import datetime

from couponflow.core.tenant_scope import TenantScope
from couponflow.models.email_opt_in import EmailOptIn, OptInSource


class EmailOptInRepository:
    """Repository for EmailOptIn model. Emails are expected pre-normalized."""

    def __init__(self, scope: TenantScope):
        self.scope = scope

    def get_by_email(self, email: str) -> EmailOptIn | None:
        return self.scope.query(EmailOptIn).filter(EmailOptIn.email == email).first()

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        source: OptInSource | None = None,
    ) -> list[EmailOptIn]:
        query = self.scope.query(EmailOptIn)
        if source:
            query = query.filter(EmailOptIn.source == source.value)
        return (
            query.order_by(EmailOptIn.consent_at.desc(), EmailOptIn.email)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self, source: OptInSource | None = None) -> int:
        query = self.scope.query(EmailOptIn)
        if source:
            query = query.filter(EmailOptIn.source == source.value)
        return query.count()

    def stage(self, email: str, consent_at: datetime, source: OptInSource) -> EmailOptIn:
        opt_in = EmailOptIn(email=email, consent_at=consent_at, source=source.value)
        self.scope.add(opt_in)
        return opt_in
