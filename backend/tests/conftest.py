"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from couponflow.core import database as db_module
from couponflow.core.config import settings
from couponflow.core.database import Base, get_db
from couponflow.core.rate_limiter import InMemoryCounterStore, RateLimiter, get_rate_limiter
from couponflow.main import app
from couponflow.models.coupon import Coupon
from couponflow.models.survey_question import SurveyQuestion
from couponflow.models.tenant import Tenant

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

ACME_ID = uuid.UUID("00000000-0000-0000-0000-00000000000a")
GLOBEX_ID = uuid.UUID("00000000-0000-0000-0000-00000000000b")
DEFUNCT_ID = uuid.UUID("00000000-0000-0000-0000-00000000000c")

ADMIN_KEY = "test-admin-key"


def _seed_tenants(session: Session) -> None:
    """Two active tenants and one deactivated one."""
    session.add_all(
        [
            Tenant(id=ACME_ID, slug="acme", name="Acme Coffee", theme={"primary": "#123456"}),
            Tenant(id=GLOBEX_ID, slug="globex", name="Globex Bakery"),
            Tenant(id=DEFUNCT_ID, slug="defunct", name="Defunct Diner", active=False),
        ]
    )
    session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_tenants(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def limiter():
    return RateLimiter(InMemoryCounterStore())


@pytest.fixture
def client(limiter, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_rate_limiter, None)


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


def make_coupon(
    db: Session,
    tenant_id: uuid.UUID,
    title: str = "Free coffee",
    active: bool = True,
    expires_at: datetime | None = None,
    **kwargs: Any,
) -> Coupon:
    coupon = Coupon(
        tenant_id=tenant_id,
        title=title,
        discount=kwargs.pop("discount", "100% off"),
        active=active,
        expires_at=expires_at,
        **kwargs,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def make_question(
    db: Session,
    tenant_id: uuid.UUID,
    type: str = "single_choice",
    coupon_id: uuid.UUID | None = None,
    order_index: int = 0,
    **kwargs: Any,
) -> SurveyQuestion:
    if type in ("single_choice", "multiple_choice", "ranked_choice"):
        kwargs.setdefault("options", ["Red", "Green", "Blue"])
    question = SurveyQuestion(
        tenant_id=tenant_id,
        coupon_id=coupon_id,
        question=kwargs.pop("question", f"Question {order_index}"),
        type=type,
        order_index=order_index,
        **kwargs,
    )
    db.add(question)
    db.commit()
    db.refresh(question)
    return question
