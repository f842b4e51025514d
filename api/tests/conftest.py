"""Shared test fixtures.

Tests run against a SQLite file database. The URL is set before slotbook is
imported so the global engine is created against it.
"""

import copy
import os
import tempfile
import uuid
from datetime import date, time, timedelta
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

_TEST_DB = Path(tempfile.gettempdir()) / "slotbook_test.db"
os.environ.setdefault("SB_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event, select  # noqa: E402

from slotbook.core.auth import create_admin_token  # noqa: E402
from slotbook.core.database import async_session_factory, engine  # noqa: E402
from slotbook.models import Base, BusinessRule, RuleType, Slot  # noqa: E402
from slotbook.services.booking_coordinator import CustomerDetails  # noqa: E402
from slotbook.services.rules import RuleSet, build_rule_set  # noqa: E402
from slotbook.services.slot_generator import generate_slots  # noqa: E402

if engine.dialect.name == "sqlite":

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_manual_begin(dbapi_connection, connection_record):
        # Stop the driver issuing its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin_immediate(conn):
        # Take the write lock up front so concurrent transactions queue instead of deadlocking
        conn.exec_driver_sql("BEGIN IMMEDIATE")


DEFAULT_DOCUMENTS = {
    (RuleType.COURT_CONFIG, "courts"): {"A": {"offset_minutes": 0}, "B": {"offset_minutes": 30}},
    (RuleType.GENERATION_CONFIG, "slots"): {
        "duration_minutes": 90,
        "operating_start_hour": 7,
        "operating_end_hour": 23,
        "horizon_days": 2,
    },
    (RuleType.TIME_PRICING, "weekday"): {
        "time_slots": [
            {"start": "07:00", "end": "09:00", "price": 65},
            {"start": "09:00", "end": "17:00", "price": 40},
            {"start": "17:00", "end": "23:00", "price": 85},
        ]
    },
    (RuleType.TIME_PRICING, "weekend"): {"time_slots": [{"start": "07:00", "end": "23:00", "price": 65}]},
}


@pytest.fixture(autouse=True)
async def _fresh_database():
    """Recreate the schema before each test.

    The global engine is created at import time. Each test gets a new event
    loop, so pooled connections from the previous loop are disposed first.
    """
    await engine.dispose()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def client():
    from slotbook.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_admin_token()}"}


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@pytest.fixture
def rule_documents() -> dict:
    """The default rule documents, keyed by (rule_type, rule_key). Safe to mutate."""
    return copy.deepcopy(DEFAULT_DOCUMENTS)


@pytest.fixture
def build_rules():
    def _build(documents: dict, effective_from: date = date(2020, 1, 1)) -> list[BusinessRule]:
        return [
            BusinessRule(
                rule_type=rule_type,
                rule_key=key,
                rule_value=value,
                effective_from=effective_from,
                is_active=True,
            )
            for (rule_type, key), value in documents.items()
        ]

    return _build


@pytest.fixture
def rule_set(rule_documents, build_rules) -> RuleSet:
    return build_rule_set(build_rules(rule_documents))


@pytest.fixture
def seed_rules(build_rules):
    async def _seed(documents: dict) -> None:
        async with async_session_factory() as db:
            db.add_all(build_rules(documents))
            await db.commit()

    return _seed


@pytest.fixture
def future_date() -> date:
    return date.today() + timedelta(days=30)


@pytest.fixture
async def future_slots(rule_documents, seed_rules, future_date) -> list[Slot]:
    """Default rules seeded and slots generated for one day a month ahead."""
    await seed_rules(rule_documents)
    async with async_session_factory() as db:
        await generate_slots(db, future_date, future_date)
        result = await db.execute(
            select(Slot).where(Slot.slot_date == future_date).order_by(Slot.court_name, Slot.start_time)
        )
        return list(result.scalars().all())


@pytest.fixture
def slot(future_slots) -> Slot:
    """Court A, 17:30-19:00 on the future date."""
    return next(s for s in future_slots if s.court_name == "A" and s.start_time == time(17, 30))


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@pytest.fixture
def customer() -> CustomerDetails:
    return CustomerDetails(name="Ana Ruiz", email="ana@example.com", phone="600000000")


@pytest.fixture
def checkout():
    """Patch the Stripe calls made by the booking coordinator."""
    sessions = []

    def _create(slot, amount_cents, *args, **kwargs):
        session_id = f"cs_test_{uuid.uuid4().hex}"
        session = SimpleNamespace(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")
        sessions.append(session)
        return session

    with (
        patch("slotbook.services.booking_coordinator.create_checkout_session", side_effect=_create) as create,
        patch("slotbook.services.booking_coordinator.expire_checkout_session") as expire,
    ):
        yield SimpleNamespace(create=create, expire=expire, sessions=sessions)
