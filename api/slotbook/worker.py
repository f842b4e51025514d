"""Celery worker and beat schedule.

The periodic triggers for the booking core: slot generation once a day and
the pending-booking expiry sweep every few minutes. Tasks are thin wrappers;
the work lives in services/ and can equally be run from the admin routes.

Run with:
    celery -A slotbook.worker worker --beat
"""

import asyncio
from datetime import date

from celery import Celery
from celery.schedules import crontab

from slotbook.core.config import settings
from slotbook.core.database import async_session_factory, engine
from slotbook.services.booking_coordinator import reconcile_expired
from slotbook.services.slot_generator import generate_slots

celery_app = Celery(
    "slotbook",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.timezone,
    enable_utc=True,
    beat_schedule={
        "generate-slots-daily": {
            "task": "slotbook.generate_slots",
            "schedule": crontab(hour=settings.generation_hour, minute=0),
        },
        "reconcile-expired-bookings": {
            "task": "slotbook.reconcile_expired",
            "schedule": settings.reconcile_interval_minutes * 60.0,
        },
    },
)


async def _generate(start_date: date | None, end_date: date | None) -> int:
    try:
        async with async_session_factory() as db:
            result = await generate_slots(db, start_date, end_date)
        return result.slots_created
    finally:
        # Each task runs in a fresh event loop; pooled connections can't be reused across loops
        await engine.dispose()


async def _reconcile() -> int:
    try:
        async with async_session_factory() as db:
            return await reconcile_expired(db)
    finally:
        await engine.dispose()


@celery_app.task(name="slotbook.generate_slots")
def generate_slots_task(start_date: str | None = None, end_date: str | None = None) -> int:
    """Generate slots for [start_date, end_date] (ISO dates), defaulting to the configured horizon."""
    return asyncio.run(
        _generate(
            date.fromisoformat(start_date) if start_date else None,
            date.fromisoformat(end_date) if end_date else None,
        )
    )


@celery_app.task(name="slotbook.reconcile_expired")
def reconcile_expired_task() -> int:
    """Cancel pending bookings whose payment session has expired."""
    return asyncio.run(_reconcile())
