"""Slot listing for the slot picker."""

from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.clock import venue_today
from slotbook.core.config import settings
from slotbook.core.database import get_db
from slotbook.models.slot import Slot
from slotbook.schemas import SlotOut

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("", response_model=list[SlotOut])
async def list_slots(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    court: str | None = Query(None),
    include_unavailable: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Slots by date then start time. Defaults to available slots from today for settings.listing_days."""
    start_date = start_date or venue_today()
    end_date = end_date or start_date + timedelta(days=settings.listing_days)
    if end_date < start_date:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="end_date is before start_date")

    query = select(Slot).where(Slot.slot_date >= start_date, Slot.slot_date <= end_date)
    if court:
        query = query.where(Slot.court_name == court)
    if not include_unavailable:
        query = query.where(Slot.is_available.is_(True))

    result = await db.execute(query.order_by(Slot.slot_date, Slot.start_time, Slot.court_name))
    return result.scalars().all()
