"""Operator routes: generation trigger, expiry sweep, booking cancellation.

All require an admin bearer token. The same generation and sweep functions
are run on a schedule by the Celery worker.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.database import get_db
from slotbook.core.dependencies import require_admin
from slotbook.core.exceptions import BookingNotFoundError, ConfigurationError, ConflictError
from slotbook.schemas import GenerateOut, GenerateRequest, ReconcileOut
from slotbook.services.booking_coordinator import cancel_booking, reconcile_expired
from slotbook.services.slot_generator import generate_slots

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/slots/generate", response_model=GenerateOut)
async def trigger_generation(
    body: GenerateRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    body = body or GenerateRequest()
    try:
        result = await generate_slots(db, body.start_date, body.end_date)
    except ConfigurationError as exc:
        logger.error("Slot generation failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from None

    return GenerateOut(
        slots_created=result.slots_created,
        start_date=result.start_date,
        end_date=result.end_date,
        skipped=result.skipped,
    )


@router.post("/bookings/reconcile", response_model=ReconcileOut)
async def trigger_reconcile(db: AsyncSession = Depends(get_db)):
    return ReconcileOut(expired=await reconcile_expired(db))


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_pending_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
):
    try:
        await cancel_booking(db, booking_id)
    except BookingNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found") from None
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": exc.code, "message": str(exc)},
        ) from None
