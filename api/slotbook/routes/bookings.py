"""Booking routes: reserve a slot and look up a booking by payment session."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.database import get_db
from slotbook.core.exceptions import ConflictError, ExternalServiceError, SlotNotFoundError
from slotbook.models.booking import Booking
from slotbook.models.slot import Slot
from slotbook.schemas import BookingDetailOut, BookingOut, ReservationCreate, ReservationOut, SlotOut
from slotbook.services.booking_coordinator import CustomerDetails, reserve

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: ReservationCreate,
    db: AsyncSession = Depends(get_db),
):
    customer = CustomerDetails(
        name=body.customer_name,
        email=str(body.customer_email),
        phone=body.customer_phone,
    )

    try:
        reservation = await reserve(db, body.slot_id, customer)
    except SlotNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Slot not found") from None
    except ConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": exc.code, "message": str(exc)},
        ) from None
    except ExternalServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "payment_unavailable", "message": str(exc)},
        ) from None

    return ReservationOut(
        booking_id=reservation.booking.id,
        payment_session_reference=reservation.booking.payment_reference,
        redirect_target=reservation.redirect_url,
    )


@router.get("/by-reference/{payment_reference}", response_model=BookingDetailOut)
async def get_booking_by_reference(
    payment_reference: str,
    db: AsyncSession = Depends(get_db),
):
    """Booking and slot for the confirmation page (the payment session id is in its URL)."""
    result = await db.execute(
        select(Booking, Slot).join(Slot, Booking.slot_id == Slot.id).where(Booking.payment_reference == payment_reference)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")

    booking, slot = row
    return BookingDetailOut(booking=BookingOut.model_validate(booking), slot=SlotOut.model_validate(slot))
