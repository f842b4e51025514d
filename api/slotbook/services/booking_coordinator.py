"""Booking coordinator: reserve, finalize, cancel and sweep bookings.

This module is the only writer of Slot.is_available once a slot exists.
Every state change is a conditional UPDATE guarded by the current value
(slot still available, booking still pending), so concurrent requests and
redelivered payment notifications can never both win:

    pending --payment succeeded--> confirmed
    pending --expired / failed / cancelled--> cancelled   (slot released)

Each public function commits or rolls back the session it is given.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.clock import VENUE_TZ
from slotbook.core.config import settings
from slotbook.core.exceptions import (
    BookingNotFoundError,
    ConflictError,
    ExternalServiceError,
    IntegrityViolation,
    SlotNotFoundError,
)
from slotbook.models.base import utcnow
from slotbook.models.booking import Booking, BookingStatus
from slotbook.models.slot import Slot
from slotbook.services.stripe_service import create_checkout_session, expire_checkout_session

logger = logging.getLogger(__name__)

REASON_EXPIRED = "payment_expired"
REASON_FAILED = "payment_failed"
REASON_SWEPT = "payment_session_timeout"
REASON_CANCELLED = "cancelled"


class PaymentOutcome(enum.StrEnum):
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"
    FAILED = "failed"


class FinalizeResult(enum.StrEnum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    ALREADY_FINAL = "already_final"
    LATE_PAYMENT = "late_payment"
    UNKNOWN_REFERENCE = "unknown_reference"


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class Reservation:
    booking: Booking
    redirect_url: str | None


# ---------------------------------------------------------------------------
# Slot availability (the only place it changes)
# ---------------------------------------------------------------------------


async def _claim_slot(db: AsyncSession, slot_id: int) -> Slot:
    """Atomically flip the slot to unavailable, or fail if someone else got there first."""
    result = await db.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.is_available.is_(True))
        .values(is_available=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        exists = await db.scalar(select(Slot.id).where(Slot.id == slot_id))
        await db.rollback()
        if exists is None:
            raise SlotNotFoundError(f"Slot {slot_id} not found")
        raise ConflictError(f"Slot {slot_id} is not available")

    result = await db.execute(
        select(Slot).where(Slot.id == slot_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _release_slot(db: AsyncSession, slot_id: int) -> None:
    await db.execute(
        update(Slot)
        .where(Slot.id == slot_id)
        .values(is_available=True)
        .execution_options(synchronize_session=False)
    )


async def _cancel_if_pending(db: AsyncSession, booking_id: int, slot_id: int, reason: str, now: datetime) -> bool:
    """Move a pending booking to cancelled and release its slot. False if it was no longer pending."""
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
        .values(status=BookingStatus.CANCELLED, cancelled_at=now, cancellation_reason=reason)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await _release_slot(db, slot_id)
    return True


# ---------------------------------------------------------------------------
# Reserve
# ---------------------------------------------------------------------------


async def reserve(
    db: AsyncSession,
    slot_id: int,
    customer: CustomerDetails,
    *,
    now: datetime | None = None,
) -> Reservation:
    """Claim a slot for a customer and open a payment session for it.

    The slot is marked unavailable before the payment provider is called, in
    the same transaction that inserts the pending booking. If anything fails
    the transaction rolls back and the slot is offered again.

    Raises SlotNotFoundError, ConflictError (taken or already started) or
    ExternalServiceError (payment provider down).
    """
    now = now or utcnow()
    slot = await _claim_slot(db, slot_id)

    slot_start = datetime.combine(slot.slot_date, slot.start_time, tzinfo=VENUE_TZ)
    if slot_start <= now:
        await db.rollback()
        raise ConflictError(f"Slot {slot_id} has already started")

    expires_at = now + timedelta(minutes=settings.payment_session_ttl_minutes)
    amount_cents = slot.current_price_cents

    # The SDK is blocking; keep the event loop free while the slot is held
    try:
        session = await asyncio.to_thread(
            create_checkout_session,
            slot,
            amount_cents,
            customer.name,
            customer.email,
            customer.phone,
            expires_at,
        )
    except ExternalServiceError:
        await db.rollback()
        raise

    booking = Booking(
        slot_id=slot.id,
        customer_name=customer.name,
        customer_email=customer.email,
        customer_phone=customer.phone,
        payment_reference=session.id,
        amount_paid_cents=amount_cents,
        status=BookingStatus.PENDING,
        expires_at=expires_at,
    )
    db.add(booking)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        await asyncio.to_thread(expire_checkout_session, session.id)
        raise

    logger.info("Reserved slot %s for booking %s (payment %s)", slot.id, booking.id, session.id)
    return Reservation(booking=booking, redirect_url=session.url)


# ---------------------------------------------------------------------------
# Finalize (payment notifications)
# ---------------------------------------------------------------------------


async def _confirm(db: AsyncSession, payment_reference: str, now: datetime) -> FinalizeResult:
    try:
        result = await db.execute(
            update(Booking)
            .where(Booking.payment_reference == payment_reference, Booking.status == BookingStatus.PENDING)
            .values(status=BookingStatus.CONFIRMED, confirmed_at=now)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        await db.rollback()
        logger.critical("Storage rejected a second sale while confirming payment %s", payment_reference)
        raise IntegrityViolation(f"Slot already sold when confirming payment {payment_reference}") from exc

    if result.rowcount == 1:
        slot_available = await db.scalar(
            select(Slot.is_available)
            .join(Booking, Booking.slot_id == Slot.id)
            .where(Booking.payment_reference == payment_reference)
        )
        if slot_available:
            await db.rollback()
            logger.critical("Payment %s confirmed against a slot that is still on offer", payment_reference)
            raise IntegrityViolation(f"Slot for payment {payment_reference} was released while pending")
        await db.commit()
        logger.info("Booking for payment %s confirmed", payment_reference)
        return FinalizeResult.CONFIRMED

    status = await db.scalar(select(Booking.status).where(Booking.payment_reference == payment_reference))
    await db.rollback()
    if status is None:
        logger.warning("Payment success for unknown reference %s ignored", payment_reference)
        return FinalizeResult.UNKNOWN_REFERENCE
    if status == BookingStatus.CANCELLED:
        # No transition leaves cancelled; the slot may already be resold.
        logger.error("Payment %s succeeded after its booking was cancelled, refund required", payment_reference)
        return FinalizeResult.LATE_PAYMENT
    return FinalizeResult.ALREADY_FINAL


async def _cancel_by_reference(
    db: AsyncSession, payment_reference: str, reason: str, now: datetime
) -> FinalizeResult:
    row = (
        await db.execute(
            select(Booking.id, Booking.slot_id, Booking.status).where(
                Booking.payment_reference == payment_reference
            )
        )
    ).one_or_none()
    if row is None:
        await db.rollback()
        logger.warning("%s notification for unknown reference %s ignored", reason, payment_reference)
        return FinalizeResult.UNKNOWN_REFERENCE

    if row.status != BookingStatus.PENDING or not await _cancel_if_pending(db, row.id, row.slot_id, reason, now):
        await db.rollback()
        return FinalizeResult.ALREADY_FINAL

    await db.commit()
    logger.info("Booking %s cancelled (%s), slot %s released", row.id, reason, row.slot_id)
    return FinalizeResult.CANCELLED


async def finalize(
    db: AsyncSession,
    payment_reference: str,
    outcome: PaymentOutcome,
    *,
    now: datetime | None = None,
) -> FinalizeResult:
    """Apply a payment outcome to the booking with this reference.

    Safe under at-least-once delivery: replays of an outcome that was already
    applied return ALREADY_FINAL, unknown references return UNKNOWN_REFERENCE.
    """
    now = now or utcnow()
    if outcome is PaymentOutcome.SUCCEEDED:
        return await _confirm(db, payment_reference, now)
    reason = REASON_EXPIRED if outcome is PaymentOutcome.EXPIRED else REASON_FAILED
    return await _cancel_by_reference(db, payment_reference, reason, now)


# ---------------------------------------------------------------------------
# Explicit cancellation and expiry sweep
# ---------------------------------------------------------------------------


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    reason: str = REASON_CANCELLED,
    *,
    now: datetime | None = None,
) -> None:
    """Cancel a pending booking and release its slot.

    Confirmed bookings are not cancellable here (that's an administrative override).
    """
    now = now or utcnow()
    row = (
        await db.execute(
            select(Booking.id, Booking.slot_id, Booking.status, Booking.payment_reference).where(
                Booking.id == booking_id
            )
        )
    ).one_or_none()
    if row is None:
        await db.rollback()
        raise BookingNotFoundError(f"Booking {booking_id} not found")

    if row.status != BookingStatus.PENDING or not await _cancel_if_pending(db, row.id, row.slot_id, reason, now):
        await db.rollback()
        raise ConflictError(f"Booking {booking_id} is not pending", code="booking_not_pending")

    await db.commit()
    await asyncio.to_thread(expire_checkout_session, row.payment_reference)
    logger.info("Booking %s cancelled (%s), slot %s released", row.id, reason, row.slot_id)


async def reconcile_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Cancel pending bookings whose payment session has run out. Returns how many were swept.

    Called periodically by an external scheduler; payment expiry webhooks
    normally get there first and this is a no-op.
    """
    now = now or utcnow()
    rows = (
        await db.execute(
            select(Booking.id, Booking.slot_id, Booking.payment_reference).where(
                Booking.status == BookingStatus.PENDING,
                Booking.expires_at <= now,
            )
        )
    ).all()

    swept: list[str] = []
    for row in rows:
        if await _cancel_if_pending(db, row.id, row.slot_id, REASON_SWEPT, now):
            swept.append(row.payment_reference)
    await db.commit()

    for payment_reference in swept:
        await asyncio.to_thread(expire_checkout_session, payment_reference)
    if swept:
        logger.info("Swept %d expired pending bookings", len(swept))
    return len(swept)

