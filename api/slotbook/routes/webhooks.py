"""Stripe webhook handler.

Maps Checkout Session events onto booking finalization:
completed (paid) / async_payment_succeeded confirm the booking,
expired / async_payment_failed cancel it and release the slot.
Stripe delivers at least once; finalize is idempotent per session id.
"""

import logging

import aiosmtplib
import stripe
from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select

from slotbook.core.database import async_session_factory
from slotbook.models.booking import Booking
from slotbook.models.slot import Slot
from slotbook.services.booking_coordinator import FinalizeResult, PaymentOutcome, finalize
from slotbook.services.email import send_booking_confirmation_email
from slotbook.services.stripe_service import construct_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_PAID_STATUSES = ("paid", "no_payment_required")

_EVENT_OUTCOMES = {
    "checkout.session.async_payment_succeeded": PaymentOutcome.SUCCEEDED,
    "checkout.session.expired": PaymentOutcome.EXPIRED,
    "checkout.session.async_payment_failed": PaymentOutcome.FAILED,
}


def _outcome_for(event_type: str, session) -> PaymentOutcome | None:
    if event_type == "checkout.session.completed":
        # Delayed payment methods complete the session before the money arrives
        if session["payment_status"] in _PAID_STATUSES:
            return PaymentOutcome.SUCCEEDED
        return None
    return _EVENT_OUTCOMES.get(event_type)


@router.post("/stripe")
async def stripe_webhook(request: Request):
    """Handle Stripe webhook events.

    Uses a dedicated DB session (not the request-scoped one) because webhook
    processing must commit independently of any ongoing request.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = construct_webhook_event(payload, sig_header)
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature") from None

    event_type = event["type"]
    session = event["data"]["object"]

    outcome = _outcome_for(event_type, session)
    if outcome is None:
        logger.debug("Ignoring Stripe event %s", event_type)
        return {"received": True, "result": "ignored"}

    async with async_session_factory() as db:
        result = await finalize(db, session["id"], outcome)
        if result is FinalizeResult.CONFIRMED:
            await _send_confirmation(db, session["id"])

    return {"received": True, "result": result.value}


async def _send_confirmation(db, payment_reference: str) -> None:
    """Email the customer. The booking is already committed, so a mail failure is only logged."""
    result = await db.execute(
        select(Booking, Slot).join(Slot, Booking.slot_id == Slot.id).where(Booking.payment_reference == payment_reference)
    )
    booking, slot = result.one()
    try:
        await send_booking_confirmation_email(booking, slot)
    except (aiosmtplib.SMTPException, OSError):
        logger.exception("Could not send confirmation email for booking %s", booking.id)
