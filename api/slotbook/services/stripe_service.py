"""Stripe integration service for payment processing.

Wraps the Stripe Python SDK. All amounts are in cents of settings.currency.
Stripe errors are translated to ExternalServiceError here so the booking
coordinator never sees SDK types.
"""

import contextlib
import logging
from datetime import datetime

import stripe

from slotbook.core.config import settings
from slotbook.core.exceptions import ExternalServiceError
from slotbook.models.slot import Slot

logger = logging.getLogger(__name__)


def _configure() -> None:
    """Set the Stripe API key from settings."""
    stripe.api_key = settings.stripe_secret_key


def create_checkout_session(
    slot: Slot,
    amount_cents: int,
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    expires_at: datetime,
) -> stripe.checkout.Session:
    """Create a Stripe Checkout Session for a reserved slot.

    Returns the Session (caller reads .id and .url).
    """
    _configure()

    interval = f"{slot.start_time.strftime('%H:%M')} - {slot.end_time.strftime('%H:%M')}"
    try:
        return stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": settings.currency,
                        "product_data": {
                            "name": f"Court Booking - {slot.court_name}",
                            "description": f"{slot.slot_date.isoformat()} {interval}",
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            customer_email=customer_email,
            expires_at=int(expires_at.timestamp()),
            success_url=f"{settings.frontend_url}/booking-confirmation?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.frontend_url}/",
            metadata={
                "slot_id": str(slot.id),
                "customer_name": customer_name,
                "customer_email": customer_email,
                "customer_phone": customer_phone,
            },
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session creation failed for slot %s: %s", slot.id, exc)
        raise ExternalServiceError("Payment provider unavailable, please try again") from exc


def expire_checkout_session(session_id: str) -> None:
    """Expire an open Checkout Session (e.g. on cancellation or sweep).

    Already-expired or completed sessions are rejected by Stripe; that's fine.
    """
    _configure()

    with contextlib.suppress(stripe.StripeError):
        stripe.checkout.Session.expire(session_id)


def construct_webhook_event(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and construct a Stripe webhook event."""
    return stripe.Webhook.construct_event(
        payload,
        sig_header,
        settings.stripe_webhook_secret,
    )
