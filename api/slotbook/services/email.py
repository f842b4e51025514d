"""Email sending via SMTP."""

import logging
from email.message import EmailMessage

import aiosmtplib

from slotbook.core.config import settings
from slotbook.models.booking import Booking
from slotbook.models.slot import Slot

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str) -> None:
    """Send a plain-text email via SMTP."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    await aiosmtplib.send(message, hostname=settings.smtp_host, port=settings.smtp_port)


async def send_booking_confirmation_email(booking: Booking, slot: Slot) -> None:
    """Tell the customer their court is booked."""
    when = f"{slot.slot_date.strftime('%A %d %B %Y')}, {slot.start_time.strftime('%H:%M')}-{slot.end_time.strftime('%H:%M')}"
    link = f"{settings.frontend_url}/booking-confirmation?session_id={booking.payment_reference}"
    body = (
        f"Hi {booking.customer_name},\n\n"
        f"Your booking is confirmed.\n\n"
        f"Court: {slot.court_name}\n"
        f"When: {when}\n"
        f"Paid: {booking.amount_paid_cents / 100:.2f} {settings.currency.upper()}\n\n"
        f"Booking details: {link}\n\n"
        f"{settings.app_name}"
    )
    await send_email(booking.customer_email, f"Court booking confirmed - {slot.court_name}", body)
    logger.info("Booking confirmation email sent for booking %s", booking.id)
