"""Booking model.

A booking claims one slot for a customer, pending payment. This is the core
transactional entity in the system.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.models.base import Base, TimestampMixin
from slotbook.models.slot import Slot


class BookingStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that mean the slot has been sold
SOLD_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)

_SOLD_WHERE = text(f"status IN ({', '.join(repr(s.value) for s in SOLD_STATUSES)})")


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id"), nullable=False)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(254), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)

    # Payment: the checkout session id, idempotency key for webhooks
    payment_reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    amount_paid_cents: Mapped[int] = mapped_column(nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [x.value for x in e]),
        default=BookingStatus.PENDING,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Relationships
    slot: Mapped["Slot"] = relationship(lazy="raise")

    __table_args__ = (
        # Prevent double sale: one confirmed/completed booking per slot.
        Index(
            "uq_bookings_slot_sold",
            "slot_id",
            unique=True,
            postgresql_where=_SOLD_WHERE,
            sqlite_where=_SOLD_WHERE,
        ),
        # Expiry sweep
        Index("ix_bookings_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking {self.id} slot={self.slot_id} {self.status.value}>"
