"""Pydantic schemas for API serialisation."""

from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- Slots ---


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    court_name: str
    slot_date: date
    start_time: time
    end_time: time
    base_price_cents: int
    current_price_cents: int
    is_available: bool


class GenerateRequest(BaseModel):
    start_date: date | None = None
    end_date: date | None = None


class GenerateOut(BaseModel):
    slots_created: int
    start_date: date
    end_date: date
    skipped: int


# --- Bookings ---


class ReservationCreate(BaseModel):
    slot_id: int
    customer_name: str = Field(min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: str = Field(min_length=1, max_length=50)


class ReservationOut(BaseModel):
    booking_id: int
    payment_session_reference: str
    redirect_target: str | None


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slot_id: int
    customer_name: str
    customer_email: str
    status: str
    amount_paid_cents: int
    created_at: datetime
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None


class BookingDetailOut(BaseModel):
    booking: BookingOut
    slot: SlotOut


class ReconcileOut(BaseModel):
    expired: int
