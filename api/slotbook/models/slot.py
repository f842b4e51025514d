"""Slot model.

A slot is a fixed-duration, priced interval on one court. Slots are written
by the slot generator and flipped between available and unavailable by the
booking coordinator only.
"""

from datetime import date, time

from sqlalchemy import DDL, Boolean, CheckConstraint, Date, Index, String, Time, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.models.base import Base, TimestampMixin


class Slot(TimestampMixin, Base):
    __tablename__ = "slots"

    id: Mapped[int] = mapped_column(primary_key=True)
    court_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # When
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Price (cents). base = rule price, current = after demand adjustment
    base_price_cents: Mapped[int] = mapped_column(nullable=False)
    current_price_cents: Mapped[int] = mapped_column(nullable=False)

    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        # Upsert key for idempotent generation
        UniqueConstraint("court_name", "slot_date", "start_time", name="uq_slots_court_date_start"),
        CheckConstraint("start_time < end_time", name="ck_slots_interval"),
        # Slot picker: available slots by date
        Index("ix_slots_date_available", "slot_date", "is_available"),
    )

    def __repr__(self) -> str:
        return f"<Slot {self.court_name} {self.slot_date} {self.start_time}-{self.end_time}>"


# Postgres enforces non-overlapping [start, end) per court at the storage level.
event.listen(
    Slot.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Slot.__table__,
    "after_create",
    DDL(
        "ALTER TABLE slots ADD CONSTRAINT ex_slots_no_overlap EXCLUDE USING gist "
        "(court_name WITH =, tsrange(slot_date + start_time, slot_date + end_time) WITH &&)"
    ).execute_if(dialect="postgresql"),
)
