"""All models imported here for Alembic autogenerate discovery."""

from slotbook.models.base import Base
from slotbook.models.booking import SOLD_STATUSES, Booking, BookingStatus
from slotbook.models.rule import BusinessRule, RuleType
from slotbook.models.slot import Slot

__all__ = [
    "Base",
    "BusinessRule",
    "RuleType",
    "Slot",
    "Booking",
    "BookingStatus",
    "SOLD_STATUSES",
]
