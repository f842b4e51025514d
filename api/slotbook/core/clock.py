"""Wall-clock helpers in the venue's timezone."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from slotbook.core.config import settings

VENUE_TZ = ZoneInfo(settings.timezone)


def venue_now() -> datetime:
    return datetime.now(VENUE_TZ)


def venue_today() -> date:
    return venue_now().date()
