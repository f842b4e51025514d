"""Slot generation from the effective rule set.

Each court's operating window is walked in fixed ticks of the configured
duration, starting at the opening hour plus the court's offset. A slot is
produced while it still ends within the window, so ticks never overlap and
there are no gaps. Every slot is priced by the pricing resolver and written
with an idempotent upsert keyed by (court, date, start time).

Existing slots keep their availability. Prices and end time are refreshed
only on slots that are still available, so a rerun never disturbs a booking.
"""

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.clock import venue_today
from slotbook.core.exceptions import ConfigurationError, IntegrityViolation
from slotbook.models.base import utcnow
from slotbook.models.slot import Slot
from slotbook.services.pricing import price_for_slot
from slotbook.services.rules import CourtConfig, GenerationConfig, RuleSet, load_rule_set

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


@dataclass(frozen=True)
class SlotCandidate:
    court_name: str
    slot_date: date
    start_time: time
    end_time: time
    base_price_cents: int
    current_price_cents: int


@dataclass(frozen=True)
class GenerationResult:
    slots_created: int
    start_date: date
    end_date: date
    skipped: int = 0


def _minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def tick_intervals(court: CourtConfig, generation: GenerationConfig) -> list[tuple[time, time]]:
    """Return the [start, end) intervals for one court-day.

    With 90-minute ticks and a 07:00-23:00 window, a court with offset 0
    gets 07:00-08:30 ... 20:30-22:00; offset 30 starts at 07:30.
    """
    duration = generation.duration_minutes
    close = generation.operating_end_hour * 60
    current = generation.operating_start_hour * 60 + court.start_offset_minutes

    intervals: list[tuple[time, time]] = []
    while current + duration <= close:
        intervals.append((_minutes_to_time(current), _minutes_to_time(current + duration)))
        current += duration
    return intervals


def build_candidates(
    rules: RuleSet,
    court: CourtConfig,
    on_date: date,
    utilization: float | None = None,
) -> list[SlotCandidate]:
    """Priced slots for one court on one date. Raises ConfigurationError on a pricing gap."""
    candidates = []
    for start, end in tick_intervals(court, rules.generation):
        quote = price_for_slot(rules, court.name, on_date, start, end, utilization)
        candidates.append(
            SlotCandidate(
                court_name=court.name,
                slot_date=on_date,
                start_time=start,
                end_time=end,
                base_price_cents=quote.base_cents,
                current_price_cents=quote.current_cents,
            )
        )
    return candidates


def assert_no_overlap(candidates: list[SlotCandidate]) -> None:
    """Raise IntegrityViolation if any two candidates on the same court-day overlap."""
    by_court: dict[tuple[str, date], list[SlotCandidate]] = {}
    for c in candidates:
        by_court.setdefault((c.court_name, c.slot_date), []).append(c)

    for (court_name, on_date), group in by_court.items():
        group.sort(key=lambda c: c.start_time)
        for prev, nxt in zip(group, group[1:]):
            if nxt.start_time < prev.end_time:
                raise IntegrityViolation(
                    f"Generated overlapping slots for {court_name} on {on_date}: "
                    f"{prev.start_time}-{prev.end_time} and {nxt.start_time}-{nxt.end_time}"
                )


def date_range(start_date: date, end_date: date) -> list[date]:
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days + 1)]


async def court_utilization(db: AsyncSession, court_name: str, on_date: date) -> float:
    """Share of a court's slots on a date that are no longer available (0 when there are none)."""
    result = await db.execute(
        select(
            func.count(Slot.id),
            func.coalesce(func.sum(case((Slot.is_available.is_(False), 1), else_=0)), 0),
        ).where(Slot.court_name == court_name, Slot.slot_date == on_date)
    )
    total, taken = result.one()
    return taken / total if total else 0.0


async def _existing_intervals(db: AsyncSession, court_name: str, on_date: date) -> dict[time, time]:
    result = await db.execute(
        select(Slot.start_time, Slot.end_time).where(Slot.court_name == court_name, Slot.slot_date == on_date)
    )
    return {start: end for start, end in result.all()}


def _off_grid(candidate: SlotCandidate, existing: dict[time, time]) -> bool:
    """True if the candidate overlaps an existing slot with a different start (the grid changed)."""
    return any(
        start != candidate.start_time and start < candidate.end_time and end > candidate.start_time
        for start, end in existing.items()
    )


def _upsert_statement(dialect_name: str, candidates: list[SlotCandidate]):
    insert = _UPSERT_INSERTS.get(dialect_name)
    if insert is None:
        raise RuntimeError(f"Slot upsert is not supported on {dialect_name}")

    now = utcnow()
    rows = [
        {
            "court_name": c.court_name,
            "slot_date": c.slot_date,
            "start_time": c.start_time,
            "end_time": c.end_time,
            "base_price_cents": c.base_price_cents,
            "current_price_cents": c.current_price_cents,
            "is_available": True,
            "created_at": now,
            "updated_at": now,
        }
        for c in candidates
    ]
    stmt = insert(Slot).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=["court_name", "slot_date", "start_time"],
        set_={
            "end_time": stmt.excluded.end_time,
            "base_price_cents": stmt.excluded.base_price_cents,
            "current_price_cents": stmt.excluded.current_price_cents,
            "updated_at": now,
        },
        # Booked slots keep the price the customer was quoted
        where=Slot.is_available.is_(True),
    )


async def generate_slots(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    *,
    today: date | None = None,
) -> GenerationResult:
    """Create or refresh slots for every court on every date in [start_date, end_date].

    Defaults to today through the configured horizon. Each court-day is
    committed on its own, so a ConfigurationError part way through leaves
    earlier court-days intact and a rerun picks up where it stopped.
    """
    today = today or venue_today()
    rules = await load_rule_set(db, today)

    start_date = start_date or today
    end_date = end_date or start_date + timedelta(days=rules.generation.horizon_days - 1)
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")

    dialect_name = db.get_bind().dialect.name
    demand_pricing = rules.dynamic is not None and rules.dynamic.enabled
    written = 0
    skipped = 0

    for on_date in date_range(start_date, end_date):
        for court in rules.courts:
            utilization = await court_utilization(db, court.name, on_date) if demand_pricing else None
            try:
                candidates = build_candidates(rules, court, on_date, utilization)
            except ConfigurationError:
                await db.rollback()
                logger.error("Slot generation aborted at %s on %s", court.name, on_date)
                raise
            assert_no_overlap(candidates)

            existing = await _existing_intervals(db, court.name, on_date)
            to_write = [c for c in candidates if not _off_grid(c, existing)]
            if len(to_write) < len(candidates):
                skipped += len(candidates) - len(to_write)
                logger.warning(
                    "Skipped %d slots for %s on %s that overlap existing slots from a previous grid",
                    len(candidates) - len(to_write),
                    court.name,
                    on_date,
                )
            if not to_write:
                continue

            try:
                await db.execute(_upsert_statement(dialect_name, to_write))
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                logger.critical("Overlapping slot rejected by storage for %s on %s", court.name, on_date)
                raise IntegrityViolation(f"Overlapping slot for {court.name} on {on_date}") from exc
            written += len(to_write)

    logger.info(
        "Generated %d slots for %d courts from %s to %s (%d skipped)",
        written,
        len(rules.courts),
        start_date,
        end_date,
        skipped,
    )
    return GenerationResult(slots_created=written, start_date=start_date, end_date=end_date, skipped=skipped)
