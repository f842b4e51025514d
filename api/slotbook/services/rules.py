"""Rule documents and the effective rule set.

Each rule_type has a fixed document schema. Documents are validated when the
rule set is loaded; unknown fields, unknown rule types and contradictory
values raise ConfigurationError instead of being passed through.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, RootModel, ValidationError, field_validator, model_validator
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.exceptions import ConfigurationError
from slotbook.models.rule import BusinessRule, RuleType

logger = logging.getLogger(__name__)

COURTS_KEY = "courts"
GENERATION_KEY = "slots"
WEEKDAY_KEY = "weekday"
WEEKEND_KEY = "weekend"
DEMAND_KEY = "demand"


def parse_hhmm(value: str) -> time:
    h, m = map(int, value.split(":"))
    return time(h, m)


class _RuleDocument(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


# --- Court configuration ---


class CourtSettings(_RuleDocument):
    offset_minutes: int = Field(ge=0)


class CourtsDocument(RootModel[dict[str, CourtSettings]]):
    @field_validator("root")
    @classmethod
    def _at_least_one_court(cls, v: dict[str, CourtSettings]) -> dict[str, CourtSettings]:
        if not v:
            raise ValueError("at least one court must be configured")
        return v


@dataclass(frozen=True)
class CourtConfig:
    name: str
    start_offset_minutes: int


# --- Generation parameters ---


class GenerationConfig(_RuleDocument):
    duration_minutes: int = Field(gt=0, le=24 * 60)
    operating_start_hour: int = Field(ge=0, le=23)
    operating_end_hour: int = Field(ge=1, le=23)
    horizon_days: int = Field(default=14, ge=1)

    @model_validator(mode="after")
    def _window_is_ordered(self) -> "GenerationConfig":
        if self.operating_start_hour >= self.operating_end_hour:
            raise ValueError("operating_start_hour must be before operating_end_hour")
        return self


# --- Pricing tables ---


class PriceBucket(_RuleDocument):
    start: str
    end: str
    price: Decimal = Field(ge=0)

    @field_validator("start", "end")
    @classmethod
    def _valid_time(cls, v: str) -> str:
        try:
            parse_hhmm(v)
        except ValueError:
            raise ValueError(f"expected HH:MM, got {v!r}") from None
        return v

    @model_validator(mode="after")
    def _start_before_end(self) -> "PriceBucket":
        if self.start_time >= self.end_time:
            raise ValueError(f"bucket {self.start}-{self.end} is empty")
        return self

    @property
    def start_time(self) -> time:
        return parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return parse_hhmm(self.end)

    def contains(self, t: time) -> bool:
        return self.start_time <= t < self.end_time


def _check_no_overlap(buckets: list[PriceBucket]) -> list[PriceBucket]:
    ordered = sorted(buckets, key=lambda b: b.start_time)
    for prev, nxt in zip(ordered, ordered[1:]):
        if nxt.start_time < prev.end_time:
            raise ValueError(f"buckets {prev.start}-{prev.end} and {nxt.start}-{nxt.end} overlap")
    return ordered


class TimePricing(_RuleDocument):
    time_slots: list[PriceBucket] = Field(min_length=1)

    @field_validator("time_slots")
    @classmethod
    def _no_overlap(cls, v: list[PriceBucket]) -> list[PriceBucket]:
        return _check_no_overlap(v)

    def bucket_for(self, t: time) -> PriceBucket | None:
        return next((b for b in self.time_slots if b.contains(t)), None)


class HolidayPricing(_RuleDocument):
    dates: list[date] = Field(min_length=1)
    multiplier: Decimal = Field(default=Decimal(1), gt=0)
    minimum_price: Decimal | None = Field(default=None, ge=0)
    price_override: list[PriceBucket] | None = None

    @field_validator("price_override")
    @classmethod
    def _no_overlap(cls, v: list[PriceBucket] | None) -> list[PriceBucket] | None:
        return _check_no_overlap(v) if v else v

    def override_for(self, t: time) -> PriceBucket | None:
        return next((b for b in self.price_override or [] if b.contains(t)), None)


class DynamicPricing(_RuleDocument):
    enabled: bool = False
    high_demand_threshold: Decimal = Field(ge=0, le=1)
    high_demand_multiplier: Decimal = Field(gt=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    low_demand_threshold: Decimal = Field(ge=0, le=1)
    low_demand_multiplier: Decimal = Field(gt=0)
    min_price: Decimal | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "DynamicPricing":
        if self.low_demand_threshold >= self.high_demand_threshold:
            raise ValueError("low_demand_threshold must be below high_demand_threshold")
        return self


# --- Effective rule set ---


@dataclass(frozen=True)
class RuleSet:
    courts: tuple[CourtConfig, ...]
    generation: GenerationConfig
    weekday: TimePricing
    weekend: TimePricing
    holidays: dict[str, HolidayPricing] = field(default_factory=dict)
    dynamic: DynamicPricing | None = None

    def holiday_for(self, on_date: date) -> HolidayPricing | None:
        """First holiday rule (by key) listing the date."""
        for key in sorted(self.holidays):
            if on_date in self.holidays[key].dates:
                return self.holidays[key]
        return None


def _parse(model, rule_type: RuleType, key: str, value):
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {rule_type.value} rule {key!r}: {exc}") from exc


def build_rule_set(rules: list[BusinessRule]) -> RuleSet:
    """Validate a list of effective rules and assemble them into a RuleSet.

    Raises ConfigurationError on duplicates, unknown keys, malformed documents,
    missing mandatory rules, or court offsets that don't fit the slot duration.
    """
    seen: dict[tuple[RuleType, str], BusinessRule] = {}
    for rule in rules:
        ident = (RuleType(rule.rule_type), rule.rule_key)
        if ident in seen:
            raise ConfigurationError(
                f"More than one active {ident[0].value} rule {ident[1]!r} is in effect"
            )
        seen[ident] = rule

    courts_doc = None
    generation = None
    tables: dict[str, TimePricing] = {}
    holidays: dict[str, HolidayPricing] = {}
    dynamic = None

    for (rule_type, key), rule in seen.items():
        value = rule.rule_value
        if rule_type is RuleType.COURT_CONFIG and key == COURTS_KEY:
            courts_doc = _parse(CourtsDocument, rule_type, key, value)
        elif rule_type is RuleType.GENERATION_CONFIG and key == GENERATION_KEY:
            generation = _parse(GenerationConfig, rule_type, key, value)
        elif rule_type is RuleType.TIME_PRICING and key in (WEEKDAY_KEY, WEEKEND_KEY):
            tables[key] = _parse(TimePricing, rule_type, key, value)
        elif rule_type is RuleType.HOLIDAY_PRICING:
            holidays[key] = _parse(HolidayPricing, rule_type, key, value)
        elif rule_type is RuleType.DYNAMIC_PRICING and key == DEMAND_KEY:
            dynamic = _parse(DynamicPricing, rule_type, key, value)
        else:
            raise ConfigurationError(f"Unknown rule key {key!r} for rule type {rule_type.value}")

    missing = []
    if courts_doc is None:
        missing.append(f"{RuleType.COURT_CONFIG.value}/{COURTS_KEY}")
    if generation is None:
        missing.append(f"{RuleType.GENERATION_CONFIG.value}/{GENERATION_KEY}")
    for key in (WEEKDAY_KEY, WEEKEND_KEY):
        if key not in tables:
            missing.append(f"{RuleType.TIME_PRICING.value}/{key}")
    if missing:
        raise ConfigurationError(f"Missing required rules: {', '.join(missing)}")

    courts = []
    for name in sorted(courts_doc.root):
        offset = courts_doc.root[name].offset_minutes
        if offset >= generation.duration_minutes:
            raise ConfigurationError(
                f"Court {name!r} offset {offset} must be less than the slot duration "
                f"({generation.duration_minutes} minutes)"
            )
        courts.append(CourtConfig(name=name, start_offset_minutes=offset))

    return RuleSet(
        courts=tuple(courts),
        generation=generation,
        weekday=tables[WEEKDAY_KEY],
        weekend=tables[WEEKEND_KEY],
        holidays=holidays,
        dynamic=dynamic,
    )


async def load_rule_set(db: AsyncSession, today: date) -> RuleSet:
    """Read the rules in force on `today` and validate them."""
    result = await db.execute(
        select(BusinessRule).where(
            BusinessRule.is_active.is_(True),
            BusinessRule.effective_from <= today,
            or_(BusinessRule.effective_until.is_(None), BusinessRule.effective_until >= today),
        )
    )
    rules = list(result.scalars().all())
    logger.debug("Loaded %d effective rules for %s", len(rules), today)
    return build_rule_set(rules)
