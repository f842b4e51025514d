"""Pricing resolver for generated slots.

Pure calculation: given the effective rule set, a court, a date and a slot
interval, return the price in cents. Resolution order, first match wins:

1. Holiday: a fixed override bucket is final. Otherwise the day-class price
   is multiplied by the holiday multiplier, then floored at minimum_price.
2. Day class: weekday (Mon-Fri) or weekend (Sat-Sun) table, bucket that
   contains the slot start.
3. Demand: when enabled, utilization above the high threshold multiplies
   the price (capped at max_price); below the low threshold it discounts
   (floored at min_price). Never applied to a fixed holiday override.

Rule prices are in major currency units; everything returned is in cents.
"""

from dataclasses import dataclass
from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal

from slotbook.core.exceptions import ConfigurationError
from slotbook.services.rules import DynamicPricing, RuleSet, TimePricing

# Price sources
SOURCE_WEEKDAY = "weekday"
SOURCE_WEEKEND = "weekend"
SOURCE_HOLIDAY = "holiday"
SOURCE_HOLIDAY_OVERRIDE = "holiday_override"


@dataclass(frozen=True)
class PriceQuote:
    base_cents: int
    current_cents: int
    source: str


def to_cents(amount: Decimal) -> int:
    """Major units to whole cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _scale(cents: int, factor: Decimal) -> int:
    return int((Decimal(cents) * factor).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_weekend(on_date: date) -> bool:
    return on_date.weekday() >= 5


def _day_class_price(
    table: TimePricing, table_name: str, court_name: str, on_date: date, start: time, end: time
) -> int:
    bucket = table.bucket_for(start)
    if bucket is None:
        raise ConfigurationError(
            f"No {table_name} price covers {start.strftime('%H:%M')}-{end.strftime('%H:%M')} "
            f"(court {court_name!r}, {on_date.isoformat()})"
        )
    return to_cents(bucket.price)


def apply_demand_adjustment(cents: int, dynamic: DynamicPricing | None, utilization: float | None) -> int:
    """Adjust a resolved price for court utilization on the day."""
    if dynamic is None or not dynamic.enabled or utilization is None:
        return cents

    # The cap and floor bound the adjustment only; a surge never lowers a
    # price and a discount never raises one.
    ratio = Decimal(str(utilization))
    if ratio > dynamic.high_demand_threshold:
        adjusted = _scale(cents, dynamic.high_demand_multiplier)
        if dynamic.max_price is not None:
            adjusted = min(adjusted, to_cents(dynamic.max_price))
        return max(cents, adjusted)
    if ratio < dynamic.low_demand_threshold:
        adjusted = _scale(cents, dynamic.low_demand_multiplier)
        if dynamic.min_price is not None:
            adjusted = max(adjusted, to_cents(dynamic.min_price))
        return min(cents, adjusted)
    return cents


def price_for_slot(
    rules: RuleSet,
    court_name: str,
    on_date: date,
    start: time,
    end: time,
    utilization: float | None = None,
) -> PriceQuote:
    """Resolve the price of one slot.

    Raises ConfigurationError when no bucket covers the slot start, so a
    misconfigured table fails generation instead of pricing at zero.
    """
    weekend = is_weekend(on_date)
    table = rules.weekend if weekend else rules.weekday
    table_name = SOURCE_WEEKEND if weekend else SOURCE_WEEKDAY

    holiday = rules.holiday_for(on_date)
    if holiday is not None:
        override = holiday.override_for(start)
        if override is not None:
            cents = to_cents(override.price)
            return PriceQuote(base_cents=cents, current_cents=cents, source=SOURCE_HOLIDAY_OVERRIDE)

        base = _scale(_day_class_price(table, table_name, court_name, on_date, start, end), holiday.multiplier)
        if holiday.minimum_price is not None:
            base = max(base, to_cents(holiday.minimum_price))
        source = SOURCE_HOLIDAY
    else:
        base = _day_class_price(table, table_name, court_name, on_date, start, end)
        source = table_name

    current = apply_demand_adjustment(base, rules.dynamic, utilization)
    return PriceQuote(base_cents=base, current_cents=current, source=source)
