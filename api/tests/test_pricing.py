"""Slot price resolution."""

from datetime import date, time
from decimal import Decimal

import pytest

from slotbook.core.exceptions import ConfigurationError
from slotbook.models import RuleType
from slotbook.services.pricing import (
    SOURCE_HOLIDAY,
    SOURCE_HOLIDAY_OVERRIDE,
    SOURCE_WEEKDAY,
    SOURCE_WEEKEND,
    apply_demand_adjustment,
    price_for_slot,
    to_cents,
)
from slotbook.services.rules import DynamicPricing, build_rule_set

WEDNESDAY = date(2026, 10, 21)
SATURDAY = date(2026, 10, 24)


def _demand(**overrides) -> DynamicPricing:
    doc = {
        "enabled": True,
        "high_demand_threshold": 0.8,
        "high_demand_multiplier": 1.2,
        "max_price": 100,
        "low_demand_threshold": 0.3,
        "low_demand_multiplier": 0.9,
        "min_price": 30,
    }
    doc.update(overrides)
    return DynamicPricing.model_validate(doc)


class TestDayClassPricing:
    def test_weekday_evening(self, rule_set):
        quote = price_for_slot(rule_set, "A", WEDNESDAY, time(17, 0), time(18, 30))
        assert quote.base_cents == 8500
        assert quote.current_cents == 8500
        assert quote.source == SOURCE_WEEKDAY

    def test_weekday_early(self, rule_set):
        assert price_for_slot(rule_set, "A", WEDNESDAY, time(7, 0), time(8, 30)).current_cents == 6500

    def test_bucket_chosen_by_slot_start(self, rule_set):
        # 16:00-17:30 straddles two buckets; the start decides
        assert price_for_slot(rule_set, "A", WEDNESDAY, time(16, 0), time(17, 30)).current_cents == 4000

    def test_weekend(self, rule_set):
        quote = price_for_slot(rule_set, "B", SATURDAY, time(9, 30), time(11, 0))
        assert quote.current_cents == 6500
        assert quote.source == SOURCE_WEEKEND

    def test_uncovered_start_is_a_configuration_error(self, rule_documents, build_rules):
        rule_documents[(RuleType.TIME_PRICING, "weekday")] = {
            "time_slots": [{"start": "09:00", "end": "17:00", "price": 40}]
        }
        rules = build_rule_set(build_rules(rule_documents))
        with pytest.raises(ConfigurationError, match="07:00-08:30"):
            price_for_slot(rules, "A", WEDNESDAY, time(7, 0), time(8, 30))


class TestHolidayPricing:
    @pytest.fixture
    def holiday_rules(self, rule_documents, build_rules):
        def _rules(**doc):
            rule_documents[(RuleType.HOLIDAY_PRICING, "fiesta")] = {"dates": [WEDNESDAY.isoformat()], **doc}
            return build_rule_set(build_rules(rule_documents))

        return _rules

    def test_multiplier_applied_to_day_class_price(self, holiday_rules):
        rules = holiday_rules(multiplier=1.5, minimum_price=80)
        quote = price_for_slot(rules, "A", WEDNESDAY, time(17, 0), time(18, 30))
        assert quote.current_cents == 12750
        assert quote.source == SOURCE_HOLIDAY

    def test_minimum_price_floor(self, holiday_rules):
        rules = holiday_rules(multiplier=1.5, minimum_price=80)
        # 40 * 1.5 = 60, floored at 80
        assert price_for_slot(rules, "A", WEDNESDAY, time(10, 30), time(12, 0)).current_cents == 8000

    def test_other_dates_unaffected(self, holiday_rules):
        rules = holiday_rules(multiplier=1.5, minimum_price=80)
        assert price_for_slot(rules, "A", date(2026, 10, 22), time(17, 0), time(18, 30)).current_cents == 8500

    def test_override_is_final(self, holiday_rules, rule_documents, build_rules):
        rule_documents[(RuleType.DYNAMIC_PRICING, "demand")] = _demand().model_dump(mode="json")
        rules = holiday_rules(price_override=[{"start": "17:00", "end": "23:00", "price": 100}])
        quote = price_for_slot(rules, "A", WEDNESDAY, time(17, 0), time(18, 30), utilization=0.95)
        assert quote.base_cents == quote.current_cents == 10000
        assert quote.source == SOURCE_HOLIDAY_OVERRIDE

    def test_override_falls_back_outside_its_buckets(self, holiday_rules):
        rules = holiday_rules(price_override=[{"start": "17:00", "end": "23:00", "price": 100}])
        quote = price_for_slot(rules, "A", WEDNESDAY, time(7, 0), time(8, 30))
        assert quote.current_cents == 6500
        assert quote.source == SOURCE_HOLIDAY


class TestDemandAdjustment:
    def test_high_demand_capped_at_max(self):
        # 8500 * 1.2 = 10200, capped at 100.00
        assert apply_demand_adjustment(8500, _demand(), 0.9) == 10000

    def test_high_demand_below_cap(self):
        assert apply_demand_adjustment(4000, _demand(), 0.9) == 4800

    def test_low_demand_discount(self):
        assert apply_demand_adjustment(4000, _demand(), 0.1) == 3600

    def test_low_demand_floored_at_min(self):
        assert apply_demand_adjustment(4000, _demand(min_price=40), 0.1) == 4000

    def test_high_demand_never_lowers_price_above_cap(self):
        # 150.00 already exceeds the 120.00 cap
        assert apply_demand_adjustment(15000, _demand(max_price=120), 1.0) == 15000

    def test_low_demand_never_raises_price_below_floor(self):
        # 25.00 is already under the 30.00 floor
        assert apply_demand_adjustment(2500, _demand(min_price=30), 0.0) == 2500

    def test_holiday_price_above_cap_kept_under_high_demand(self, rule_documents, build_rules):
        rule_documents[(RuleType.HOLIDAY_PRICING, "christmas")] = {
            "dates": [WEDNESDAY.isoformat()],
            "multiplier": 1.5,
            "minimum_price": 80,
        }
        rule_documents[(RuleType.DYNAMIC_PRICING, "demand")] = _demand(max_price=120).model_dump(mode="json")
        rules = build_rule_set(build_rules(rule_documents))
        quote = price_for_slot(rules, "A", WEDNESDAY, time(17, 30), time(19, 0), utilization=0.95)
        assert quote.base_cents == 12750
        assert quote.current_cents == 12750

    def test_between_thresholds_unchanged(self):
        assert apply_demand_adjustment(4000, _demand(), 0.5) == 4000

    def test_disabled(self):
        assert apply_demand_adjustment(4000, _demand(enabled=False), 0.95) == 4000

    def test_no_rule(self):
        assert apply_demand_adjustment(4000, None, 0.95) == 4000

    def test_base_price_kept_when_adjusted(self, rule_documents, build_rules):
        rule_documents[(RuleType.DYNAMIC_PRICING, "demand")] = _demand().model_dump(mode="json")
        rules = build_rule_set(build_rules(rule_documents))
        quote = price_for_slot(rules, "A", WEDNESDAY, time(17, 0), time(18, 30), utilization=0.0)
        assert quote.base_cents == 8500
        assert quote.current_cents == 7650


class TestToCents:
    def test_whole_units(self):
        assert to_cents(Decimal("85")) == 8500

    def test_rounds_half_up(self):
        assert to_cents(Decimal("12.345")) == 1235
        assert to_cents(Decimal("12.344")) == 1234
