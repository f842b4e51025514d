"""Rule document validation and effective rule loading."""

from datetime import date, timedelta

import pytest

from slotbook.core.database import async_session_factory
from slotbook.core.exceptions import ConfigurationError
from slotbook.models import BusinessRule, RuleType
from slotbook.services.rules import CourtConfig, build_rule_set, load_rule_set


class TestBuildRuleSet:
    def test_default_documents(self, rule_set):
        assert rule_set.courts == (CourtConfig("A", 0), CourtConfig("B", 30))
        assert rule_set.generation.duration_minutes == 90
        assert rule_set.generation.operating_start_hour == 7
        assert rule_set.generation.operating_end_hour == 23
        assert len(rule_set.weekday.time_slots) == 3
        assert rule_set.holidays == {}
        assert rule_set.dynamic is None

    def test_duplicate_rule_rejected(self, rule_documents, build_rules):
        rules = build_rules(rule_documents)
        rules.append(
            BusinessRule(
                rule_type=RuleType.TIME_PRICING,
                rule_key="weekday",
                rule_value=rule_documents[(RuleType.TIME_PRICING, "weekday")],
                effective_from=date(2020, 1, 1),
                is_active=True,
            )
        )
        with pytest.raises(ConfigurationError, match="More than one"):
            build_rule_set(rules)

    def test_unknown_field_rejected(self, rule_documents, build_rules):
        rule_documents[(RuleType.GENERATION_CONFIG, "slots")]["buffer_minutes"] = 10
        with pytest.raises(ConfigurationError, match="Invalid generation_config"):
            build_rule_set(build_rules(rule_documents))

    def test_unknown_rule_key_rejected(self, rule_documents, build_rules):
        rule_documents[(RuleType.TIME_PRICING, "bank_holiday")] = {
            "time_slots": [{"start": "07:00", "end": "23:00", "price": 50}]
        }
        with pytest.raises(ConfigurationError, match="Unknown rule key"):
            build_rule_set(build_rules(rule_documents))

    def test_missing_weekend_table(self, rule_documents, build_rules):
        del rule_documents[(RuleType.TIME_PRICING, "weekend")]
        with pytest.raises(ConfigurationError, match="time_pricing/weekend"):
            build_rule_set(build_rules(rule_documents))

    def test_overlapping_buckets_rejected(self, rule_documents, build_rules):
        rule_documents[(RuleType.TIME_PRICING, "weekday")]["time_slots"][1]["start"] = "08:30"
        with pytest.raises(ConfigurationError, match="overlap"):
            build_rule_set(build_rules(rule_documents))

    def test_malformed_bucket_time_rejected(self, rule_documents, build_rules):
        rule_documents[(RuleType.TIME_PRICING, "weekend")]["time_slots"][0]["end"] = "late"
        with pytest.raises(ConfigurationError):
            build_rule_set(build_rules(rule_documents))

    def test_offset_must_be_below_duration(self, rule_documents, build_rules):
        rule_documents[(RuleType.COURT_CONFIG, "courts")]["B"]["offset_minutes"] = 90
        with pytest.raises(ConfigurationError, match="offset"):
            build_rule_set(build_rules(rule_documents))

    def test_operating_window_must_be_ordered(self, rule_documents, build_rules):
        rule_documents[(RuleType.GENERATION_CONFIG, "slots")]["operating_start_hour"] = 23
        with pytest.raises(ConfigurationError):
            build_rule_set(build_rules(rule_documents))

    def test_demand_thresholds_must_be_ordered(self, rule_documents, build_rules):
        rule_documents[(RuleType.DYNAMIC_PRICING, "demand")] = {
            "enabled": True,
            "high_demand_threshold": 0.3,
            "high_demand_multiplier": 1.2,
            "low_demand_threshold": 0.8,
            "low_demand_multiplier": 0.9,
        }
        with pytest.raises(ConfigurationError, match="low_demand_threshold"):
            build_rule_set(build_rules(rule_documents))

    def test_no_courts_rejected(self, rule_documents, build_rules):
        rule_documents[(RuleType.COURT_CONFIG, "courts")] = {}
        with pytest.raises(ConfigurationError):
            build_rule_set(build_rules(rule_documents))

    def test_first_holiday_by_key_wins(self, rule_documents, build_rules):
        rule_documents[(RuleType.HOLIDAY_PRICING, "b-local")] = {"dates": ["2026-12-25"], "multiplier": 2}
        rule_documents[(RuleType.HOLIDAY_PRICING, "a-national")] = {"dates": ["2026-12-25"], "multiplier": 1.5}
        rules = build_rule_set(build_rules(rule_documents))
        assert rules.holiday_for(date(2026, 12, 25)) is rules.holidays["a-national"]
        assert rules.holiday_for(date(2026, 12, 24)) is None


async def test_load_rule_set_skips_inactive_and_out_of_range(rule_documents, seed_rules):
    await seed_rules(rule_documents)
    today = date.today()
    stale = {"time_slots": [{"start": "00:00", "end": "01:00", "price": 1}]}
    async with async_session_factory() as db:
        db.add_all(
            [
                BusinessRule(
                    rule_type=RuleType.TIME_PRICING,
                    rule_key="weekday",
                    rule_value=stale,
                    effective_from=date(2019, 1, 1),
                    effective_until=today - timedelta(days=1),
                    is_active=True,
                ),
                BusinessRule(
                    rule_type=RuleType.TIME_PRICING,
                    rule_key="weekday",
                    rule_value=stale,
                    effective_from=today + timedelta(days=1),
                    is_active=True,
                ),
                BusinessRule(
                    rule_type=RuleType.TIME_PRICING,
                    rule_key="weekday",
                    rule_value=stale,
                    effective_from=date(2019, 1, 1),
                    is_active=False,
                ),
            ]
        )
        await db.commit()

        rules = await load_rule_set(db, today)

    assert [b.start for b in rules.weekday.time_slots] == ["07:00", "09:00", "17:00"]


async def test_load_rule_set_without_rules():
    async with async_session_factory() as db:
        with pytest.raises(ConfigurationError, match="Missing required rules"):
            await load_rule_set(db, date.today())
