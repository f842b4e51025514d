"""Seed the database with the default business rules.

Run with: python -m scripts.seed
Creates the tables, inserts the court, generation and pricing rules if they
are missing, generates slots for the horizon and prints an admin token.
"""

import asyncio
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.auth import create_admin_token
from slotbook.core.database import async_session_factory, engine
from slotbook.models import Base, BusinessRule, RuleType
from slotbook.services.slot_generator import generate_slots

EFFECTIVE_FROM = date(2025, 1, 1)

# Two courts; B starts half an hour after A so players can stagger arrivals.
RULES = [
    (RuleType.COURT_CONFIG, "courts", {"A": {"offset_minutes": 0}, "B": {"offset_minutes": 30}}),
    (
        RuleType.GENERATION_CONFIG,
        "slots",
        {"duration_minutes": 90, "operating_start_hour": 7, "operating_end_hour": 23, "horizon_days": 14},
    ),
    (
        RuleType.TIME_PRICING,
        "weekday",
        {
            "time_slots": [
                {"start": "07:00", "end": "09:00", "price": 65},
                {"start": "09:00", "end": "17:00", "price": 40},
                {"start": "17:00", "end": "23:00", "price": 85},
            ]
        },
    ),
    (
        RuleType.TIME_PRICING,
        "weekend",
        {"time_slots": [{"start": "07:00", "end": "23:00", "price": 65}]},
    ),
    (
        RuleType.HOLIDAY_PRICING,
        "christmas",
        {"dates": ["2025-12-25", "2025-12-26", "2026-12-25", "2026-12-26"], "multiplier": 1.5, "minimum_price": 80},
    ),
    (
        RuleType.DYNAMIC_PRICING,
        "demand",
        {
            "enabled": False,
            "high_demand_threshold": 0.8,
            "high_demand_multiplier": 1.2,
            "max_price": 120,
            "low_demand_threshold": 0.3,
            "low_demand_multiplier": 0.9,
            "min_price": 30,
        },
    ),
]


async def seed_rules(db: AsyncSession) -> int:
    created = 0
    for rule_type, key, value in RULES:
        result = await db.execute(
            select(BusinessRule).where(BusinessRule.rule_type == rule_type, BusinessRule.rule_key == key)
        )
        if result.scalar_one_or_none():
            print(f"  = {rule_type.value}/{key} exists")
            continue
        db.add(
            BusinessRule(
                rule_type=rule_type,
                rule_key=key,
                rule_value=value,
                effective_from=EFFECTIVE_FROM,
                is_active=True,
            )
        )
        created += 1
        print(f"  + {rule_type.value}/{key}")
    await db.commit()
    return created


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        print("Seeding business rules...")
        created = await seed_rules(db)
        print(f"{created} rules created.")

        result = await generate_slots(db)
        print(f"Generated {result.slots_created} slots from {result.start_date} to {result.end_date}.")

    await engine.dispose()
    print(f"\nAdmin token:\n{create_admin_token()}")


if __name__ == "__main__":
    asyncio.run(main())
