"""Business rule model.

Administrators maintain pricing, court and generation rules as typed JSON
documents. Rows are versioned by effective date range; the core only reads
the set that is in force today (see services/rules.py).
"""

import enum
from datetime import date

from sqlalchemy import Boolean, Date, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.models.base import Base, JSONDocument, TimestampMixin


class RuleType(enum.StrEnum):
    COURT_CONFIG = "court_config"
    GENERATION_CONFIG = "generation_config"
    TIME_PRICING = "time_pricing"
    HOLIDAY_PRICING = "holiday_pricing"
    DYNAMIC_PRICING = "dynamic_pricing"


class BusinessRule(TimestampMixin, Base):
    __tablename__ = "business_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    rule_type: Mapped[RuleType] = mapped_column(
        Enum(RuleType, name="rule_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )
    rule_key: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_value: Mapped[dict] = mapped_column(JSONDocument, nullable=False)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_until: Mapped[date | None] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("ix_business_rules_type_key", "rule_type", "rule_key"),)

    def __repr__(self) -> str:
        return f"<BusinessRule {self.rule_type.value}/{self.rule_key} from {self.effective_from}>"
