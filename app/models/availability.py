from datetime import time

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


class AvailabilityRule(SQLModel, table=True):
    """Recurring weekly open window. day_of_week: 0 = Sunday ... 6 = Saturday."""

    __tablename__ = "availability_rules"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_rules_day_of_week"),
        CheckConstraint("start_time < end_time", name="ck_availability_rules_start_before_end"),
    )
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    day_of_week: int = Field(index=True)
    start_time: time
    end_time: time
    is_active: bool = True


class AvailabilityRulePublic(SQLModel):
    day_of_week: int
    start_time: time
    end_time: time
