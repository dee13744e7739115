from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Column, DateTime, Index, String, text
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


# Statuses that block their time range for conflict purposes
OCCUPYING_STATUSES: tuple[AppointmentStatus, ...] = (
    AppointmentStatus.scheduled,
    AppointmentStatus.confirmed,
    AppointmentStatus.in_progress,
)

_OCCUPYING_SQL = text("status IN ('scheduled', 'confirmed', 'in_progress')")


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # Two occupying appointments of one provider never share a start instant.
        # Range overlap is enforced on PostgreSQL by the exclusion constraint in migration 002.
        Index(
            "uq_appointments_provider_start_occupying",
            "provider_id",
            "scheduled_at",
            unique=True,
            postgresql_where=_OCCUPYING_SQL,
            sqlite_where=_OCCUPYING_SQL,
        ),
    )
    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="providers.id", index=True)
    service_id: int = Field(foreign_key="services.id", index=True)
    scheduled_at: datetime = Field(sa_type=DateTime(timezone=False), index=True)
    ends_at: datetime = Field(sa_type=DateTime(timezone=False))
    duration_minutes: int
    status: AppointmentStatus = Field(
        default=AppointmentStatus.scheduled,
        sa_column=Column(String(20), nullable=False, default=AppointmentStatus.scheduled.value),
    )
    client_name: str = Field(max_length=100)
    client_email: str = Field(max_length=255)
    client_phone: str | None = Field(default=None, max_length=20)
    client_notes: str | None = None
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime(timezone=False))

