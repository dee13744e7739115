import asyncio
import os
import tempfile
from datetime import UTC, date, datetime, time, timedelta

# Settings are read at import time; point them at a throwaway SQLite file first.
_DB_DIR = tempfile.mkdtemp(prefix="slotbook-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["ENV"] = "test"

import pytest  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from app.core.db import async_session_maker, engine  # noqa: E402
from app.models import (  # noqa: E402
    Appointment,
    AppointmentStatus,
    AvailabilityRule,
    Provider,
    Service,
)


def run(coro):
    return asyncio.run(coro)


def upcoming(day_of_week: int, weeks_ahead: int = 1) -> date:
    """A date at least `weeks_ahead` weeks out falling on day_of_week (0 = Sunday)."""
    d = datetime.now(UTC).date() + timedelta(weeks=weeks_ahead)
    while (d.weekday() + 1) % 7 != day_of_week:
        d += timedelta(days=1)
    return d


def at(d: date, hh: int, mm: int = 0) -> datetime:
    """Naive UTC datetime on d."""
    return datetime.combine(d, time(hh, mm))


class Seeder:
    """Synchronous helpers that write fixtures straight to the test database."""

    def _add(self, obj):
        async def _go():
            async with async_session_maker() as session:
                session.add(obj)
                await session.commit()
                await session.refresh(obj)
                return obj

        return run(_go())

    def provider(self, slug: str = "dr-ana", **kwargs) -> Provider:
        kwargs.setdefault("full_name", "Ana Souza")
        return self._add(Provider(slug=slug, **kwargs))

    def service(self, provider: Provider, duration_minutes: int = 30, **kwargs) -> Service:
        kwargs.setdefault("name", f"Session {duration_minutes}m")
        return self._add(Service(provider_id=provider.id, duration_minutes=duration_minutes, **kwargs))

    def rule(self, provider: Provider, day_of_week: int, start: str, end: str, **kwargs) -> AvailabilityRule:
        return self._add(
            AvailabilityRule(
                provider_id=provider.id,
                day_of_week=day_of_week,
                start_time=time.fromisoformat(start),
                end_time=time.fromisoformat(end),
                **kwargs,
            )
        )

    def appointment(
        self,
        provider: Provider,
        service: Service,
        scheduled_at: datetime,
        duration_minutes: int | None = None,
        status: AppointmentStatus = AppointmentStatus.scheduled,
    ) -> Appointment:
        minutes = duration_minutes or service.duration_minutes
        return self._add(
            Appointment(
                provider_id=provider.id,
                service_id=service.id,
                scheduled_at=scheduled_at,
                ends_at=scheduled_at + timedelta(minutes=minutes),
                duration_minutes=minutes,
                status=status.value,
                client_name="Existing Client",
                client_email="existing@example.com",
            )
        )

    def appointments(self, provider: Provider) -> list[Appointment]:
        from sqlalchemy import select

        async def _go():
            async with async_session_maker() as session:
                result = await session.execute(
                    select(Appointment)
                    .where(Appointment.provider_id == provider.id)
                    .order_by(Appointment.scheduled_at)
                )
                return list(result.scalars().all())

        return run(_go())


@pytest.fixture(autouse=True)
def reset_database() -> None:
    async def _reset():
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)
            await conn.run_sync(SQLModel.metadata.create_all)

    run(_reset())
    yield


@pytest.fixture
def seed() -> Seeder:
    return Seeder()
