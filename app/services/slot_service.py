import logging
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import bounded
from app.core.errors import InternalError, NotFound
from app.models.appointment import OCCUPYING_STATUSES, Appointment
from app.models.availability import AvailabilityRule
from app.models.provider import Provider
from app.models.service import Service
from app.services.intervals import Interval, quantize, subtract_busy_from_window

logger = logging.getLogger(__name__)


def day_of_week(d: date) -> int:
    """0 = Sunday ... 6 = Saturday, the numbering availability rules are stored with."""
    return (d.weekday() + 1) % 7


def provider_zone(provider: Provider) -> ZoneInfo:
    try:
        return ZoneInfo(provider.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InternalError(f"provider {provider.id} has unknown timezone {provider.timezone!r}") from e


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def local_day_bounds(d: date, tz: ZoneInfo | None) -> Interval:
    """The calendar day d in tz (UTC when tz is None) as a naive UTC interval."""
    start = datetime.combine(d, time.min, tzinfo=tz)
    end = datetime.combine(d + timedelta(days=1), time.min, tzinfo=tz)
    return Interval(to_naive_utc(start), to_naive_utc(end))


def rule_window(rule: AvailabilityRule, d: date, tz: ZoneInfo) -> Interval:
    start = datetime.combine(d, rule.start_time, tzinfo=tz)
    end = datetime.combine(d, rule.end_time, tzinfo=tz)
    return Interval(to_naive_utc(start), to_naive_utc(end))


async def get_provider(session: AsyncSession, provider_id: int) -> Provider | None:
    return await bounded(session.get(Provider, provider_id))


async def get_service(session: AsyncSession, service_id: int) -> Service | None:
    return await bounded(session.get(Service, service_id))


async def get_active_rules(
    session: AsyncSession, provider_id: int, weekday: int
) -> list[AvailabilityRule]:
    result = await bounded(
        session.execute(
            select(AvailabilityRule)
            .where(
                AvailabilityRule.provider_id == provider_id,
                AvailabilityRule.day_of_week == weekday,
                AvailabilityRule.is_active.is_(True),
            )
            .order_by(AvailabilityRule.start_time)
        )
    )
    return list(result.scalars().all())


async def get_busy_intervals(
    session: AsyncSession,
    provider_id: int,
    window: Interval,
    exclude_appointment_id: int | None = None,
) -> list[Interval]:
    """Occupying appointments of the provider that overlap window, as intervals."""
    q = select(Appointment.id, Appointment.scheduled_at, Appointment.duration_minutes).where(
        Appointment.provider_id == provider_id,
        Appointment.status.in_([s.value for s in OCCUPYING_STATUSES]),
        Appointment.scheduled_at < window.end,
        Appointment.ends_at > window.start,
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await bounded(session.execute(q))
    return [
        Interval.from_duration(scheduled_at, duration)
        for _, scheduled_at, duration in result.all()
    ]


async def resolve_available_slots(
    session: AsyncSession, provider_id: int, d: date, service_id: int
) -> list[datetime]:
    """Ordered bookable start instants for the provider on d, in the provider's timezone.

    The result only reflects state at query time; booking re-checks conflicts before commit.
    """
    try:
        service = await get_service(session, service_id)
        if not service or not service.is_active or service.provider_id != provider_id:
            raise NotFound("Service not found")
        provider = await get_provider(session, provider_id)
        if not provider or not provider.is_publicly_bookable:
            raise NotFound("Provider not found")
        tz = provider_zone(provider)

        rules = await get_active_rules(session, provider_id, day_of_week(d))
        if not rules:
            return []

        busy = await get_busy_intervals(session, provider_id, local_day_bounds(d, tz))
        starts: set[datetime] = set()
        for rule in rules:
            window = rule_window(rule, d, tz)
            free = subtract_busy_from_window(window, busy)
            starts.update(
                quantize(free, settings.slot_step_minutes, service.duration_minutes, anchor=window.start)
            )
    except SQLAlchemyError as e:
        logger.exception("Slot query failed for provider %s: %s", provider_id, e)
        raise InternalError("slot query failed") from e

    slots = [s.replace(tzinfo=UTC).astimezone(tz) for s in sorted(starts)]
    logger.info(
        "Resolved %d slot(s) for provider=%s service=%s date=%s",
        len(slots), provider_id, service_id, d.isoformat(),
    )
    return slots


def format_slot_times(slots: list[datetime]) -> list[str]:
    return [s.strftime("%H:%M") for s in slots]
