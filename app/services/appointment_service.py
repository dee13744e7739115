import asyncio
import calendar
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import bounded
from app.core.errors import InternalError, NotBookable, OutOfWindow, SlotTaken, ValidationError
from app.models.appointment import Appointment, AppointmentStatus
from app.models.booking import BookingConfirmation, BookingRequest
from app.services.conflict_service import has_conflict
from app.services.slot_service import get_provider, get_service, to_naive_utc

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)

# SQLSTATEs raised when the store rejects an overlapping occupying appointment
_OVERLAP_SQLSTATES = {"23P01", "23505"}  # exclusion_violation, unique_violation


class ProviderLockRegistry:
    """One asyncio.Lock per provider; serializes check+insert within this process.

    Across processes the store constraints on appointments are what decide a race.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def get(self, provider_id: int) -> asyncio.Lock:
        lock = self._locks.get(provider_id)
        if lock is None:
            lock = self._locks[provider_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, provider_id: int) -> AsyncIterator[None]:
        async with self.get(provider_id):
            yield


@dataclass
class ValidatedBooking:
    provider_id: int
    service_id: int
    client_name: str
    client_email: str
    client_phone: str | None
    scheduled_at: datetime  # naive UTC
    client_notes: str | None


def add_months(dt: datetime, months: int) -> datetime:
    """Same day-of-month `months` later, clamped to the target month's last day."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _parse_scheduled_at(value: str | None) -> datetime:
    if not value or not isinstance(value, str):
        raise ValidationError("Valid scheduled time is required")
    try:
        parsed = datetime.fromisoformat(value.strip())
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        # Offsets can push the instant past datetime.min/max
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        raise ValidationError("Valid scheduled time is required")


def validate_booking_request(request: BookingRequest) -> ValidatedBooking:
    """Structural validation: presence, lengths, email shape. Notes are truncated, not rejected."""
    if request.provider_id is None:
        raise ValidationError("Provider ID is required")
    if request.service_id is None:
        raise ValidationError("Service ID is required")

    name = (request.client_name or "").strip()
    if len(name) < settings.client_name_min_length:
        raise ValidationError(
            f"Client name is required and must be at least {settings.client_name_min_length} characters"
        )
    if len(name) > settings.client_name_max_length:
        raise ValidationError("Client name too long")

    email = (request.client_email or "").strip().lower()
    if not email:
        raise ValidationError("Client email is required")
    if len(email) > settings.client_email_max_length:
        raise ValidationError("Client email too long")
    try:
        _email_adapter.validate_python(email)
    except PydanticValidationError:
        raise ValidationError("Invalid email format")

    phone = (request.client_phone or "").strip() or None
    if phone and len(phone) > settings.client_phone_max_length:
        raise ValidationError("Client phone too long")

    scheduled_at = _parse_scheduled_at(request.scheduled_at)

    notes = (request.client_notes or "").strip()[: settings.client_notes_max_length] or None

    return ValidatedBooking(
        provider_id=request.provider_id,
        service_id=request.service_id,
        client_name=name,
        client_email=email,
        client_phone=phone,
        scheduled_at=to_naive_utc(scheduled_at),
        client_notes=notes,
    )


def check_booking_window(scheduled_at: datetime, now: datetime) -> None:
    """scheduled_at and now are naive UTC. Strictly future, at most max_advance_months ahead."""
    if scheduled_at <= now:
        raise OutOfWindow("Cannot book appointments in the past")
    if scheduled_at > add_months(now, settings.max_advance_months):
        raise OutOfWindow(
            f"Cannot book appointments more than {settings.max_advance_months} months in advance"
        )


def _is_overlap_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate in _OVERLAP_SQLSTATES
    # sqlite3 reports constraint failures by message only
    return "UNIQUE constraint failed: appointments" in str(orig)


async def create_public_appointment(
    session: AsyncSession,
    request: BookingRequest,
    *,
    locks: ProviderLockRegistry,
    now: datetime | None = None,
) -> BookingConfirmation:
    """Validate and commit an anonymous booking, or raise a BookingError.

    Nothing is written unless every check passes. Commits the session itself so the
    commit happens while the provider lock is still held.
    """
    booking = validate_booking_request(request)
    current = to_naive_utc(now or datetime.now(UTC))
    check_booking_window(booking.scheduled_at, current)

    try:
        service = await get_service(session, booking.service_id)
        if (
            not service
            or not service.is_active
            or service.provider_id != booking.provider_id
        ):
            raise NotBookable("Service not found or not available")
        provider = await get_provider(session, booking.provider_id)
        if not provider or not provider.is_publicly_bookable:
            raise NotBookable("Professional does not accept online bookings")

        async with locks.hold(booking.provider_id):
            if await has_conflict(
                session, booking.provider_id, booking.scheduled_at, service.duration_minutes
            ):
                logger.info(
                    "Booking rejected: provider=%s slot %s already taken",
                    booking.provider_id, booking.scheduled_at.isoformat(),
                )
                raise SlotTaken()

            appointment = Appointment(
                provider_id=booking.provider_id,
                service_id=service.id,
                scheduled_at=booking.scheduled_at,
                ends_at=booking.scheduled_at + timedelta(minutes=service.duration_minutes),
                duration_minutes=service.duration_minutes,
                status=AppointmentStatus.scheduled.value,
                client_name=booking.client_name,
                client_email=booking.client_email,
                client_phone=booking.client_phone,
                client_notes=booking.client_notes,
            )
            session.add(appointment)
            await bounded(session.flush())
            appointment_id = appointment.id
            await bounded(session.commit())
    except IntegrityError as e:
        await session.rollback()
        if not _is_overlap_violation(e):
            logger.exception("Failed to create appointment: %s", e)
            raise InternalError("appointment insert failed") from e
        logger.info(
            "Booking rejected: provider=%s lost commit race for %s",
            booking.provider_id, booking.scheduled_at.isoformat(),
        )
        raise SlotTaken() from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Failed to create appointment: %s", e)
        raise InternalError("appointment insert failed") from e

    logger.info(
        "Appointment %s created for provider=%s at %s",
        appointment_id, booking.provider_id, booking.scheduled_at.isoformat(),
    )
    return BookingConfirmation(
        id=appointment_id,
        scheduled_at=booking.scheduled_at.replace(tzinfo=UTC),
        duration_minutes=service.duration_minutes,
        service_name=service.name,
    )
