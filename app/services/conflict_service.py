from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.intervals import Interval, overlaps
from app.services.slot_service import get_busy_intervals, local_day_bounds, to_naive_utc


def search_window(candidate: Interval) -> Interval:
    """The candidate's UTC calendar day, widened when the candidate runs past midnight."""
    day = local_day_bounds(candidate.start.date(), None)
    return Interval(min(day.start, candidate.start), max(day.end, candidate.end))


async def has_conflict(
    session: AsyncSession,
    provider_id: int,
    candidate_start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    """True if [candidate_start, candidate_start + duration) overlaps an occupying appointment.

    exclude_appointment_id ignores the appointment being moved when rescheduling.
    """
    candidate = Interval.from_duration(to_naive_utc(candidate_start), duration_minutes)
    busy = await get_busy_intervals(
        session, provider_id, search_window(candidate), exclude_appointment_id
    )
    return any(overlaps(candidate, b) for b in busy)
