from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import enforce_rate_limit, get_session
from app.api.schemas.booking import AvailableSlotsResponse
from app.models.booking import SlotQuery
from app.services.slot_service import format_slot_times, resolve_available_slots

router = APIRouter(prefix="/public", tags=["slots"])


@router.post(
    "/availability",
    response_model=AvailableSlotsResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def available_slots(
    body: SlotQuery,
    session: AsyncSession = Depends(get_session),
) -> AvailableSlotsResponse:
    """Bookable start times ("HH:MM", provider-local) for a provider, service and date.

    Advisory only: the booking endpoint re-checks the slot before committing.
    """
    slots = await resolve_available_slots(session, body.provider_id, body.date, body.service_id)
    return AvailableSlotsResponse(available_slots=format_slot_times(slots))
