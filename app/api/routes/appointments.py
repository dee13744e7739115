import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import enforce_rate_limit, get_provider_locks, get_session
from app.api.schemas.booking import BookAppointmentResponse
from app.models.booking import BookingRequest
from app.services.appointment_service import ProviderLockRegistry, create_public_appointment

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public", tags=["appointments"])


@router.post(
    "/appointments",
    response_model=BookAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_appointment(
    body: BookingRequest,
    client: str = Depends(enforce_rate_limit),
    session: AsyncSession = Depends(get_session),
    locks: ProviderLockRegistry = Depends(get_provider_locks),
) -> BookAppointmentResponse:
    logger.info(
        "Booking attempt from %s: provider=%s service=%s",
        client, body.provider_id, body.service_id,
    )
    confirmation = await create_public_appointment(session, body, locks=locks)
    return BookAppointmentResponse(appointment=confirmation)
