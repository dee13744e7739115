from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.api.schemas.booking import PublicBookingDataResponse
from app.services.provider_service import get_public_booking_data

router = APIRouter(prefix="/public", tags=["providers"])


@router.get("/providers/{slug}", response_model=PublicBookingDataResponse)
async def public_booking_data(
    slug: str,
    session: AsyncSession = Depends(get_session),
) -> PublicBookingDataResponse:
    data = await get_public_booking_data(session, slug)
    return PublicBookingDataResponse.build(**data)
