from datetime import time

from pydantic import BaseModel, field_serializer

from app.models.availability import AvailabilityRulePublic
from app.models.booking import BookingConfirmation, CamelModel
from app.models.provider import ProviderPublic
from app.models.service import ServicePublic


class AvailableSlotsResponse(CamelModel):
    available_slots: list[str]  # "HH:MM", ascending, provider-local


class BookAppointmentResponse(CamelModel):
    success: bool = True
    appointment: BookingConfirmation


class AvailabilityWindow(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time

    @field_serializer("start_time", "end_time")
    def _hh_mm(self, value: time) -> str:
        return value.strftime("%H:%M")


class PublicBookingDataResponse(BaseModel):
    """snake_case keys, like the provider and service records it embeds."""

    professional: ProviderPublic
    services: list[ServicePublic]
    availability: list[AvailabilityWindow]

    @classmethod
    def build(
        cls,
        professional: ProviderPublic,
        services: list[ServicePublic],
        availability: list[AvailabilityRulePublic],
    ) -> "PublicBookingDataResponse":
        return cls(
            professional=professional,
            services=services,
            availability=[AvailabilityWindow.model_validate(a.model_dump()) for a in availability],
        )
