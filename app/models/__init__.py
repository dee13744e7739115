from app.models.provider import Provider, ProviderPublic
from app.models.service import Service, ServicePublic
from app.models.availability import AvailabilityRule, AvailabilityRulePublic
from app.models.booking import BookingConfirmation, BookingRequest, CamelModel, SlotQuery
from app.models.appointment import (
    OCCUPYING_STATUSES,
    Appointment,
    AppointmentStatus,
)

__all__ = [
    "Provider",
    "ProviderPublic",
    "Service",
    "ServicePublic",
    "AvailabilityRule",
    "AvailabilityRulePublic",
    "Appointment",
    "AppointmentStatus",
    "BookingConfirmation",
    "OCCUPYING_STATUSES",
    "BookingRequest",
    "CamelModel",
    "SlotQuery",
]
