import datetime as dt

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (providerId, scheduledAt, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotQuery(CamelModel):
    provider_id: int
    date: dt.date
    service_id: int


class BookingRequest(CamelModel):
    """Booking as submitted by an anonymous client; nothing here is trusted yet.

    Fields are loosely typed so the booking coordinator owns the validation
    messages for missing or malformed values.
    """

    provider_id: int | None = None
    service_id: int | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    scheduled_at: str | None = None
    client_notes: str | None = None


class BookingConfirmation(CamelModel):
    id: int
    scheduled_at: dt.datetime
    duration_minutes: int
    service_name: str
