"""Error taxonomy for the booking engine.

Every error carries the HTTP status it maps to. Only errors marked ``public``
echo their message to the caller; everything else is reported with a generic
retry message and the detail stays in the logs.
"""

import math

GENERIC_ERROR_MESSAGE = "Unable to complete the request. Please try again."


class BookingError(Exception):
    status_code: int = 500
    public: bool = True
    default_message: str = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message if self.public else GENERIC_ERROR_MESSAGE


class ValidationError(BookingError):
    """Malformed or out-of-policy input."""

    status_code = 400
    default_message = "Invalid request"


class OutOfWindow(ValidationError):
    """Requested start is in the past or beyond the advance-booking horizon."""

    default_message = "Requested time is outside the bookable window"


class NotFound(BookingError):
    status_code = 404
    default_message = "Not found"


class NotBookable(BookingError):
    """Provider or service exists but is not eligible for public booking."""

    status_code = 400
    default_message = "Service not found or not available"


class SlotTaken(BookingError):
    status_code = 409
    default_message = "Time slot no longer available"


class RateLimited(BookingError):
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: float = 0, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = max(0, math.ceil(retry_after))


class InternalError(BookingError):
    status_code = 500
    public = False
