"""Domain errors raised by the booking core.

Each error carries the HTTP status and error code it is rendered with, so
services stay free of web framework types.
"""


class BookingError(Exception):
    status_code = 400
    code = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BookingValidationError(BookingError):
    """A required field is missing or malformed."""

    status_code = 400
    code = "validation_error"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ConflictError(BookingError):
    """The requested interval collides with an active booking."""

    status_code = 409
    code = "conflict"


class UpstreamError(BookingError):
    """The database failed for a reason unrelated to booking conflicts."""

    status_code = 502
    code = "upstream_error"
