"""
Domain errors raised by the pricing, availability and booking services.

Every error is a ValueError carrying a machine-readable code and the HTTP
status the API answers with.
"""
from typing import Optional


class BookingError(ValueError):
    """Base class for booking validation failures."""
    code = "INTERNAL_ERROR"
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None, data: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data

    def to_response(self) -> dict:
        """Body of the error response."""
        body = {"success": False, "error": self.code, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


class InvalidDateFormat(BookingError):
    code = "INVALID_DATE_FORMAT"


class InvalidDateRange(BookingError):
    code = "INVALID_DATE_RANGE"


class InvalidLicenseDate(BookingError):
    code = "INVALID_LICENSE_DATE"


class BookingConflict(BookingError):
    """Requested range overlaps existing bookings."""
    code = "BOOKING_CONFLICT"

    def __init__(self, message: str, conflicts: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.conflicts = conflicts or []


class PriceMismatch(BookingError):
    """Client price no longer matches the recomputed price (stale quote)."""
    code = "PRICE_MISMATCH"


class UserNotFound(BookingError):
    code = "USER_NOT_FOUND"
    status_code = 404


class CarNotFound(BookingError):
    code = "CAR_NOT_FOUND"
    status_code = 404


class BookingNotFound(BookingError):
    code = "BOOKING_NOT_FOUND"
    status_code = 404


class CancellationNotAllowed(BookingError):
    code = "CANCELLATION_NOT_ALLOWED"
