"""Domain error taxonomy for the booking/escrow core.

Services raise these; the HTTP adapter turns them into responses using
``status_code`` and ``code``.
"""


class BookingError(Exception):
    status_code = 400
    code = "booking_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details


class ValidationError(BookingError):
    status_code = 400
    code = "validation_error"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class Forbidden(BookingError):
    status_code = 403
    code = "forbidden"


class InvalidState(BookingError):
    status_code = 409
    code = "invalid_state"


class Conflict(InvalidState):
    """A concurrent transition committed first."""
    code = "conflict"


class InvalidEscrowState(InvalidState):
    code = "invalid_escrow_state"


class Expired(BookingError):
    """Deadline passed; the side transition (usually to declined) is already committed."""
    status_code = 410
    code = "expired"


class NegotiationExhausted(BookingError):
    status_code = 409
    code = "negotiation_exhausted"


class ExternalServiceError(BookingError):
    status_code = 502
    code = "external_service_error"


class ConsistencyError(BookingError):
    status_code = 500
    code = "consistency_error"
