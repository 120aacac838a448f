"""Domain error taxonomy for the booking engine.

Services raise these instead of ``HTTPException`` so the same code can run
from the HTTP layer, a scheduled script, or a test harness. ``main.py``
translates them into JSON responses using ``status_code``.
"""


class BookingEngineError(Exception):
    """Base class for every error raised by the booking engine."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingEngineError):
    """Malformed or contradictory input. No state was changed."""

    status_code = 400


class AuthorizationError(BookingEngineError):
    """The actor lacks the role or ownership the operation requires."""

    status_code = 403


class NotFoundError(BookingEngineError):
    """A referenced booking, listing, trip or transaction does not exist."""

    status_code = 404


class ConflictError(BookingEngineError):
    """Availability or concurrency conflict detected at write time."""

    status_code = 409


class UpstreamError(BookingEngineError):
    """The payment gateway failed or answered with an unexpected shape."""

    status_code = 502
