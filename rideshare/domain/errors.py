"""
Named error kinds reported to callers.

Every error carries a stable ``code`` that the API layer renders as the
``error`` field.  Categories map onto HTTP statuses in
``rideshare.api.app``; the domain itself knows nothing about HTTP.
"""


class RideShareError(Exception):
    """Base class for all domain errors."""

    code = "RideShareError"
    retryable = False

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.code
        super().__init__(self.detail)


# ── Validation ────────────────────────────────────────────────────────


class ValidationFailed(RideShareError):
    """Malformed input, rejected before any state is touched."""

    code = "ValidationError"


# ── Not found ─────────────────────────────────────────────────────────


class NotFound(RideShareError):
    code = "NotFound"


class RideNotFound(NotFound):
    code = "RideNotFound"


class UserNotFound(NotFound):
    code = "UserNotFound"


# ── State conflicts ───────────────────────────────────────────────────


class StateConflict(RideShareError):
    """A precondition on status, capacity or uniqueness does not hold."""

    code = "StateConflict"


class RideNotOpen(StateConflict):
    code = "RideNotOpen"


class RideFull(StateConflict):
    code = "RideFull"


class AlreadyBooked(StateConflict):
    code = "AlreadyBooked"


class AlreadyInActiveRide(StateConflict):
    code = "AlreadyInActiveRide"


class InvalidState(StateConflict):
    """Raised when a ride status change violates the state machine."""

    code = "InvalidState"


class TooEarly(StateConflict):
    code = "TooEarly"


class NotBooked(StateConflict):
    code = "NotBooked"


# ── Authorization ─────────────────────────────────────────────────────


class AuthorizationError(RideShareError):
    code = "Forbidden"


class NotRideOwner(AuthorizationError):
    code = "NotRideOwner"


class CannotBookOwnRide(AuthorizationError):
    code = "CannotBookOwnRide"


# ── Transient ─────────────────────────────────────────────────────────


class ConcurrencyConflict(RideShareError):
    """Contention with a concurrent transaction; safe for the caller to retry."""

    code = "ConcurrencyConflict"
    retryable = True
