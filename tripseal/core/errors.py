from __future__ import annotations

from typing import Any


class TripSealError(Exception):
    """Base error for tripseal; carries a stable code and HTTP status."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ForbiddenError(TripSealError):
    """Principal present but policy denies the operation."""

    status_code = 403
    code = "AUTH_FORBIDDEN"


class NotFoundError(TripSealError):
    """Referenced session, seal, user or company does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(TripSealError):
    """Duplicate barcode, repeated guard verification or concurrent edit."""

    status_code = 409
    code = "CONFLICT"


class InvalidTransitionError(ConflictError):
    """Session status may only move forward."""

    code = "INVALID_STATUS_TRANSITION"


class PayloadTooLargeError(TripSealError):
    """Image or JSON payload exceeds configured limits."""

    status_code = 413
    code = "PAYLOAD_TOO_LARGE"


class ValidationFailedError(TripSealError):
    """Missing required field or out-of-range value."""

    status_code = 400
    code = "BAD_REQUEST"


class InsufficientCoinsError(ValidationFailedError):
    """Coin balance too low for the requested debit."""

    code = "INSUFFICIENT_COINS"


class DatabaseError(TripSealError):
    """Database layer failure."""

    status_code = 503
    code = "DATABASE_UNAVAILABLE"
