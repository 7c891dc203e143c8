"""
Domain exceptions for the availability engine.

Every error carries an HTTP status, a machine readable code and a message
that can be shown to the person making the booking. The API layer renders
them through a single exception handler, so services raise these directly
instead of HTTPException.
"""
from typing import Any, Dict, Optional


class AvailabilityEngineError(Exception):
    """Base exception for all availability engine errors."""

    status_code = 500
    default_code = "internal_error"
    default_message = "An unexpected error occurred."
    retryable = False

    def __init__(
            self,
            message: Optional[str] = None,
            code: Optional[str] = None,
            details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary representation."""
        error_dict = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            error_dict["details"] = self.details
        return error_dict


class ValidationError(AvailabilityEngineError):
    """Malformed input. Not retryable, the request has to be fixed."""

    status_code = 400
    default_code = "validation_error"
    default_message = "The request is invalid."


class NotFoundError(AvailabilityEngineError):
    """Unknown calendar, service type, booking or schedule entry."""

    status_code = 404
    default_code = "not_found"
    default_message = "The requested resource was not found."


class ConflictError(AvailabilityEngineError):
    """The time range is already taken. Refresh availability, do not retry."""

    status_code = 409
    default_code = "slot_unavailable"
    default_message = "This time was just taken, please pick another slot."


class PolicyError(AvailabilityEngineError):
    """The calendar policy forbids the request (notice period, day cap, ...)."""

    status_code = 422
    default_code = "policy_violation"
    default_message = "This booking is not allowed by the calendar's booking rules."


class TransientError(AvailabilityEngineError):
    """Storage or network hiccup. Safe to retry with backoff."""

    status_code = 503
    default_code = "temporarily_unavailable"
    default_message = "The booking service is temporarily unavailable, please try again."
    retryable = True
