"""
Domain errors.

Services raise these; the HTTP layer turns them into
{"error": true, "message": ...} responses and the real-time router into a
private `error` event. Each class carries the HTTP status it maps to.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for business-rule failures surfaced to the caller."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": True, "message": self.message}
        payload.update(self.details)
        return payload


class NotFoundError(DomainError):
    status_code = 404
    default_message = "Not found"


class UnauthorizedError(DomainError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(DomainError):
    status_code = 403
    default_message = "Access denied"


class InvalidOperationError(DomainError):
    """Business rule violation (self-purchase, frozen order, ...)."""

    status_code = 400
    default_message = "Operation not allowed"


class InvalidTransitionError(InvalidOperationError):
    default_message = "Illegal status transition"


class InvalidPaymentMethodError(InvalidOperationError):
    default_message = "Selected payment method not available for this listing"


class ValidationFailedError(DomainError):
    status_code = 400
    default_message = "Validation failed"


class ConflictError(DomainError):
    """Lost a race, or an active record already exists."""

    status_code = 409
    default_message = "Conflicting update, reload and retry"
