"""
Domain errors raised by the workshop services.

Each error carries a stable ``code`` and the HTTP status the API renders it
with; ``extra`` is merged into the error body.
"""
from typing import Any, Dict, Optional


class WorkshopError(Exception):
    status_code = 400
    code = "workshop_error"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class NotFound(WorkshopError):
    status_code = 404
    code = "not_found"


class InvalidTransition(WorkshopError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, allowed=()):
        allowed_text = ", ".join(allowed) or "none (terminal state)"
        super().__init__(
            f"Cannot transition from '{from_status}' to '{to_status}'. Allowed transitions: {allowed_text}",
            {"from_status": from_status, "to_status": to_status, "allowed_transitions": list(allowed)},
        )
        self.from_status = from_status
        self.to_status = to_status


class InvalidState(WorkshopError):
    status_code = 409
    code = "invalid_state"


class AlreadyAssigned(WorkshopError):
    status_code = 409
    code = "already_assigned"


class AlreadyExists(WorkshopError):
    status_code = 409
    code = "already_exists"


class CapacityExceeded(WorkshopError):
    status_code = 409
    code = "capacity_exceeded"

    def __init__(self, message: str, current_count: int, max_capacity: int):
        super().__init__(message, {"current_count": current_count, "max_capacity": max_capacity})
        self.current_count = current_count
        self.max_capacity = max_capacity


class ValidationError(WorkshopError):
    status_code = 400
    code = "validation_error"
