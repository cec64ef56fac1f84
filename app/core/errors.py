"""
Typed error taxonomy for the scheduling engine.

Every failure carries a stable ``kind`` plus a human-readable message.
``status_code`` is only a hint for whatever transport layer sits on top;
the engine itself never speaks HTTP.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for all engine failures."""

    kind: str = "SchedulingError"
    category: str = "SchedulingError"
    status_code: int = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "error": self.kind,
            "category": self.category,
            "message": self.message,
        }
        if self.details:
            out["details"] = self.details
        return out

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


# ---------- validation (422) ----------


class ValidationError(SchedulingError):
    kind = "ValidationError"
    category = "ValidationError"
    status_code = 422


class InvalidTimeFormat(ValidationError):
    kind = "InvalidTimeFormat"


class InvalidRange(ValidationError):
    kind = "InvalidRange"


class DurationTooShort(ValidationError):
    kind = "DurationTooShort"


class MissingCompanionField(ValidationError):
    kind = "MissingCompanionField"


class InvalidPayload(ValidationError):
    kind = "InvalidPayload"


# ---------- lookup / access ----------


class NotFoundError(SchedulingError):
    kind = "NotFound"
    category = "NotFoundError"
    status_code = 404


class OwnershipViolation(SchedulingError):
    kind = "OwnershipViolation"
    category = "OwnershipViolation"
    status_code = 403


class PermissionDenied(OwnershipViolation):
    """Caller's role may not perform the operation at all."""

    kind = "PermissionDenied"


class RegistrationRequired(SchedulingError):
    kind = "RegistrationRequired"
    category = "RegistrationRequired"
    status_code = 403


# ---------- conflicts (409) ----------


class ConflictError(SchedulingError):
    kind = "ConflictError"
    category = "ConflictError"
    status_code = 409


class OverlapConflict(ConflictError):
    kind = "OverlapConflict"


class NotAvailable(ConflictError):
    kind = "NotAvailable"


class SlotConflict(ConflictError):
    kind = "SlotConflict"


class AlreadyBooked(ConflictError):
    kind = "AlreadyBooked"


class CapacityExceeded(ConflictError):
    kind = "CapacityExceeded"


class InvalidTransition(ConflictError):
    kind = "InvalidTransition"


class InvalidState(ConflictError):
    kind = "InvalidState"


class ConcurrentModification(ConflictError):
    kind = "ConcurrentModification"


__all__ = [
    "SchedulingError",
    "ValidationError",
    "InvalidTimeFormat",
    "InvalidRange",
    "DurationTooShort",
    "MissingCompanionField",
    "InvalidPayload",
    "NotFoundError",
    "OwnershipViolation",
    "PermissionDenied",
    "RegistrationRequired",
    "ConflictError",
    "OverlapConflict",
    "NotAvailable",
    "SlotConflict",
    "AlreadyBooked",
    "CapacityExceeded",
    "InvalidTransition",
    "InvalidState",
    "ConcurrentModification",
]
