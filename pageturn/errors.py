"""Domain error taxonomy.

Services raise these; the HTTP layer maps them to responses in one place
(see ``pageturn.app``). Each error carries a stable ``code`` plus optional
``details`` naming the offending field or entry.
"""

from typing import Any


class DomainError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.details}


class ValidationError(DomainError):
    status_code = 400
    code = "VALIDATION_ERROR"


class TemporalConflictError(ValidationError):
    """A progress value is out of order with a sibling entry of the same session."""

    code = "TEMPORAL_CONFLICT"

    def __init__(self, message: str, *, conflicting_entry: dict[str, Any]):
        super().__init__(message, details={"conflicting_entry": conflicting_entry})
        self.conflicting_entry = conflicting_entry


class ArchiveConfirmationRequired(ValidationError):
    code = "CONFIRMATION_REQUIRED"


class PreconditionError(ValidationError):
    code = "PRECONDITION_FAILED"


class NotFoundError(DomainError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(DomainError):
    status_code = 409
    code = "CONFLICT"


class InternalError(DomainError):
    pass
