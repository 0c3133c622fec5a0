"""Lifecycle error taxonomy shared by all domain services"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for errors surfaced to API callers with a specific code"""

    code = "lifecycle_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.details:
            body["context"] = self.details
        return body


class NotFound(LifecycleError):
    code = "not_found"
    status_code = 404


class Forbidden(LifecycleError):
    code = "forbidden"
    status_code = 403


class InvalidState(LifecycleError):
    """Operation is illegal for the entity's current lifecycle state"""

    code = "invalid_state"
    status_code = 409


class StaleVersion(InvalidState):
    """Caller acted on an outdated version of the entity and must re-read it"""

    code = "stale_version"


class InvalidTransition(LifecycleError):
    code = "invalid_transition"
    status_code = 409


class DuplicateApplication(LifecycleError):
    code = "duplicate_application"
    status_code = 409


class DuplicateSubmission(LifecycleError):
    code = "duplicate_submission"
    status_code = 409


class ValidationError(LifecycleError):
    code = "validation_error"
    status_code = 422
