"""Domain error taxonomy for the attempt core.

Every expected, user-facing outcome is a ``PortalError`` subclass carrying the
HTTP status and machine-readable ``error_code`` it is rendered with (see the
exception handlers in ``quizportal.main``). Anything else is an internal error.
"""

from typing import Any

from fastapi import status


class PortalError(Exception):
    """Base class for expected failures rendered through ``ErrorResponse``."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "portal_error"
    message: str = "Request could not be completed"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)


# ── Admission ────────────────────────────────────────────────────────────────


class AdmissionReason:
    """Reason codes carried by ``AdmissionDenied``."""

    NOT_ACTIVE = "not_active"
    NOT_STARTED = "not_started"
    WINDOW_EXPIRED = "window_expired"
    EXPIRED = "expired"
    NOT_ENROLLED = "not_enrolled"
    INVALID_ACCESS_KEY = "invalid_access_key"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


_ADMISSION_MESSAGES = {
    AdmissionReason.NOT_ACTIVE: "Evaluation is not active",
    AdmissionReason.NOT_STARTED: "Evaluation has not started yet",
    AdmissionReason.WINDOW_EXPIRED: "The window to start or continue this evaluation has passed",
    AdmissionReason.EXPIRED: "Evaluation has expired",
    AdmissionReason.NOT_ENROLLED: "You are not enrolled in this evaluation",
    AdmissionReason.INVALID_ACCESS_KEY: "Invalid access key",
    AdmissionReason.ATTEMPTS_EXHAUSTED: "Maximum attempts reached",
}


def admission_message(reason: str) -> str:
    return _ADMISSION_MESSAGES.get(reason, "Admission denied")


class AdmissionDenied(PortalError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: str, *, details: dict[str, Any] | None = None) -> None:
        self.reason = reason
        self.error_code = reason
        super().__init__(admission_message(reason), details=details)


# ── Attempt conflicts ────────────────────────────────────────────────────────


class AttemptConflict(PortalError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyInProgress(AttemptConflict):
    error_code = "already_in_progress"
    message = "An attempt is already in progress for this evaluation"


class AlreadySubmitted(AttemptConflict):
    error_code = "already_submitted"
    message = "This attempt has already been submitted"


class NotSubmitted(AttemptConflict):
    error_code = "not_submitted"
    message = "This attempt has not been submitted yet"


# ── Lookup / ownership ───────────────────────────────────────────────────────


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"
    message = "Not found"


class OwnershipViolation(NotFound):
    """Caller does not own the attempt. Rendered exactly like ``NotFound``."""


# ── Integrity ────────────────────────────────────────────────────────────────


class ThresholdExceeded(PortalError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "threshold_exceeded"
    message = "Maximum violations reached"


# ── Portal state ─────────────────────────────────────────────────────────────


class MaintenanceMode(PortalError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "maintenance_mode"
    message = "The portal is under maintenance, please try again later."
