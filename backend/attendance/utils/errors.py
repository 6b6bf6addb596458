"""Error taxonomy shared by the check-in services and the API layer."""
from enum import Enum
from typing import Any, Dict


class ErrorKind(Enum):
    """Reasons a token, check-in or recording attempt can fail."""
    UNAUTHENTICATED = 'unauthenticated'
    FORBIDDEN = 'forbidden'
    NOT_FOUND = 'not_found'
    SESSION_CLOSED = 'session_closed'
    SESSION_INACTIVE = 'session_inactive'
    NOT_ENROLLED = 'not_enrolled'
    MISMATCH = 'mismatch'
    EXPIRED = 'expired'
    INVALID = 'invalid'
    INVALID_COORDINATES = 'invalid_coordinates'
    LOCATION_REQUIRED = 'location_required'
    CONFIGURATION_ERROR = 'configuration_error'
    TOO_FAR = 'too_far'
    LOW_MATCH_SCORE = 'low_match_score'
    FACE_NOT_REGISTERED = 'face_not_registered'
    FACE_NOT_DETECTED = 'face_not_detected'
    VERIFICATION_UNAVAILABLE = 'verification_unavailable'
    ALREADY_RECORDED = 'already_recorded'
    VALIDATION_ERROR = 'validation_error'
    INTERNAL_ERROR = 'internal_error'


STATUS_CODES = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_ENROLLED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SESSION_CLOSED: 409,
    ErrorKind.SESSION_INACTIVE: 409,
    ErrorKind.ALREADY_RECORDED: 200,
    ErrorKind.VERIFICATION_UNAVAILABLE: 503,
    ErrorKind.INTERNAL_ERROR: 500,
}

# Failures the student can fix by retrying, moving or rescanning
RECOVERABLE = frozenset({
    ErrorKind.EXPIRED,
    ErrorKind.INVALID,
    ErrorKind.INVALID_COORDINATES,
    ErrorKind.LOCATION_REQUIRED,
    ErrorKind.CONFIGURATION_ERROR,
    ErrorKind.TOO_FAR,
    ErrorKind.LOW_MATCH_SCORE,
    ErrorKind.FACE_NOT_DETECTED,
})

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


class AttendanceError(Exception):
    """A classified failure carrying the details the client needs."""

    def __init__(self, kind: ErrorKind, message: str = None, **details: Any):
        self.kind = kind
        self.message = message or kind.value.replace('_', ' ').capitalize()
        self.details: Dict[str, Any] = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return STATUS_CODES.get(self.kind, 400)

    @property
    def recoverable(self) -> bool:
        return self.kind in RECOVERABLE

    @property
    def public_message(self) -> str:
        """Message safe to show a user; internal failures stay generic."""
        if self.kind == ErrorKind.INTERNAL_ERROR:
            return GENERIC_FAILURE_MESSAGE
        return self.message

    def __repr__(self) -> str:
        return f'<AttendanceError {self.kind.value}: {self.message}>'
