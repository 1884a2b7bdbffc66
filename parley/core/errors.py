"""
Domain error taxonomy.

Services raise these instead of HTTPException so the same failure can be
rendered as a status-coded JSON body (REST) or an acknowledgement payload
(socket channel).
"""
import enum
from typing import Any, Dict

from fastapi import status


class ErrorKind(str, enum.Enum):
    """Kinds of failure a core operation can report."""
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    CONFLICT = "CONFLICT"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    UNAUTHENTICATED = "UNAUTHENTICATED"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.SECURITY_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
}


class ChatError(Exception):
    """Base class for every expected, user-visible failure."""

    kind: ErrorKind = ErrorKind.INVALID_ARGUMENT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind.value, "message": self.message}


class NotFoundError(ChatError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(ChatError):
    kind = ErrorKind.FORBIDDEN


class InvalidArgumentError(ChatError):
    kind = ErrorKind.INVALID_ARGUMENT


class ConflictError(ChatError):
    kind = ErrorKind.CONFLICT


class SecurityViolationError(ChatError):
    kind = ErrorKind.SECURITY_VIOLATION


class AuthenticationError(ChatError):
    """Bad credentials, bad access token or a rejected refresh token."""
    kind = ErrorKind.UNAUTHENTICATED
