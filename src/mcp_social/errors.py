"""Error taxonomy shared by every layer.

Each error carries a ``kind``. The dispatcher normalizes failures into tool
results keyed by that kind, and transports turn kinds into status codes
through ``HTTP_STATUS_BY_KIND`` instead of looking at message text.
"""
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNKNOWN_TOOL = "unknown_tool"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNKNOWN_TOOL: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class SocialError(Exception):
    """Base class for errors that are safe to show to a caller."""
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]


class ValidationError(SocialError):
    """Malformed or out-of-bound input, raised before any side effect."""
    kind = ErrorKind.VALIDATION


class AuthError(SocialError):
    """Missing or invalid credential or session token."""
    kind = ErrorKind.AUTH


class ConflictError(SocialError):
    """Duplicate account, follow edge or like."""
    kind = ErrorKind.CONFLICT


class NotFoundError(SocialError):
    """Unknown user or post reference."""
    kind = ErrorKind.NOT_FOUND


class UnknownToolError(SocialError):
    kind = ErrorKind.UNKNOWN_TOOL


class InternalError(SocialError):
    """Anything unanticipated from the store or a handler."""
    kind = ErrorKind.INTERNAL


class ConfigurationError(Exception):
    """Required startup configuration is missing."""
    pass


class ChannelError(Exception):
    """Push channel misuse (unknown session, stream already open)."""
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)
