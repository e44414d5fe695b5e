"""Error taxonomy shared by services and HTTP handlers.

Services raise these exceptions; the handlers registered in `main.py`
turn them into the `{success: false, message}` envelope with the
matching status code.
"""

import enum


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PATH_ESCAPE = "path_escape"
    AUTH = "auth"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class AuthFailure(str, enum.Enum):
    """Why an authentication check failed. Never sent to clients."""
    NOT_FOUND = "NotFound"
    INACTIVE = "Inactive"
    BAD_PASSWORD = "BadPassword"
    INVALID_SIGNATURE = "InvalidSignature"
    EXPIRED = "Expired"
    CLAIM_MISMATCH = "ClaimMismatch"
    MISSING_TOKEN = "MissingToken"
    REVOKED = "Revoked"


_CREDENTIAL_FAILURES = {AuthFailure.NOT_FOUND, AuthFailure.INACTIVE, AuthFailure.BAD_PASSWORD}


class PortalError(Exception):
    kind = ErrorKind.INTERNAL
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PortalError):
    """Malformed or missing input."""
    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(PortalError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class PathEscapeError(PortalError):
    """A requested file name would resolve outside the storage root."""
    kind = ErrorKind.PATH_ESCAPE
    status_code = 400

    def __init__(self, message: str = "Invalid file path"):
        super().__init__(message)


class AuthError(PortalError):
    """Authentication failed.

    `reason` keeps the precise `AuthFailure` for logging and tests while
    `message` stays generic so responses do not reveal which accounts
    exist.
    """
    kind = ErrorKind.AUTH
    status_code = 401

    def __init__(self, reason: AuthFailure, message: str | None = None):
        if message is None:
            if reason in _CREDENTIAL_FAILURES:
                message = "Invalid email or password"
            elif reason == AuthFailure.MISSING_TOKEN:
                message = "Access token required"
            else:
                message = "Invalid or expired token"
        super().__init__(message)
        self.reason = reason


class ForbiddenError(PortalError):
    kind = ErrorKind.FORBIDDEN
    status_code = 403
