"""Error taxonomy for the task service.

Every failure the service can report carries exactly one outcome tag
(``ErrorCode``) and the HTTP status the binding uses for it.  Store and
gate code raise these; the API layer turns them into responses.
"""
from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    MISSING_DATA = "MISSING_DATA"
    PASSWORD_TOO_SHORT = "PASSWORD_TOO_SHORT"
    PASSWORD_NO_LOWER = "PASSWORD_NO_LOWER"
    PASSWORD_NO_UPPER = "PASSWORD_NO_UPPER"
    PASSWORD_NO_DIGIT = "PASSWORD_NO_DIGIT"
    PASSWORD_NO_SPECIAL = "PASSWORD_NO_SPECIAL"
    USER_EXISTS = "USER_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    PASSWORD_INCORRECT = "PASSWORD_INCORRECT"
    TOKEN_REQUIRED = "TOKEN_REQUIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class ServiceError(Exception):
    """Base class for every tagged failure."""

    code: ErrorCode = ErrorCode.SERVER_ERROR
    status_code: int = 500

    def __init__(self, code: ErrorCode | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(self.code.value)


# ---------------------------------------------------------------------------
# Validation (caller-fixable)
# ---------------------------------------------------------------------------

class MissingDataError(ServiceError):
    """Raised when a required field is absent or empty."""

    code = ErrorCode.MISSING_DATA
    status_code = 400


class PasswordPolicyError(ServiceError):
    """Raised when a candidate password breaks a policy rule."""

    status_code = 400

    def __init__(self, code: ErrorCode) -> None:
        super().__init__(code)


class UserExistsError(ServiceError):
    code = ErrorCode.USER_EXISTS
    status_code = 400


class UserNotFoundError(ServiceError):
    code = ErrorCode.USER_NOT_FOUND
    status_code = 400


class PasswordIncorrectError(ServiceError):
    code = ErrorCode.PASSWORD_INCORRECT
    status_code = 400


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

class TokenRequiredError(ServiceError):
    """Raised when a protected operation arrives without credentials."""

    code = ErrorCode.TOKEN_REQUIRED
    status_code = 401


class TokenInvalidError(ServiceError):
    """Raised for any token that fails verification.

    Expired, forged and malformed tokens all map here.
    """

    code = ErrorCode.TOKEN_INVALID
    status_code = 401


# ---------------------------------------------------------------------------
# Not found (covers "owned by someone else")
# ---------------------------------------------------------------------------

class TaskNotFoundError(ServiceError):
    code = ErrorCode.TASK_NOT_FOUND
    status_code = 404

    def __init__(self, task_id: int | None = None) -> None:
        self.task_id = task_id
        super().__init__()


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

class ServerError(ServiceError):
    """Opaque failure; details are logged, never returned."""

    code = ErrorCode.SERVER_ERROR
    status_code = 500
