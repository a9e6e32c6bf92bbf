"""Application-specific exceptions for consistent error handling."""

from http import HTTPStatus
from typing import Any


class AppError(Exception):
    """Application error with standardized error code."""

    status_code: int = HTTPStatus.BAD_REQUEST
    code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ):
        """Initialize application error."""
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Error envelope consumed by the request layer."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NoCategoriesAvailableError(AppError):
    """No category could be resolved for quiz generation."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    code = "NO_CATEGORIES_AVAILABLE"


class SessionNotFoundError(AppError):
    """The referenced quiz session does not exist."""

    status_code = HTTPStatus.NOT_FOUND
    code = "SESSION_NOT_FOUND"


class InvalidSessionStateError(AppError):
    """The session is not in a state permitting the requested transition."""

    status_code = HTTPStatus.CONFLICT
    code = "INVALID_SESSION_STATE"


class InvalidAttemptError(AppError):
    """Submitted attempts do not match the session's assignments."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    code = "INVALID_ATTEMPT"


class SettlementConflictError(AppError):
    """Settlement transaction could not commit and was rolled back."""

    status_code = HTTPStatus.CONFLICT
    code = "SETTLEMENT_CONFLICT"


def raise_app_error(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | list[Any] | None = None,
) -> None:
    """Raise an application error with standardized format."""
    raise AppError(message, details, status_code=status_code, code=code)
