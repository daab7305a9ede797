"""Domain errors, service results and their FastAPI exception handlers."""

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("sesame")

T = TypeVar("T")


class AppError(Exception):
    """Base application error tagged with the HTTP status it maps to."""

    status_code = 500
    code = "internal_error"
    message = "Internal server error"

    def __init__(self, message: str | None = None, info: dict | None = None) -> None:
        self.message = message or self.message
        self.info = info or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Response body: message and code, plus any extra info fields."""
        return {**self.info, "detail": self.message, "error": self.code}


class MissingRequiredParameter(AppError):
    status_code = 400
    code = "missing_required_parameter"
    message = "Missing required parameters"


class BadCredentials(AppError):
    status_code = 401
    code = "bad_credentials"
    message = "Bad credentials"


class AuthMethodNotRecognized(AppError):
    status_code = 401
    code = "auth_method_not_recognized"
    message = "Auth method not recognized"


class InvalidToken(AppError):
    status_code = 401
    code = "invalid_token"
    message = "Invalid token"


class ExpiredToken(AppError):
    status_code = 401
    code = "expired_token"
    message = "Expired token"


class MissingAccessToken(AppError):
    status_code = 401
    code = "missing_access_token"
    message = "Missing access token"


class MissingRefreshToken(AppError):
    status_code = 401
    code = "missing_refresh_token"
    message = "Missing refresh token"


class MissingPasswordToken(AppError):
    status_code = 401
    code = "missing_password_token"
    message = "Missing password token"


class UserNotAuthorized(AppError):
    status_code = 403
    code = "user_not_authorized"
    message = "User not authorized"


class UserDoesNotExist(AppError):
    status_code = 404
    code = "user_does_not_exist"
    message = "User account does not exist"


class UserAlreadyExists(AppError):
    code = "user_already_exists"
    message = "User account already exists"


class UserCannotBeDeleted(AppError):
    code = "user_cannot_be_deleted"
    message = "User account cannot be deleted"


class UnableToGetUsers(AppError):
    code = "unable_to_get_users"
    message = "Unable to get users"


class UnableToAddUser(AppError):
    code = "unable_to_add_user"
    message = "Unable to add user account"


class UnableToUpdateUser(AppError):
    code = "unable_to_update_user"
    message = "Unable to update user account"


class UnableToResetPassword(AppError):
    code = "unable_to_reset_password"
    message = "Unable to reset password"


class UnableToSendEmail(AppError):
    code = "unable_to_send_email"
    message = "Unable to send email"


@dataclass
class Result(Generic[T]):
    """Outcome of a service operation: a value or the error that prevented it."""

    value: T | None = None
    error: AppError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def fail(cls, error: AppError) -> "Result":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, raising the carried error when the operation failed."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(p) for p in e["loc"][1:]) for e in exc.errors()]
        error = MissingRequiredParameter(info={"fields": fields})
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error", "error": "internal_error"})
