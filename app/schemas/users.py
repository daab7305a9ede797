"""Pydantic schemas for user endpoints."""

from pydantic import BaseModel, Field, field_validator

from app.models.user import Role, is_email_ok


def _check_email(value: str | None) -> str | None:
    if value is not None and not is_email_ok(value):
        raise ValueError("invalid email address")
    return value


class SignInRequest(BaseModel):
    authMethod: str
    email: str | None = None
    token: str | None = None
    password: str = ""


class NewUser(BaseModel):
    firstname: str
    lastname: str
    email: str
    password: str = Field(min_length=1)
    role: Role

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        return _check_email(value)


class NewUserRequest(BaseModel):
    user: NewUser
    sendPasswordByEmail: bool = False


class UserChanges(BaseModel):
    firstname: str | None = None
    lastname: str | None = None
    email: str | None = None
    password: str | None = Field(default=None, min_length=1)
    role: Role | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str | None) -> str | None:
        return _check_email(value)


class UpdateUserRequest(BaseModel):
    user: UserChanges
    sendPasswordByEmail: bool = False


class AskResetPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    accessTokenExpiresIn: int
    refreshTokenExpiresIn: int
    xsrfToken: str


class SignInResponse(TokenResponse):
    isAuth: bool
    user: dict


class AuthStatusResponse(BaseModel):
    isAuth: bool
    user: dict
