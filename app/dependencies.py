"""Request dependencies: application context, session and admin checks, auth cookies."""

from fastapi import Depends, Response
from starlette.requests import HTTPConnection

from app.config import Settings
from app.context import AppContext
from app.errors import AppError, BadCredentials, UserNotAuthorized
from app.services.event_log import ERRORS
from app.services.session import Session, extract_xsrf_token
from app.services.tokens import TokenSet

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"


def get_context(connection: HTTPConnection) -> AppContext:
    """The context built at startup."""
    return connection.app.state.context


async def require_session(
    connection: HTTPConnection,
    context: AppContext = Depends(get_context),
) -> Session:
    """Validate the access token cookie against the XSRF token. Any failure is a 401."""
    result = await context.sessions.validate(
        connection.cookies.get(ACCESS_TOKEN_COOKIE),
        extract_xsrf_token(connection.headers),
    )
    if result.success:
        return result.value

    error: AppError = result.error
    await context.events.add(ERRORS, "session_rejected", f"{connection.url.path}: {error.message}")
    if error.status_code != 401:
        raise BadCredentials(error.message)
    raise error


async def require_admin(
    connection: HTTPConnection,
    session: Session = Depends(require_session),
    context: AppContext = Depends(get_context),
) -> Session:
    """Require a valid session whose user holds an admin role."""
    is_admin = await context.users.is_admin(connection.cookies.get(ACCESS_TOKEN_COOKIE))
    if not is_admin.success or not is_admin.value:
        raise UserNotAuthorized()
    return session


def set_auth_cookies(response: Response, tokens: TokenSet, settings: Settings) -> None:
    """Set the access and refresh token cookies."""
    for key, value, expires_in in (
        (ACCESS_TOKEN_COOKIE, tokens.access_token, settings.ACCESS_TOKEN_EXPIRES_IN),
        (REFRESH_TOKEN_COOKIE, tokens.refresh_token, settings.REFRESH_TOKEN_EXPIRES_IN),
    ):
        response.set_cookie(
            key=key,
            value=value,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite=settings.COOKIE_SAMESITE,
            max_age=expires_in // 1000,
            path=settings.COOKIE_PATH,
        )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    """Clear the authentication cookies."""
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=key,
            path=settings.COOKIE_PATH,
            secure=settings.COOKIE_SECURE,
            httponly=True,
            samesite=settings.COOKIE_SAMESITE,
        )
