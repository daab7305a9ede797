"""User and session API endpoints."""

import logging

from fastapi import APIRouter, Depends, Request, Response

from app.context import AppContext
from app.dependencies import (
    REFRESH_TOKEN_COOKIE,
    clear_auth_cookies,
    get_context,
    require_admin,
    require_session,
    set_auth_cookies,
)
from app.errors import (
    AuthMethodNotRecognized,
    BadCredentials,
    MissingPasswordToken,
    MissingRefreshToken,
    MissingRequiredParameter,
    UnableToResetPassword,
    UserNotAuthorized,
)
from app.models.user import Role
from app.rate_limit import limiter
from app.schemas.users import (
    AskResetPasswordRequest,
    AuthStatusResponse,
    NewUserRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignInResponse,
    TokenResponse,
    UpdateUserRequest,
)
from app.services.event_log import ERRORS, EVENTS
from app.services.session import Session
from app.services.users import AuthMethod

logger = logging.getLogger("sesame")

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.post("/signIn", response_model=SignInResponse)
@limiter.limit("10/minute")
async def sign_in(
    request: Request,
    response: Response,
    body: SignInRequest,
    context: AppContext = Depends(get_context),
) -> SignInResponse:
    """Authenticate by email or url token and receive the session cookies."""
    if body.authMethod == AuthMethod.EMAIL:
        identifier = body.email
    elif body.authMethod == AuthMethod.STREAMLINE:
        identifier = body.token
    else:
        raise AuthMethodNotRecognized()

    result = (await context.users.authenticate(identifier or "", body.password, body.authMethod)).unwrap()
    if not result.authorized:
        await context.events.add(ERRORS, "sign_in_failed", f"Bad credentials for {body.authMethod} sign-in")
        raise BadCredentials()

    tokens = (await context.tokens.generate_token(result.user)).unwrap()
    set_auth_cookies(response, tokens, context.settings)
    return SignInResponse(
        accessTokenExpiresIn=context.settings.ACCESS_TOKEN_EXPIRES_IN,
        refreshTokenExpiresIn=context.settings.REFRESH_TOKEN_EXPIRES_IN,
        xsrfToken=tokens.xsrf_token,
        isAuth=True,
        user=result.user.public_dict(),
    )


@router.get("/refreshToken", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    context: AppContext = Depends(get_context),
) -> TokenResponse:
    """Exchange the refresh token cookie for a new token set."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not token:
        raise MissingRefreshToken()

    tokens, _ = (await context.tokens.refresh(token)).unwrap()
    set_auth_cookies(response, tokens, context.settings)
    return TokenResponse(
        accessTokenExpiresIn=context.settings.ACCESS_TOKEN_EXPIRES_IN,
        refreshTokenExpiresIn=context.settings.REFRESH_TOKEN_EXPIRES_IN,
        xsrfToken=tokens.xsrf_token,
    )


@router.post("/signOut")
async def sign_out(
    request: Request,
    response: Response,
    context: AppContext = Depends(get_context),
) -> dict:
    """Forget the refresh token and clear the session cookies."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if token:
        await context.tokens.revoke(token)
    clear_auth_cookies(response, context.settings)
    return {"isAuth": False}


@router.get("/getAuth", response_model=AuthStatusResponse)
async def get_auth(session: Session = Depends(require_session)) -> AuthStatusResponse:
    """Return the signed-in user."""
    return AuthStatusResponse(isAuth=True, user=session.user.public_dict())


@router.post("/askResetPassword")
@limiter.limit("3/minute")
async def ask_reset_password(
    request: Request,
    body: AskResetPasswordRequest,
    context: AppContext = Depends(get_context),
) -> dict:
    """Mail a password reset link. Answers the same whether or not the account exists."""
    result = await context.users.send_ask_reset_password(body.email)
    if not result.success:
        logger.info("Password reset not sent: %s", result.error.message)
    return {"message": "If an account exists with that email, a reset link has been sent."}


@router.put("/resetPassword")
@limiter.limit("5/minute")
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    context: AppContext = Depends(get_context),
) -> dict:
    """Set a new password using a reset token."""
    result = await context.users.reset_password(body.token, body.password)
    if not result.success:
        if isinstance(result.error, (MissingPasswordToken, MissingRequiredParameter)):
            raise result.error
        raise UnableToResetPassword()
    return {**result.value, "message": "Password reset successfully"}


@router.get("")
async def list_users(
    role: Role = Role.CUSTOMER,
    session: Session = Depends(require_admin),
    context: AppContext = Depends(get_context),
) -> dict:
    """List the users of a role."""
    users = (await context.users.get_all(role)).unwrap()
    return {"users": users}


@router.post("")
async def create_user(
    body: NewUserRequest,
    session: Session = Depends(require_admin),
    context: AppContext = Depends(get_context),
) -> dict:
    """Create a user account, optionally mailing its password."""
    data = (await context.users.new(**body.user.model_dump())).unwrap()
    if body.sendPasswordByEmail:
        sent = await context.users.send_password_by_email(body.user.email, body.user.password)
        if not sent.success:
            logger.warning("Password email to new user %s failed: %s", data["id"], sent.error.message)
    await context.events.add(EVENTS, "user_created", f"User {data['id']} created by {session.user.id}")
    return {**data, "message": "User account added successfully"}


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    session: Session = Depends(require_session),
    context: AppContext = Depends(get_context),
) -> dict:
    """Get one user. Non-admins may only read their own account."""
    if not session.user.is_admin and session.user.id != user_id:
        raise UserNotAuthorized()
    user = (await context.users.get(id=user_id)).unwrap()
    return {"user": user.public_dict(include_created=False)}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    session: Session = Depends(require_session),
    context: AppContext = Depends(get_context),
) -> dict:
    """Update a user. Non-admins may only update themselves and cannot change their email or role."""
    if not session.user.is_admin and session.user.id != user_id:
        raise UserNotAuthorized()

    changes = body.user.model_dump(exclude_none=True)
    if not session.user.is_admin:
        changes.pop("email", None)
        changes.pop("role", None)
    changes["id"] = user_id

    data = (await context.users.update(changes)).unwrap()
    if changes.get("password") and body.sendPasswordByEmail:
        user = (await context.users.get(id=user_id)).unwrap()
        sent = await context.users.send_password_by_email(user.email, changes["password"])
        if not sent.success:
            logger.warning("Password email to user %s failed: %s", user_id, sent.error.message)
    return {**data, "message": "User account updated successfully"}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    session: Session = Depends(require_admin),
    context: AppContext = Depends(get_context),
) -> dict:
    """Archive a user account."""
    data = (await context.users.delete(id=user_id)).unwrap()
    return {**data, "message": "User account deleted successfully"}
