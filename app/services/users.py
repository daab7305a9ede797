"""User directory service: accounts, authentication and password resets."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from starlette.concurrency import run_in_threadpool

from app.config import Settings
from app.core import security
from app.errors import (
    AppError,
    AuthMethodNotRecognized,
    MissingPasswordToken,
    MissingRequiredParameter,
    Result,
    UnableToAddUser,
    UnableToGetUsers,
    UnableToResetPassword,
    UnableToUpdateUser,
    UserAlreadyExists,
    UserCannotBeDeleted,
    UserDoesNotExist,
)
from app.models.user import Role, User, is_email_ok
from app.services.event_log import EVENTS, EventLog
from app.services.mailer import Mailer
from app.services.tokens import TokenService
from app.store.backend import StoreError
from app.store.users import UserStore, now_ms

logger = logging.getLogger("sesame")

LOOKUP_KEYS = ("id", "email", "token", "access_token")


class AuthMethod(str, Enum):
    EMAIL = "emailAuth"
    STREAMLINE = "streamLineAuth"


@dataclass
class AuthResult:
    """Result of an authentication attempt."""

    authorized: bool
    user: User | None = None


class UserService:
    """CRUD and authentication operations over users."""

    def __init__(
        self,
        settings: Settings,
        store: UserStore,
        tokens: TokenService,
        mailer: Mailer,
        events: EventLog,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.events = events
        self.reset_token_ttl = max(1, settings.RESET_PASSWORD_TOKEN_EXPIRES_IN // 1000)

    async def authenticate(self, identifier: str, password: str, method: str = AuthMethod.EMAIL) -> Result[AuthResult]:
        """Check a password against the user found by email or url token."""
        try:
            method = AuthMethod(method)
        except ValueError:
            return Result.fail(AuthMethodNotRecognized())

        lookup = {"email": identifier} if method is AuthMethod.EMAIL else {"token": identifier}
        found = await self.get(**lookup)
        if not found.success:
            return Result.ok(AuthResult(authorized=False))

        user = found.value
        if not await run_in_threadpool(security.verify_password, password, user.salt, user.hashed_password):
            return Result.ok(AuthResult(authorized=False))
        return Result.ok(AuthResult(authorized=True, user=user))

    async def new(self, *, email: str, firstname: str, lastname: str, role: str, password: str) -> Result[dict]:
        """Create a user. Fails with UserAlreadyExists when the email is taken."""
        try:
            role = Role.parse(role)
        except ValueError:
            return Result.fail(MissingRequiredParameter(f"Unknown role {role!r}"))

        email = email.strip().lower()
        user_id = security.create_uuid()
        try:
            if not await self.store.claim_email(email, user_id):
                return Result.fail(UserAlreadyExists())

            hashed = await run_in_threadpool(security.hash_password, password)
            user = User(
                id=user_id,
                email=email,
                firstname=firstname,
                lastname=lastname,
                role=role,
                salt=hashed.salt,
                hashed_password=hashed.hash,
                url_token=security.create_url_token(),
                created_on=now_ms(),
            )
            try:
                await self.store.create(user)
            except StoreError:
                await self.store.release_email(email, user_id)
                raise
        except StoreError as e:
            logger.error("Unable to add user %s: %s", email, e)
            return Result.fail(UnableToAddUser())

        await self.events.add(EVENTS, "user_added", f"User {user_id} added with role {role.value}", save=True)
        return Result.ok({"userAdded": True, "id": user_id})

    async def get(
        self,
        *,
        id: str | None = None,
        email: str | None = None,
        token: str | None = None,
        access_token: str | None = None,
    ) -> Result[User]:
        """Fetch a user by exactly one of id, email, url token or access token."""
        given = {key: value for key, value in zip(LOOKUP_KEYS, (id, email, token, access_token)) if value}
        if len(given) != 1:
            return Result.fail(MissingRequiredParameter("Exactly one user lookup key is expected"))

        try:
            if id:
                user_id = id
            elif email:
                user_id = await self.store.id_by_email(email)
            elif token:
                user_id = await self.store.id_by_token(token)
            else:
                claims = self.tokens.decode_access_token(access_token)
                if not claims.success:
                    return Result.fail(claims.error)
                user_id = claims.value["sub"]
            user = await self.store.load(user_id)
        except StoreError as e:
            logger.error("Unable to read user (%s): %s", ", ".join(given), e)
            return Result.fail(AppError("Unable to read user account"))

        if user is None:
            return Result.fail(UserDoesNotExist())
        return Result.ok(user)

    async def get_all(self, role: str = Role.CUSTOMER) -> Result[list[dict]]:
        """All users of a role, without hash, salt or url token."""
        try:
            role = Role.parse(role)
        except ValueError:
            return Result.fail(MissingRequiredParameter(f"Unknown role {role!r}"))
        try:
            users = await self.store.load_all(role)
        except StoreError as e:
            logger.error("Unable to list %s users: %s", role.value, e)
            return Result.fail(UnableToGetUsers())
        return Result.ok([user.public_dict() for user in users])

    async def update(self, params: Mapping[str, Any]) -> Result[dict]:
        """Apply a partial update.

        A new password is hashed with the existing salt; a new email moves the
        email index entry; a new role moves the record to its role-scoped key.
        """
        user_id = params.get("id")
        if not user_id:
            return Result.fail(MissingRequiredParameter("User id is required"))

        found = await self.get(id=user_id)
        if not found.success:
            return Result.fail(found.error)
        current = found.value

        changes: dict[str, Any] = {"updated_on": now_ms()}
        for name in ("firstname", "lastname"):
            if params.get(name) is not None:
                changes[name] = params[name]
        if params.get("role") is not None:
            try:
                changes["role"] = Role.parse(params["role"])
            except ValueError:
                return Result.fail(MissingRequiredParameter(f"Unknown role {params['role']!r}"))
        if params.get("password"):
            hashed = await run_in_threadpool(security.hash_password, params["password"], current.salt)
            changes["hashed_password"] = hashed.hash

        new_email = (params.get("email") or "").strip().lower()
        claimed_email = None
        try:
            if new_email and new_email != current.email:
                if not is_email_ok(new_email):
                    return Result.fail(MissingRequiredParameter(f"Invalid email {new_email!r}"))
                if not await self.store.claim_email(new_email, current.id):
                    return Result.fail(UserAlreadyExists("Email is still used by another account"))
                claimed_email = changes["email"] = new_email

            try:
                await self.store.save(current.with_changes(**changes), current)
            except StoreError:
                if claimed_email:
                    await self.store.release_email(claimed_email, current.id)
                raise
        except StoreError as e:
            logger.error("Unable to update user %s: %s", user_id, e)
            return Result.fail(UnableToUpdateUser())

        return Result.ok({"userUpdated": True, "id": current.id})

    async def delete(
        self,
        *,
        id: str | None = None,
        email: str | None = None,
        token: str | None = None,
        access_token: str | None = None,
    ) -> Result[dict]:
        """Archive a user under its email and drop the live record and indexes."""
        found = await self.get(id=id, email=email, token=token, access_token=access_token)
        if not found.success:
            return Result.fail(found.error)
        user = found.value

        try:
            await self.store.archive(user)
        except StoreError as e:
            logger.error("Unable to archive user %s: %s", user.id, e)
            return Result.fail(UserCannotBeDeleted())

        await self.events.add(EVENTS, "user_deleted", f"User {user.id} archived", save=True)
        return Result.ok({"userDeleted": True, "id": user.id})

    async def send_ask_reset_password(self, email: str) -> Result[dict]:
        """Mint a reset token for the user and mail it."""
        found = await self.get(email=email)
        if not found.success:
            return Result.fail(found.error)
        user = found.value

        token = security.create_url_token()
        try:
            await self.store.save_password_token(token, user.id, self.reset_token_ttl)
        except StoreError as e:
            logger.error("Unable to store password token for user %s: %s", user.id, e)
            return Result.fail(UnableToResetPassword())
        return await self.mailer.send_ask_reset_password(user, token)

    async def send_password_by_email(self, email: str, password: str) -> Result[dict]:
        found = await self.get(email=email)
        if not found.success:
            return Result.fail(found.error)
        return await self.mailer.send_password_by_email(found.value, password)

    async def reset_password(self, token: str, password: str) -> Result[dict]:
        """Set a new password for the user the reset token points to.

        The token is left to expire with its TTL.
        """
        if not password:
            return Result.fail(MissingRequiredParameter("New password is required"))
        try:
            user_id = await self.store.load_password_token(token)
        except StoreError as e:
            logger.error("Unable to read password token: %s", e)
            return Result.fail(UnableToResetPassword())
        if not user_id:
            return Result.fail(MissingPasswordToken())

        updated = await self.update({"id": user_id, "password": password})
        if updated.success:
            await self.events.add(EVENTS, "password_reset", f"Password reset for user {user_id}", save=True)
        return updated

    async def is_admin(self, access_token: str) -> Result[bool]:
        """Whether the user behind `access_token` holds an admin role."""
        found = await self.get(access_token=access_token)
        if not found.success:
            return Result.fail(found.error)
        return Result.ok(found.value.is_admin)
