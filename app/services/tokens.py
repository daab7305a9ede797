"""Access, refresh and XSRF token issuer."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import Settings
from app.core import security
from app.errors import AppError, ExpiredToken, InvalidToken, Result
from app.models.user import User
from app.store.backend import StoreError
from app.store.users import UserStore, now_ms

logger = logging.getLogger("sesame")


@dataclass(frozen=True)
class TokenSet:
    """Tokens handed to a client after sign-in or refresh."""

    access_token: str
    refresh_token: str
    xsrf_token: str


class TokenService:
    """Mints signed access tokens and rotates the refresh tokens kept in the store.

    Several refresh tokens may be valid for one user at a time (one per signed-in
    client); each is deleted when it is exchanged.
    """

    def __init__(self, settings: Settings, store: UserStore) -> None:
        self.store = store
        self.secret_key = settings.ACCESS_TOKEN_SECRET
        self.algorithm = settings.ACCESS_TOKEN_ALGORITHM
        self.audience = settings.ACCESS_TOKEN_AUDIENCE
        self.issuer = settings.ACCESS_TOKEN_ISSUER
        self.access_expires_in = settings.ACCESS_TOKEN_EXPIRES_IN
        self.refresh_expires_in = settings.REFRESH_TOKEN_EXPIRES_IN

    def create_access_token(self, user: User, xsrf_token: str, refresh_token: str) -> str:
        """Sign an access token whose claims bind it to an XSRF and a refresh token."""
        issued_at = datetime.now(timezone.utc)
        payload = {
            "firstname": user.firstname,
            "lastname": user.lastname,
            "id": user.id,
            "xsrfToken": xsrf_token,
            "refreshToken": refresh_token,
            "sub": user.id,
            "aud": self.audience,
            "iss": self.issuer,
            "iat": issued_at,
            "exp": issued_at + timedelta(milliseconds=self.access_expires_in),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> Result[dict[str, Any]]:
        """Verify signature, audience, issuer and expiry. Fails with InvalidToken or ExpiredToken."""
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            return Result.fail(ExpiredToken("Access token has expired"))
        except JWTError as e:
            return Result.fail(InvalidToken(f"Invalid access token: {e}"))

        if not claims.get("sub"):
            return Result.fail(InvalidToken("Access token has no subject"))
        return Result.ok(claims)

    async def generate_token(self, user: User) -> Result[TokenSet]:
        """Mint a token set for `user` and persist the refresh token record."""
        xsrf_token = security.create_xsrf_token()
        refresh_token = security.create_refresh_token()
        access_token = self.create_access_token(user, xsrf_token, refresh_token)
        try:
            await self.store.save_refresh_token(refresh_token, user.id, now_ms() + self.refresh_expires_in)
        except StoreError as e:
            logger.error("Unable to store refresh token for user %s: %s", user.id, e)
            return Result.fail(AppError("Unable to issue tokens"))

        return Result.ok(TokenSet(access_token=access_token, refresh_token=refresh_token, xsrf_token=xsrf_token))

    async def refresh(self, refresh_token: str) -> Result[tuple[TokenSet, User]]:
        """Exchange a refresh token for a new token set; the old one stops resolving."""
        try:
            record = await self.store.load_refresh_token(refresh_token)
            if record is None:
                return Result.fail(InvalidToken("Unknown refresh token"))
            if record.expired:
                await self.store.delete_refresh_token(refresh_token)
                return Result.fail(ExpiredToken("Refresh token has expired"))

            user = await self.store.load(record.user_id)
            if user is None:
                await self.store.delete_refresh_token(refresh_token)
                return Result.fail(InvalidToken("Refresh token user no longer exists"))

            tokens = await self.generate_token(user)
            if not tokens.success:
                return tokens
            await self.store.delete_refresh_token(refresh_token)
        except (StoreError, KeyError, ValueError) as e:
            logger.error("Refresh token rotation failed: %s", e)
            return Result.fail(InvalidToken("Unable to rotate refresh token"))

        return Result.ok((tokens.value, user))

    async def revoke(self, refresh_token: str) -> Result[bool]:
        """Forget a refresh token, e.g. on sign-out."""
        try:
            return Result.ok(await self.store.delete_refresh_token(refresh_token))
        except StoreError as e:
            logger.error("Unable to revoke refresh token: %s", e)
            return Result.fail(AppError("Unable to revoke refresh token"))
