"""Session validation: access token cookie + XSRF token pair."""

import hmac
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from app.errors import BadCredentials, InvalidToken, MissingAccessToken, Result
from app.models.user import User
from app.services.tokens import TokenService
from app.store.backend import StoreError
from app.store.users import UserStore

logger = logging.getLogger("sesame")

XSRF_HEADER = "x-srf-token"
WEBSOCKET_PROTOCOL_HEADER = "sec-websocket-protocol"


@dataclass
class Session:
    """Authenticated request context."""

    user: User
    claims: dict[str, Any]


def extract_xsrf_token(headers: Mapping[str, str]) -> str | None:
    """Read the XSRF token from its header, or from the first sub-protocol of a websocket handshake."""
    if headers.get("upgrade", "").lower() == "websocket":
        protocols = headers.get(WEBSOCKET_PROTOCOL_HEADER)
        if not protocols:
            return None
        return protocols.split(",")[0].strip() or None
    return headers.get(XSRF_HEADER) or None


class SessionValidator:
    """Checks that a request carries a valid access token bound to its XSRF token."""

    def __init__(self, tokens: TokenService, store: UserStore) -> None:
        self.tokens = tokens
        self.store = store

    async def validate(self, access_token: str | None, xsrf_token: str | None) -> Result[Session]:
        if not access_token:
            return Result.fail(MissingAccessToken("Missing access token (cookie)"))
        if not xsrf_token:
            return Result.fail(MissingAccessToken("Missing x-srf-token (headers)"))

        decoded = self.tokens.decode_access_token(access_token)
        if not decoded.success:
            return Result.fail(decoded.error)
        claims = decoded.value

        # a mismatched pair means the access token was replayed outside its session
        expected = str(claims.get("xsrfToken", ""))
        if not hmac.compare_digest(expected.encode(), xsrf_token.encode()):
            return Result.fail(InvalidToken("Bad x-srf-token"))

        try:
            user = await self.store.load(claims["sub"])
        except StoreError as e:
            logger.error("Unable to load session user %s: %s", claims["sub"], e)
            user = None
        if user is None:
            return Result.fail(BadCredentials("User does not exist"))
        return Result.ok(Session(user=user, claims=claims))
