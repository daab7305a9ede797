"""
User store: the denormalized key layout over a key-value backend.

    user:<role>:<id>             hash    full user record
    user:idByEmail               hash    email -> id
    user:roleById                hash    id -> role
    user:idByToken               hash    urlToken -> id
    user:refreshToken            hash    refreshToken -> {"userId", "expiresOn"}
    user:passwordToken:<token>   string  id, with TTL
    user:archived:<email>        hash    archived user record
    user:archived                zset    email scored by archival time (ms)

Multi-key writes go through one backend batch, which Redis runs as MULTI/EXEC.
Indexes are derived data: the record under `user:<role>:<id>` is authoritative.
"""

import json
import time
from dataclasses import dataclass

from app.models.user import Role, User
from app.store.backend import KeyValueBackend

ID_BY_EMAIL = "user:idByEmail"
ROLE_BY_ID = "user:roleById"
ID_BY_TOKEN = "user:idByToken"
REFRESH_TOKENS = "user:refreshToken"
ARCHIVED = "user:archived"


def user_key(role: Role | str, user_id: str) -> str:
    return f"user:{Role.parse(role).value}:{user_id}"


def password_token_key(token: str) -> str:
    return f"user:passwordToken:{token}"


def archived_key(email: str) -> str:
    return f"user:archived:{email}"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RefreshTokenRecord:
    user_id: str
    expires_on: int

    @property
    def expired(self) -> bool:
        return self.expires_on < now_ms()


class UserStore:
    """Reads and writes users and their indexes."""

    def __init__(self, backend: KeyValueBackend) -> None:
        self.backend = backend

    # --- Index lookups ---

    async def id_by_email(self, email: str) -> str | None:
        return await self.backend.hget(ID_BY_EMAIL, email.lower())

    async def id_by_token(self, url_token: str) -> str | None:
        return await self.backend.hget(ID_BY_TOKEN, url_token)

    async def role_by_id(self, user_id: str) -> Role | None:
        role = await self.backend.hget(ROLE_BY_ID, user_id)
        return Role.parse(role) if role else None

    async def has_users(self) -> bool:
        return bool(await self.backend.hgetall(ROLE_BY_ID))

    # --- Records ---

    async def load(self, user_id: str | None) -> User | None:
        """Resolve the role index, then fetch the role-scoped record."""
        if not user_id:
            return None
        role = await self.role_by_id(user_id)
        if role is None:
            return None
        record = await self.backend.hgetall(user_key(role, user_id))
        return User.from_record(record) if record else None

    async def load_all(self, role: Role) -> list[User]:
        users = []
        for key in await self.backend.keys(user_key(role, "*")):
            record = await self.backend.hgetall(key)
            if record:
                users.append(User.from_record(record))
        return users

    async def claim_email(self, email: str, user_id: str) -> bool:
        """Reserve `email` for `user_id`; False when another user holds it."""
        if await self.backend.hsetnx(ID_BY_EMAIL, email, user_id):
            return True
        return await self.backend.hget(ID_BY_EMAIL, email) == user_id

    async def release_email(self, email: str, user_id: str) -> None:
        if await self.backend.hget(ID_BY_EMAIL, email) == user_id:
            await self.backend.hdel(ID_BY_EMAIL, email)

    async def create(self, user: User) -> None:
        """Write the record and its three index entries in one batch."""
        await (
            self.backend.batch()
            .hset(user_key(user.role, user.id), user.to_record())
            .hset(ID_BY_EMAIL, {user.email: user.id})
            .hset(ROLE_BY_ID, {user.id: user.role.value})
            .hset(ID_BY_TOKEN, {user.url_token: user.id})
            .execute()
        )

    async def save(self, user: User, previous: User) -> None:
        """Persist `user`, moving its key and index entries away from `previous`."""
        batch = self.backend.batch()
        if user.email != previous.email:
            batch.hset(ID_BY_EMAIL, {user.email: user.id}).hdel(ID_BY_EMAIL, previous.email)
        if user.role != previous.role:
            batch.delete(user_key(previous.role, user.id))
            batch.hset(ROLE_BY_ID, {user.id: user.role.value})
        batch.hset(user_key(user.role, user.id), user.to_record())
        await batch.execute()

    async def archive(self, user: User) -> None:
        """Copy the record to the archive, then drop it and its index entries."""
        await (
            self.backend.batch()
            .hset(archived_key(user.email), user.to_record())
            .zadd(ARCHIVED, {user.email: now_ms()}, nx=True)
            .delete(user_key(user.role, user.id))
            .hdel(ID_BY_EMAIL, user.email)
            .hdel(ROLE_BY_ID, user.id)
            .hdel(ID_BY_TOKEN, user.url_token)
            .execute()
        )

    async def load_archived(self, email: str) -> User | None:
        record = await self.backend.hgetall(archived_key(email.lower()))
        return User.from_record(record) if record else None

    async def archived_emails(self) -> list[str]:
        return await self.backend.zrangebyscore(ARCHIVED, "-inf", "+inf")

    # --- Refresh tokens ---

    async def save_refresh_token(self, token: str, user_id: str, expires_on: int) -> None:
        value = json.dumps({"userId": user_id, "expiresOn": expires_on})
        await self.backend.hset(REFRESH_TOKENS, {token: value})

    async def load_refresh_token(self, token: str) -> RefreshTokenRecord | None:
        raw = await self.backend.hget(REFRESH_TOKENS, token)
        if not raw:
            return None
        data = json.loads(raw)
        return RefreshTokenRecord(user_id=data["userId"], expires_on=int(data["expiresOn"]))

    async def delete_refresh_token(self, token: str) -> bool:
        return bool(await self.backend.hdel(REFRESH_TOKENS, token))

    # --- Password reset tokens ---

    async def save_password_token(self, token: str, user_id: str, ttl_seconds: int) -> None:
        await self.backend.set(password_token_key(token), user_id, ex=ttl_seconds)

    async def load_password_token(self, token: str) -> str | None:
        return await self.backend.get(password_token_key(token))
