"""Application event log.

Every event goes to the `sesame` logger. Events added with `save=True` are also
kept in the store, one sorted set per type (`log:<type>`) scored by creation time,
and expire after the configured retention period.
"""

import json
import logging

from app.errors import AppError, Result
from app.store.backend import KeyValueBackend, StoreError
from app.store.users import now_ms

logger = logging.getLogger("sesame")

ERRORS = "errors"
EVENTS = "events"


def log_key(log_type: str) -> str:
    return f"log:{log_type}"


class EventLog:
    """Records typed application events."""

    def __init__(self, backend: KeyValueBackend, retention_seconds: int) -> None:
        self.backend = backend
        self.retention_seconds = retention_seconds

    async def add(self, log_type: str, event: str, message: str, save: bool = False, **extra) -> Result[dict]:
        record = {"type": log_type, "event": event, "message": message, "createdOn": now_ms(), **extra}
        level = logging.WARNING if log_type == ERRORS else logging.INFO
        logger.log(level, "[%s] %s: %s", log_type, event, message)

        if save:
            try:
                await (
                    self.backend.batch()
                    .zadd(log_key(log_type), {json.dumps(record, sort_keys=True): record["createdOn"]}, nx=True)
                    .expire(log_key(log_type), self.retention_seconds)
                    .execute()
                )
            except StoreError as e:
                logger.error("Unable to persist %s event %s: %s", log_type, event, e)
                return Result.fail(AppError("Unable to save log"))
        return Result.ok({"logAdded": True})

    async def get_all(self, log_type: str, start: int | str = 0, stop: int | str = "+inf") -> Result[list[dict]]:
        """Saved events of `log_type` created between `start` and `stop` (ms)."""
        try:
            raw = await self.backend.zrangebyscore(log_key(log_type), start, stop)
        except StoreError as e:
            logger.error("Unable to read %s events: %s", log_type, e)
            return Result.fail(AppError("Unable to read logs"))
        return Result.ok([json.loads(item) for item in raw])

    async def delete_all(self, log_type: str, start: int | str = 0, stop: int | str = "+inf") -> Result[dict]:
        try:
            removed = await self.backend.zremrangebyscore(log_key(log_type), start, stop)
        except StoreError as e:
            logger.error("Unable to delete %s events: %s", log_type, e)
            return Result.fail(AppError("Unable to delete logs"))
        return Result.ok({"logsDeleted": removed > 0, "count": removed})
