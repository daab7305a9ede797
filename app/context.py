"""Application context: the store connection and the services wired on top of it.

Built once at startup and closed at shutdown. Services get their collaborators
through their constructors; nothing reaches for module-level state.
"""

import logging
from dataclasses import dataclass

from app.config import ConfigurationError, Settings
from app.services.event_log import EventLog
from app.services.mailer import Mailer
from app.services.session import SessionValidator
from app.services.tokens import TokenService
from app.services.users import UserService
from app.store.backend import KeyValueBackend, create_backend
from app.store.users import UserStore

logger = logging.getLogger("sesame")


@dataclass
class AppContext:
    settings: Settings
    backend: KeyValueBackend
    store: UserStore
    tokens: TokenService
    mailer: Mailer
    events: EventLog
    users: UserService
    sessions: SessionValidator

    async def close(self) -> None:
        await self.backend.close()


def create_context(
    settings: Settings,
    backend: KeyValueBackend | None = None,
    mailer: Mailer | None = None,
) -> AppContext:
    """Wire the services. Raises ConfigurationError when settings are unusable."""
    settings.check()
    for warning in settings.validate():
        logger.warning(warning)

    if backend is None:
        try:
            backend = create_backend(settings.STORE_BACKEND, settings.REDIS_URL)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    store = UserStore(backend)
    tokens = TokenService(settings, store)
    mailer = mailer or Mailer(settings)
    events = EventLog(backend, settings.LOG_RETENTION_SECONDS)
    users = UserService(settings, store, tokens, mailer, events)
    return AppContext(
        settings=settings,
        backend=backend,
        store=store,
        tokens=tokens,
        mailer=mailer,
        events=events,
        users=users,
        sessions=SessionValidator(tokens, store),
    )
