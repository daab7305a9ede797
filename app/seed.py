"""Default accounts.

Run ``python -m app.seed [--flush]`` to create them and print their generated
passwords.
"""

import argparse
import asyncio
import logging

from app.config import get_settings
from app.context import AppContext, create_context
from app.core.security import create_password
from app.services.event_log import EVENTS

logger = logging.getLogger("sesame")

_ADMIN = {"email": "admin@sesame.local", "firstname": "John", "lastname": "Doe", "role": "admin"}

DEFAULT_USERS = {
    "development": [_ADMIN],
    "staging": [_ADMIN],
    "production": [_ADMIN],
    "test": [_ADMIN],
}


async def seed_users(context: AppContext, env: str) -> list[dict]:
    """Create the default users of `env` and return their credentials."""
    if env not in DEFAULT_USERS:
        raise ValueError(f"No default users for environment {env!r}")

    created = []
    for fields in DEFAULT_USERS[env]:
        password = create_password()
        result = await context.users.new(password=password, **fields)
        if not result.success:
            logger.warning("Seed user %s skipped: %s", fields["email"], result.error.message)
            continue
        created.append({**fields, "password": password, "id": result.value["id"]})

    await context.events.add(EVENTS, "seed_users", f"{len(created)} default user(s) created for {env}", save=True)
    return created


async def _run(flush: bool) -> list[dict]:
    settings = get_settings()
    context = create_context(settings)
    try:
        if flush:
            await context.backend.flush()
        return await seed_users(context, settings.APP_ENV)
    finally:
        await context.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the default user accounts.")
    parser.add_argument("--flush", action="store_true", help="empty the store first")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for i, user in enumerate(asyncio.run(_run(args.flush))):
        print(f"User {i} {{ email: '{user['email']}', password: '{user['password']}', role: '{user['role']}', id: '{user['id']}' }}")


if __name__ == "__main__":
    main()
