"""Pytest configuration and fixtures."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.context import AppContext, create_context
from app.services.mailer import MailMessage, Mailer
from app.store.backend import InMemoryBackend

ADMIN = {"email": "john@doe.com", "firstname": "John", "lastname": "Doe", "role": "admin", "password": "pass1234"}
CUSTOMER = {"email": "jane@roe.com", "firstname": "Jane", "lastname": "Roe", "role": "customer", "password": "secret99"}


class RecordingMailer(Mailer):
    """Mailer that keeps delivered messages instead of logging them."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.outbox: list[MailMessage] = []

    async def _deliver(self, message: MailMessage) -> None:
        self.outbox.append(message)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(
        ACCESS_TOKEN_SECRET="test-secret-key",
        APP_ENV="test",
        STORE_BACKEND="memory",
        COOKIE_SECURE=False,
        COOKIE_SAMESITE="lax",
        FRONTEND_URL="https://app.example.org",
    )


@pytest.fixture(name="backend")
def backend_fixture() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture(name="mailer")
def mailer_fixture(settings: Settings) -> RecordingMailer:
    return RecordingMailer(settings)


@pytest.fixture(name="context")
def context_fixture(settings: Settings, backend: InMemoryBackend, mailer: RecordingMailer) -> AppContext:
    """Services wired over a fresh in-memory store."""
    return create_context(settings, backend=backend, mailer=mailer)


@pytest.fixture(name="client")
def client_fixture(settings: Settings, backend: InMemoryBackend, mailer: RecordingMailer):
    """Create a test client sharing the store of `context`, with rate limiting disabled."""
    from app.rate_limit import limiter
    from main import create_app

    app = create_app(settings, backend=backend, mailer=mailer)
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    limiter.enabled = True


def run(coro):
    """Run a coroutine from synchronous test code on a private event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def add_user(context: AppContext, fields: dict) -> str:
    """Create a user synchronously and return its id."""
    result = run(context.users.new(**fields))
    assert result.success, result.error
    return result.value["id"]


@pytest.fixture(name="admin_user")
def admin_user_fixture(context: AppContext) -> dict:
    return {**ADMIN, "id": add_user(context, ADMIN)}


@pytest.fixture(name="customer_user")
def customer_user_fixture(context: AppContext) -> dict:
    return {**CUSTOMER, "id": add_user(context, CUSTOMER)}


def sign_in(client: TestClient, user: dict) -> str:
    """Sign in through the API; the client keeps the cookies. Returns the XSRF token."""
    response = client.post(
        "/api/users/signIn",
        json={"authMethod": "emailAuth", "email": user["email"], "password": user["password"]},
    )
    assert response.status_code == 200, response.text
    return response.json()["xsrfToken"]
