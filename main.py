"""Sesame - user accounts and session authentication service."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import Settings, get_settings
from app.context import create_context
from app.errors import register_exception_handlers
from app.rate_limit import limiter
from app.routers import users_router
from app.seed import seed_users
from app.services.event_log import EVENTS
from app.services.mailer import Mailer
from app.store.backend import KeyValueBackend

logger = logging.getLogger("sesame")

VERSION = "0.1.0"


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Cache-Control"] = "no-store"
        return response


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATH = "/api/users"

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        # Log account and session mutations
        path = request.url.path
        method = request.method
        if method in ("POST", "PUT", "DELETE") and path.startswith(self.AUDIT_PATH):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


def create_app(
    settings: Settings | None = None,
    backend: KeyValueBackend | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    """Build the application. The store and services are created when it starts."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = create_context(settings, backend=backend, mailer=mailer)
        app.state.context = context
        await context.events.add(EVENTS, "start_app", f"App started in {settings.APP_ENV} mode", save=True)

        if settings.SEED_USERS and not await context.store.has_users():
            for user in await seed_users(context, settings.APP_ENV):
                logger.warning("Seeded %s user %s with password %s", user["role"], user["email"], user["password"])

        yield

        await context.events.add(EVENTS, "stop_app", "App stopped", save=True)
        await context.close()

    app = FastAPI(title="Sesame", version=VERSION, lifespan=lifespan)
    app.state.limiter = limiter

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AuditLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Authorization"],
    )

    register_exception_handlers(app)

    # --- Rate limit error handler ---
    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Handle rate limit exceeded."""
        return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})

    # --- Health check ---
    @app.get("/api/health")
    def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok", "app": "sesame", "version": VERSION}

    app.include_router(users_router)
    return app


app = create_app()
