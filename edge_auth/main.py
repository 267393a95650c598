"""FastAPI app for the edge-hosted OTP login demo.

Mounts the auth API (rebuilt per request from the caller's edge context),
the server-rendered login page and a health check.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import db
from .auth import init_auth
from .config import get_settings
from .routes import auth, health, login
from .session import InMemoryBackend, SessionMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: optionally create tables. Shutdown: close database pools."""
    s = get_settings()
    logger.info("Starting edge-auth (%s), trusted origins: %s", s.environment, s.trusted_origins)
    if s.database_auto_create:
        process_auth = await init_auth()
        await process_auth.db.create_all()
        logger.info("Auth tables ensured")
    yield
    await db.dispose_all()


def create_app(
    *,
    session_backend=None,
    skip_lifespan: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        session_backend: UI session backend (default: InMemoryBackend).
        skip_lifespan: Skip startup/shutdown hooks (for testing).
    """
    app = FastAPI(title="edge-auth", lifespan=None if skip_lifespan else lifespan)
    s = get_settings()

    # CORS, from the same trusted-origin list the auth engine checks
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=s.trusted_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Server-side UI state for the login page
    app.add_middleware(
        SessionMiddleware,
        secret=s.auth_secret,
        backend=session_backend or InMemoryBackend(),
        https_only=s.session_https_only,
    )

    # Routes
    app.include_router(auth.router)
    app.include_router(login.router)
    app.include_router(health.router)

    return app
