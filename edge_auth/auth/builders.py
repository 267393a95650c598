"""Where ``Auth`` instances come from.

Three shapes, one configuration source:

* ``schema_auth()`` – schema-affecting options only. No database, no edge
  context, no I/O; consumed by ``scripts/generate_schema.py``.
* ``init_auth()`` – one instance per process, built lazily, IP/geo tracking
  and rate limiting off. For code that runs outside an edge request.
* ``get_auth_for_request(request)`` – a new instance for every request, with
  the caller's edge geolocation and IP tracking and rate limiting on. The
  geo snapshot belongs to one caller, so this instance is never cached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from starlette.requests import HTTPConnection

from ..config import Settings, get_settings
from ..db import Database, get_db
from ..platform import PlatformContext
from ..schema import SCHEMA_OPTIONS, AuthTables, SchemaOptions, build_tables
from .engine import Auth
from .options import AuthOptions, EmailOTPOptions, RateLimitOptions, SendVerificationOTP
from .otp import log_verification_otp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaAuth:
    options: SchemaOptions
    tables: AuthTables


def schema_auth(options: SchemaOptions = SCHEMA_OPTIONS) -> SchemaAuth:
    """Schema-only configuration for offline table generation."""
    return SchemaAuth(options=options, tables=build_tables(options))


def build_auth(
    db: Database,
    *,
    settings: Settings,
    auto_detect_ip_address: bool,
    geolocation_tracking: bool,
    rate_limit: bool,
    platform: PlatformContext | None = None,
    sender: SendVerificationOTP | None = None,
) -> Auth:
    """Assemble an ``Auth`` from settings plus the tracking switches."""
    options = AuthOptions(
        secret=settings.auth_secret,
        base_url=settings.base_url,
        trusted_origins=tuple(settings.trusted_origins),
        email_otp=EmailOTPOptions(send_verification_otp=sender or log_verification_otp),
        rate_limit=RateLimitOptions(enabled=rate_limit, storage=settings.rate_limit_storage),
        schema=SCHEMA_OPTIONS,
        auto_detect_ip_address=auto_detect_ip_address,
        geolocation_tracking=geolocation_tracking,
        cf=platform.cf if platform is not None and geolocation_tracking else None,
        secure_cookies=settings.session_https_only,
    )
    return Auth(options, db)


# ── Per-process instance ──────────────────────────────────────────────────

_auth_instance: Auth | None = None
_auth_lock = asyncio.Lock()


async def init_auth() -> Auth:
    """Return the process-wide instance, building it on first use.

    Concurrent first callers wait on the lock; exactly one builds.
    """
    global _auth_instance
    if _auth_instance is not None:
        return _auth_instance
    async with _auth_lock:
        if _auth_instance is None:
            settings = get_settings()
            db = get_db(PlatformContext.from_environ().env)
            _auth_instance = build_auth(
                db,
                settings=settings,
                auto_detect_ip_address=False,
                geolocation_tracking=False,
                rate_limit=False,
            )
            logger.info("Process-wide auth instance initialized")
    return _auth_instance


def reset_auth() -> None:
    """Drop the process-wide instance. For testing."""
    global _auth_instance, _auth_lock
    _auth_instance = None
    _auth_lock = asyncio.Lock()


# ── Per-request instance ──────────────────────────────────────────────────


def build_request_auth(
    db: Database,
    platform: PlatformContext,
    *,
    settings: Settings | None = None,
) -> Auth:
    """Build the auth instance for one request from explicit inputs."""
    return build_auth(
        db,
        settings=settings or get_settings(),
        auto_detect_ip_address=True,
        geolocation_tracking=True,
        rate_limit=True,
        platform=platform,
    )


async def get_auth_for_request(conn: HTTPConnection) -> Auth:
    """Fresh auth instance for the current request. Never cached."""
    platform = PlatformContext.from_request(conn)
    db = get_db(platform.env)
    return build_request_auth(db, platform)
