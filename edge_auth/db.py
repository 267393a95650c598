"""Database connector for the platform-managed Postgres binding.

``get_db`` is called once per auth request. The binding holds a connection
string for a pooled endpoint; the SQLAlchemy engine built for it is cached
per URL so repeated calls in one process share a single pool.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from .config import ConfigurationError, get_settings
from .schema import SCHEMA_OPTIONS, AuthTables, build_tables

logger = logging.getLogger(__name__)

_engines: dict[str, AsyncEngine] = {}
_tables: AuthTables | None = None


class Database:
    """An engine plus the auth tables it serves."""

    def __init__(self, engine: AsyncEngine, tables: AuthTables) -> None:
        self.engine = engine
        self.tables = tables

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[AsyncConnection]:
        """Connection inside a transaction, committed on clean exit."""
        async with self.engine.begin() as conn:
            yield conn

    async def create_all(self) -> None:
        """Create any missing auth tables. For local development and tests."""
        async with self.engine.begin() as conn:
            await conn.run_sync(self.tables.metadata.create_all)


def _binding_url(value: Any) -> str:
    # A binding is either the connection string itself or an object exposing
    # it as connection_string / connectionString.
    if isinstance(value, Mapping):
        value = value.get("connection_string") or value.get("connectionString")
    else:
        value = getattr(value, "connection_string", value)
    return value if isinstance(value, str) else ""


def normalize_url(url: str) -> str:
    """Point bare Postgres URLs at the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def _schema_tables() -> AuthTables:
    global _tables
    if _tables is None:
        _tables = build_tables(SCHEMA_OPTIONS)
    return _tables


def get_db(
    env: Mapping[str, Any],
    *,
    binding: str | None = None,
    echo: bool | None = None,
) -> Database:
    """Return a schema-bound database handle for the named binding.

    Raises:
        ConfigurationError: the binding is absent, empty or not a valid URL.
    """
    s = get_settings()
    binding = binding or s.database_binding
    url = _binding_url(env.get(binding))
    if not url:
        raise ConfigurationError(f"Database binding {binding!r} is not configured")

    url = normalize_url(url)
    engine = _engines.get(url)
    if engine is None:
        try:
            parsed = make_url(url)
            kwargs: dict[str, Any] = {"echo": s.database_echo if echo is None else echo}
            if parsed.get_backend_name() == "postgresql":
                kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
            elif parsed.get_backend_name() == "sqlite":
                # Local development and tests; no connection outlives a request.
                kwargs["poolclass"] = NullPool
            engine = create_async_engine(parsed, **kwargs)
        except (ArgumentError, InvalidRequestError, ValueError) as e:
            raise ConfigurationError(f"Database binding {binding!r} is invalid: {e}") from e
        except ImportError as e:
            # Driver for the URL's dialect is not installed.
            raise ConfigurationError(f"Database binding {binding!r} needs a missing driver: {e}") from e
        _engines[url] = engine
        logger.info("Database engine created for %s", parsed.render_as_string(hide_password=True))

    return Database(engine, _schema_tables())


async def dispose_all() -> None:
    """Close every cached pool. Called on application shutdown."""
    engines = list(_engines.values())
    _engines.clear()
    for engine in engines:
        await engine.dispose()
