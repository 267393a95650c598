"""Small helpers shared by the auth engine."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_id() -> str:
    return secrets.token_urlsafe(16)


def isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None
