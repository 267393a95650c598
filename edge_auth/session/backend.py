"""Storage backends for UI form-state sessions."""

from __future__ import annotations

import time
from typing import Any, Protocol, runtime_checkable

DEFAULT_MAX_AGE = 3600  # login form state is short-lived


@runtime_checkable
class SessionBackend(Protocol):
    """Protocol for server-side session storage."""

    async def load(self, session_id: str) -> dict[str, Any] | None:
        """Load session data by ID. Returns None if not found or expired."""
        ...

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        ...

    async def delete(self, session_id: str) -> None:
        ...


class InMemoryBackend:
    """Process-local backend for development and tests.

    State is lost on restart and not shared between Lambda instances; use
    the DynamoDB backend when deployed.
    """

    def __init__(self, max_age: int = DEFAULT_MAX_AGE) -> None:
        self._store: dict[str, tuple[dict[str, Any], float]] = {}
        self._max_age = max_age

    async def load(self, session_id: str) -> dict[str, Any] | None:
        entry = self._store.get(session_id)
        if entry is None:
            return None
        data, saved_at = entry
        if time.time() - saved_at > self._max_age:
            del self._store[session_id]
            return None
        return data

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        # Expiry slides with every save: an active form never times out.
        self._store[session_id] = (data, time.time())

    async def delete(self, session_id: str) -> None:
        self._store.pop(session_id, None)
