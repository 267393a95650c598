"""ASGI middleware holding server-side UI state between page loads.

The login page posts forms and redirects back to itself; the email being
signed in and the step the form is on have to survive those round trips.
This middleware keeps a signed session ID in a cookie and the state itself
in a SessionBackend, and exposes it as ``request.state.ui_session``.

It is separate from the auth session: the auth engine issues its own cookie
and never reads this one. Paths under ``skip_prefixes`` (the auth API) are
passed through untouched.
"""

from __future__ import annotations

import secrets
from typing import Any

from itsdangerous import BadSignature, URLSafeTimedSerializer
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .backend import DEFAULT_MAX_AGE, InMemoryBackend, SessionBackend

COOKIE_NAME = "edge_auth_ui"


class SessionMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        secret: str,
        backend: SessionBackend | None = None,
        cookie_name: str = COOKIE_NAME,
        max_age: int = DEFAULT_MAX_AGE,
        https_only: bool = False,
        same_site: str = "lax",
        skip_prefixes: tuple[str, ...] = ("/api/",),
    ) -> None:
        self.app = app
        self.signer = URLSafeTimedSerializer(secret, salt="edge-auth.ui")
        self.backend = backend or InMemoryBackend(max_age=max_age)
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.https_only = https_only
        self.same_site = same_site
        self.skip_prefixes = skip_prefixes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"].startswith(self.skip_prefixes):
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        session_id = self._load_session_id(conn)
        initial: dict[str, Any] = {}
        if session_id:
            loaded = await self.backend.load(session_id)
            if loaded is None:
                session_id = None
            else:
                initial = loaded

        scope.setdefault("state", {})
        scope["state"]["ui_session"] = dict(initial)

        async def send_wrapper(message: Message) -> None:
            nonlocal session_id
            if message["type"] == "http.response.start":
                data: dict[str, Any] = scope["state"]["ui_session"]
                headers = MutableHeaders(scope=message)
                if not data and session_id:
                    # Emptied: forget it rather than store an empty record.
                    await self.backend.delete(session_id)
                    headers.append("set-cookie", self._make_cookie(session_id, delete=True))
                elif data and data != initial:
                    session_id = session_id or secrets.token_urlsafe(32)
                    await self.backend.save(session_id, data)
                    headers.append("set-cookie", self._make_cookie(session_id))
            await send(message)

        await self.app(scope, receive, send_wrapper)

    def _load_session_id(self, conn: HTTPConnection) -> str | None:
        raw = conn.cookies.get(self.cookie_name)
        if not raw:
            return None
        try:
            return self.signer.loads(raw, max_age=self.max_age)
        except BadSignature:
            return None

    def _make_cookie(self, session_id: str, *, delete: bool = False) -> str:
        value = "" if delete else self.signer.dumps(session_id)
        max_age = 0 if delete else self.max_age
        parts = [
            f"{self.cookie_name}={value}",
            f"Max-Age={max_age}",
            "Path=/",
            "HttpOnly",
            f"SameSite={self.same_site}",
        ]
        if self.https_only:
            parts.append("Secure")
        return "; ".join(parts)


def get_ui_session(request: Request) -> dict[str, Any]:
    """The UI session dict for this request (empty if the middleware is absent)."""
    return request.scope.setdefault("state", {}).setdefault("ui_session", {})
