"""Auth sessions: database rows plus a signed token cookie.

The cookie carries the session token signed with the auth secret
(itsdangerous), so a tampered or foreign cookie is rejected before any
database lookup.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..db import Database
from ..platform import EdgeGeo
from ..schema import GEO_COLUMNS
from .options import AuthOptions
from .utils import as_utc, isoformat, new_id, utcnow


class SessionManager:
    def __init__(self, db: Database, options: AuthOptions) -> None:
        self.db = db
        self.options = options
        self.signer = URLSafeTimedSerializer(options.secret, salt="edge-auth.session")
        self.cookie_name = f"{options.cookie_prefix}.session_token"
        self.max_age = options.session_expires_in

    # ── Users ──────────────────────────────────────────────────────────────

    async def find_or_create_user(
        self, conn: AsyncConnection, email: str, *, allow_sign_up: bool = True
    ) -> dict[str, Any] | None:
        """Return the user for ``email``, creating a verified one if allowed."""
        users = self.db.tables.user
        row = (await conn.execute(select(users).where(users.c.email == email))).first()
        now = utcnow()
        if row is not None:
            if not row.email_verified:
                await conn.execute(
                    update(users).where(users.c.id == row.id).values(email_verified=True, updated_at=now)
                )
                return {**row._asdict(), "email_verified": True, "updated_at": now}
            return dict(row._asdict())
        if not allow_sign_up:
            return None

        user = {
            "id": new_id(),
            "name": "",
            "email": email,
            "email_verified": True,
            "image": None,
            "created_at": now,
            "updated_at": now,
        }
        await conn.execute(insert(users).values(**user))
        return user

    # ── Sessions ───────────────────────────────────────────────────────────

    async def create(
        self,
        conn: AsyncConnection,
        user_id: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        geo: EdgeGeo | None = None,
    ) -> dict[str, Any]:
        now = utcnow()
        session: dict[str, Any] = {
            "id": new_id(),
            "token": secrets.token_urlsafe(32),
            "user_id": user_id,
            "expires_at": now + timedelta(seconds=self.max_age),
            "ip_address": ip_address if self.options.auto_detect_ip_address else None,
            "user_agent": user_agent,
            "created_at": now,
            "updated_at": now,
        }
        if self.options.schema.geolocation_tracking:
            tracked = geo if self.options.geolocation_tracking else None
            for name in GEO_COLUMNS:
                session[name] = getattr(tracked, name) if tracked is not None else None
        await conn.execute(insert(self.db.tables.session).values(**session))
        return session

    async def lookup(self, token: str) -> tuple[dict[str, Any], dict[str, Any]] | None:
        """Return (session, user) for a live token; expired sessions are removed."""
        sessions = self.db.tables.session
        users = self.db.tables.user
        async with self.db.begin() as conn:
            row = (await conn.execute(select(sessions).where(sessions.c.token == token))).first()
            if row is None:
                return None
            if as_utc(row.expires_at) <= utcnow():
                await conn.execute(delete(sessions).where(sessions.c.id == row.id))
                return None
            user = (await conn.execute(select(users).where(users.c.id == row.user_id))).first()
            if user is None:
                return None
            return dict(row._asdict()), dict(user._asdict())

    async def revoke(self, token: str) -> None:
        sessions = self.db.tables.session
        async with self.db.begin() as conn:
            await conn.execute(delete(sessions).where(sessions.c.token == token))

    # ── Cookies ────────────────────────────────────────────────────────────

    def token_from_cookies(self, cookies: Mapping[str, str]) -> str | None:
        raw = cookies.get(self.cookie_name)
        if not raw:
            return None
        try:
            return self.signer.loads(raw, max_age=self.max_age)
        except BadSignature:
            return None

    def make_cookie(self, token: str | None = None) -> str:
        """Set-Cookie value for ``token``; ``None`` deletes the cookie."""
        if token is None:
            value = ""
            max_age = 0
        else:
            value = self.signer.dumps(token)
            max_age = self.max_age

        parts = [
            f"{self.cookie_name}={value}",
            f"Max-Age={max_age}",
            "Path=/",
            "HttpOnly",
            "SameSite=lax",
        ]
        if self.options.secure_cookies:
            parts.append("Secure")
        return "; ".join(parts)


def public_session(session: Mapping[str, Any]) -> dict[str, Any]:
    """JSON view of a session row."""
    data = {
        "id": session["id"],
        "token": session["token"],
        "userId": session["user_id"],
        "expiresAt": isoformat(session["expires_at"]),
        "ipAddress": session.get("ip_address"),
        "userAgent": session.get("user_agent"),
        "createdAt": isoformat(session["created_at"]),
        "updatedAt": isoformat(session["updated_at"]),
    }
    for name in GEO_COLUMNS:
        if name in session:
            data[_camel(name)] = session[name]
    return data


def public_user(user: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "email": user["email"],
        "name": user["name"],
        "emailVerified": bool(user["email_verified"]),
        "image": user.get("image"),
        "createdAt": isoformat(user["created_at"]),
        "updatedAt": isoformat(user["updated_at"]),
    }


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
