"""Email one-time codes: issue, deliver and check.

A pending code is one ``verification`` row whose identifier is
``"<type>-otp-<email>"`` and whose value is ``"<code>:<failed attempts>"``.
Issuing a new code replaces any pending one for the same identifier.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import timedelta

from sqlalchemy import delete, insert, select, update

from ..db import Database
from .errors import AuthAPIError, bad_request
from .options import EmailOTPOptions
from .utils import as_utc, new_id, utcnow

logger = logging.getLogger(__name__)

OTP_TYPES = ("sign-in", "email-verification", "forget-password")

# Re-reads allowed per verify beyond one per attempt, when concurrent callers
# keep changing the row under us.
MAX_RETRIES = 3


class _WriteConflict(Exception):
    """The row changed between our read and our conditional write."""


async def log_verification_otp(email: str, otp: str, type: str) -> None:
    """Development sender: write the code to the log instead of emailing it."""
    logger.info("Email OTP for %s: %s (type: %s)", email, otp, type)


def generate_otp(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def otp_identifier(type: str, email: str) -> str:
    return f"{type}-otp-{email}"


class OTPStore:
    def __init__(self, db: Database, options: EmailOTPOptions) -> None:
        self.db = db
        self.options = options
        self.table = db.tables.verification

    async def issue(self, email: str, type: str) -> str:
        """Store a fresh code for (type, email), hand it to the sender, return it."""
        if type not in OTP_TYPES:
            raise bad_request("INVALID_OTP_TYPE", "Invalid OTP type")

        otp = generate_otp(self.options.otp_length)
        identifier = otp_identifier(type, email)
        now = utcnow()
        async with self.db.begin() as conn:
            await conn.execute(delete(self.table).where(self.table.c.identifier == identifier))
            await conn.execute(
                insert(self.table).values(
                    id=new_id(),
                    identifier=identifier,
                    value=f"{otp}:0",
                    expires_at=now + timedelta(seconds=self.options.expires_in),
                    created_at=now,
                    updated_at=now,
                )
            )

        await self.options.send_verification_otp(email, otp, type)
        return otp

    async def verify(self, email: str, type: str, otp: str) -> None:
        """Consume the pending code for (type, email) or raise AuthAPIError.

        Bookkeeping (attempt counter, deleting dead codes) is committed before
        the error is raised. Writes are conditional on the value that was
        read; a caller that loses a race re-reads and checks again, so every
        guess costs an attempt and a code is consumed at most once.
        """
        identifier = otp_identifier(type, email)
        for _ in range(self.options.allowed_attempts + MAX_RETRIES):
            try:
                error = await self._check(identifier, otp)
            except _WriteConflict:
                continue
            if error is not None:
                raise error
            return
        raise bad_request("INVALID_OTP", "Invalid OTP")

    async def _check(self, identifier: str, otp: str) -> AuthAPIError | None:
        t = self.table
        async with self.db.begin() as conn:
            row = (
                await conn.execute(
                    select(t)
                    .where(t.c.identifier == identifier)
                    .order_by(t.c.created_at.desc())
                    .with_for_update()
                )
            ).first()
            if row is None:
                return bad_request("INVALID_OTP", "Invalid OTP")
            if as_utc(row.expires_at) < utcnow():
                await conn.execute(delete(t).where(t.c.id == row.id))
                return bad_request("OTP_EXPIRED", "OTP expired")

            stored, _, attempts_raw = row.value.rpartition(":")
            attempts = int(attempts_raw or 0)
            if attempts >= self.options.allowed_attempts:
                await conn.execute(delete(t).where(t.c.id == row.id))
                return AuthAPIError(403, "TOO_MANY_ATTEMPTS", "Too many attempts")

            unchanged = (t.c.id == row.id) & (t.c.value == row.value)
            if not secrets.compare_digest(stored.encode(), otp.encode()):
                stmt = update(t).where(unchanged).values(
                    value=f"{stored}:{attempts + 1}", updated_at=utcnow()
                )
                error: AuthAPIError | None = bad_request("INVALID_OTP", "Invalid OTP")
            else:
                stmt = delete(t).where(unchanged)
                error = None
            if (await conn.execute(stmt)).rowcount != 1:
                raise _WriteConflict
            return error
