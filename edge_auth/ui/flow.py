"""Login form state machine.

States and transitions:

* collecting-email → otp-sent when the code is sent,
  → error on an empty email or a send failure;
* otp-sent → submitting while the code is checked, then either a page
  reload (signed in) or back to otp-sent with a message;
* otp-sent → collecting-email on reset, clearing code and message.

Every action goes through an ``AuthClient``; while one is in flight the
others are ignored, the same way the page disables its controls.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from .client import AuthClient, ClientResult

logger = logging.getLogger(__name__)

OTP_LENGTH = 6

EMPTY_EMAIL = "Please enter your email address"
INVALID_CODE = "Please enter a valid 6-digit code"
SEND_FAILED = "Failed to send OTP"
VERIFY_FAILED = "Invalid OTP"
UNEXPECTED = "An unexpected error occurred"


class LoginState(str, enum.Enum):
    COLLECTING_EMAIL = "collecting-email"
    OTP_SENT = "otp-sent"
    SUBMITTING = "submitting"
    ERROR = "error"


class LoginFlow:
    def __init__(
        self,
        client: AuthClient,
        *,
        email: str = "",
        code: str = "",
        otp_sent: bool = False,
        error_message: str = "",
    ) -> None:
        self.client = client
        self.email = email
        self.code = code
        self.otp_sent = otp_sent
        self.error_message = error_message
        self.in_progress = False
        self.reload_requested = False
        self.set_cookies: list[str] = []

    @property
    def state(self) -> LoginState:
        if self.in_progress and self.otp_sent:
            return LoginState.SUBMITTING
        if self.otp_sent:
            return LoginState.OTP_SENT
        if self.error_message:
            return LoginState.ERROR
        return LoginState.COLLECTING_EMAIL

    @property
    def can_verify(self) -> bool:
        return not self.in_progress and len(self.code) == OTP_LENGTH

    def set_code(self, value: str) -> None:
        """Keep digits only, at most six, as the code input does."""
        self.code = "".join(ch for ch in value if ch.isdigit())[:OTP_LENGTH]

    async def send_code(self, email: str | None = None) -> None:
        if self.in_progress:
            return
        if email is not None:
            self.email = email.strip()
        if not self.email:
            self.error_message = EMPTY_EMAIL
            return

        self.in_progress = True
        self.error_message = ""
        try:
            result = await self.client.send_one_time_code(self.email)
            if result.error:
                self.error_message = result.error.message or SEND_FAILED
            else:
                self.otp_sent = True
        except Exception as e:
            logger.exception("Sending one-time code failed")
            self.error_message = str(e) or UNEXPECTED
        finally:
            self.in_progress = False

    async def verify_code(self, code: str | None = None) -> None:
        if self.in_progress or not self.otp_sent:
            return
        if code is not None:
            self.code = code.strip()
        if len(self.code) != OTP_LENGTH or not self.code.isdigit():
            self.error_message = INVALID_CODE
            return

        self.in_progress = True
        self.error_message = ""
        try:
            result = await self.client.verify_one_time_code(self.email, self.code)
            if result.error:
                self.error_message = result.error.message or VERIFY_FAILED
            else:
                self._signed_in(result)
        except Exception as e:
            logger.exception("Verifying one-time code failed")
            self.error_message = str(e) or UNEXPECTED
        finally:
            self.in_progress = False

    def reset(self) -> None:
        """Back to the email step ("Use a different email")."""
        if self.in_progress:
            return
        self.otp_sent = False
        self.code = ""
        self.error_message = ""

    def _signed_in(self, result: ClientResult) -> None:
        # The page reloads so the server re-evaluates the new session.
        self.reload_requested = True
        self.set_cookies = list(result.set_cookies)

    # ── Persistence between page loads ─────────────────────────────────────

    def to_state(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "otp_sent": self.otp_sent,
            "error_message": self.error_message,
        }

    @classmethod
    def from_state(cls, client: AuthClient, state: dict[str, Any] | None) -> LoginFlow:
        state = state or {}
        return cls(
            client,
            email=state.get("email", ""),
            otp_sent=bool(state.get("otp_sent", False)),
            error_message=state.get("error_message", ""),
        )
