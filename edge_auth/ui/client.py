"""Auth clients used by the login UI.

Every operation returns a ``ClientResult`` instead of raising for failures
the auth API reports (bad code, rate limit, ...). Transport problems still
raise; ``LoginFlow`` turns those into a generic message.

* ``HttpAuthClient`` talks to ``/api/auth`` over HTTP with httpx and keeps
  the session cookie in its cookie jar (scripts, other services).
* ``ServerAuthClient`` calls a request-scoped ``Auth`` in process, for the
  server-rendered login page, and collects the Set-Cookie headers the page
  has to pass on to the browser.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from starlette.requests import Request

from ..auth import Auth, AuthAPIError
from ..platform import client_ip


@dataclass
class ClientError:
    message: str | None
    status: int | None = None
    code: str | None = None


@dataclass
class ClientResult:
    data: Any = None
    error: ClientError | None = None
    set_cookies: list[str] = field(default_factory=list)


class AuthClient(Protocol):
    async def send_one_time_code(self, email: str) -> ClientResult: ...

    async def verify_one_time_code(self, email: str, code: str) -> ClientResult: ...

    async def get_session_state(self) -> ClientResult: ...

    async def sign_out(self) -> ClientResult: ...


def _error_result(e: AuthAPIError) -> ClientResult:
    return ClientResult(error=ClientError(message=e.message, status=e.status, code=e.code))


class HttpAuthClient:
    def __init__(
        self,
        base_url: str,
        *,
        base_path: str = "/api/auth",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_path = base_path.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=base_url)
        # Same-origin calls, as a browser on base_url would make them
        self._headers = {"origin": base_url.rstrip("/")}

    async def __aenter__(self) -> HttpAuthClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, path: str, body: dict[str, Any] | None = None) -> ClientResult:
        resp = await self._client.request(
            method, self.base_path + path, json=body, headers=self._headers
        )
        try:
            data = resp.json() if resp.content else None
        except ValueError:
            data = None

        if resp.is_success:
            return ClientResult(data=data, set_cookies=resp.headers.get_list("set-cookie"))

        message = code = None
        if isinstance(data, dict):
            message = data.get("message")
            code = data.get("code")
        return ClientResult(
            error=ClientError(message=message or resp.reason_phrase or None, status=resp.status_code, code=code)
        )

    async def send_one_time_code(self, email: str) -> ClientResult:
        return await self._call(
            "POST", "/email-otp/send-verification-otp", {"email": email, "type": "sign-in"}
        )

    async def verify_one_time_code(self, email: str, code: str) -> ClientResult:
        return await self._call("POST", "/sign-in/email-otp", {"email": email, "otp": code})

    async def get_session_state(self) -> ClientResult:
        return await self._call("GET", "/get-session")

    async def sign_out(self) -> ClientResult:
        return await self._call("POST", "/sign-out")


class ServerAuthClient:
    def __init__(self, auth: Auth, request: Request) -> None:
        self.auth = auth
        self.request = request
        self.ip = client_ip(request) if auth.options.auto_detect_ip_address else None

    def _limit(self, path: str) -> None:
        if self.ip:
            self.auth.enforce_rate_limit(self.ip, path)

    async def send_one_time_code(self, email: str) -> ClientResult:
        try:
            self._limit("/email-otp/send-verification-otp")
            await self.auth.send_verification_otp(email, "sign-in", ip=self.ip)
        except AuthAPIError as e:
            return _error_result(e)
        return ClientResult(data={"success": True})

    async def verify_one_time_code(self, email: str, code: str) -> ClientResult:
        try:
            self._limit("/sign-in/email-otp")
            result = await self.auth.sign_in_email_otp(
                email, code, ip=self.ip, user_agent=self.request.headers.get("user-agent")
            )
        except AuthAPIError as e:
            return _error_result(e)
        return ClientResult(
            data={"token": result.token, "user": result.user},
            set_cookies=[result.set_cookie],
        )

    async def get_session_state(self) -> ClientResult:
        try:
            data = await self.auth.get_session(self.request.cookies)
        except AuthAPIError as e:
            return _error_result(e)
        return ClientResult(data=data)

    async def sign_out(self) -> ClientResult:
        try:
            cookie = await self.auth.sign_out(self.request.cookies, ip=self.ip)
        except AuthAPIError as e:
            return _error_result(e)
        return ClientResult(data={"success": True}, set_cookies=[cookie])
