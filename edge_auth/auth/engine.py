"""The auth engine: email-OTP sign-in, sessions, rate limiting, origin check.

An ``Auth`` is cheap to build and holds no per-caller state of its own; the
builders in ``builders.py`` decide whether one is shared by the process or
rebuilt for every request. It can be driven two ways:

* ``await auth.handler(request)`` serves the HTTP API under ``base_path``;
* the server-side methods (``send_verification_otp``, ``sign_in_email_otp``,
  ``get_session``, ``sign_out``) do the same work without HTTP, for routes
  that render pages.
"""

from __future__ import annotations

import fnmatch
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError, field_validator

from .. import ocsf
from ..db import Database
from ..platform import EdgeGeo, client_ip
from .errors import AuthAPIError, bad_request, unauthorized
from .options import AuthOptions
from .otp import OTPStore
from .ratelimit import RateLimiter
from .sessions import SessionManager, public_session, public_user

logger = logging.getLogger(__name__)

BaseModelT = TypeVar("BaseModelT", bound=BaseModel)
Endpoint = Callable[[Request, "RequestInfo"], Awaitable[Response]]


# ── Request bodies ─────────────────────────────────────────────────────────


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email")
    return value


class SendOTPBody(BaseModel):
    email: str
    type: Literal["sign-in", "email-verification", "forget-password"] = "sign-in"

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class SignInOTPBody(BaseModel):
    email: str
    otp: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


@dataclass
class RequestInfo:
    ip: str | None
    user_agent: str | None
    cookies: Mapping[str, str]


@dataclass
class SignInResult:
    token: str
    user: dict[str, Any]
    session: dict[str, Any]
    set_cookie: str


class Auth:
    def __init__(self, options: AuthOptions, db: Database) -> None:
        self.options = options
        self.db = db
        self.sessions = SessionManager(db, options)
        self.otp = OTPStore(db, options.email_otp)
        self.rate_limiter = RateLimiter(options.rate_limit) if options.rate_limit.enabled else None
        self._routes: dict[tuple[str, str], Endpoint] = {
            ("GET", "/ok"): self._ok,
            ("POST", "/email-otp/send-verification-otp"): self._send_verification_otp,
            ("POST", "/sign-in/email-otp"): self._sign_in_email_otp,
            ("GET", "/get-session"): self._get_session,
            ("POST", "/sign-out"): self._sign_out,
            ("GET", "/geolocation"): self._geolocation,
        }
        if options.open_api:
            self._routes[("GET", "/open-api/generate-schema")] = self._open_api

    # ── HTTP entry point ───────────────────────────────────────────────────

    async def handler(self, request: Request) -> Response:
        """Serve one request addressed to ``base_path``."""
        path = request.url.path
        base = self.options.base_path.rstrip("/")
        if path != base and not path.startswith(base + "/"):
            return _not_found()
        sub = path[len(base):] or "/"
        endpoint = self._routes.get((request.method, sub))
        if endpoint is None:
            return _not_found()

        info = RequestInfo(
            ip=client_ip(request) if self.options.auto_detect_ip_address else None,
            user_agent=request.headers.get("user-agent"),
            cookies=request.cookies,
        )
        try:
            if request.method != "GET":
                self.check_origin(request.headers.get("origin"))
            if info.ip:
                self.enforce_rate_limit(info.ip, sub)
            return await endpoint(request, info)
        except AuthAPIError as e:
            return e.to_response()

    def is_trusted_origin(self, origin: str) -> bool:
        if origin.rstrip("/") == self.options.base_url.rstrip("/"):
            return True
        return any(fnmatch.fnmatchcase(origin, pattern) for pattern in self.options.trusted_origins)

    def check_origin(self, origin: str | None) -> None:
        """Reject state-changing calls from browsers on untrusted origins."""
        if origin is None or self.is_trusted_origin(origin):
            return
        logger.warning("Rejected request from untrusted origin %s", origin)
        ocsf.authentication_event(
            activity_id=ocsf.AuthActivity.OTHER,
            activity_name="Other",
            status_id=ocsf.Status.FAILURE,
            severity_id=ocsf.Severity.MEDIUM,
            message=f"Untrusted origin: {origin}",
        )
        raise AuthAPIError(403, "INVALID_ORIGIN", "Invalid origin")

    def enforce_rate_limit(self, ip: str, path: str) -> None:
        """Count a call to ``path`` from ``ip``; 429 once over the limit."""
        if self.rate_limiter is None:
            return
        try:
            self.rate_limiter.check(ip, path)
        except AuthAPIError:
            ocsf.authentication_event(
                activity_id=ocsf.AuthActivity.OTHER,
                activity_name="Other",
                status_id=ocsf.Status.FAILURE,
                severity_id=ocsf.Severity.LOW,
                src_ip=ip,
                geo=self._tracked_geo(),
                message=f"Rate limit exceeded for {path}",
            )
            raise

    def _tracked_geo(self) -> EdgeGeo | None:
        return self.options.cf if self.options.geolocation_tracking else None

    # ── Server-side API ────────────────────────────────────────────────────

    async def send_verification_otp(self, email: str, type: str = "sign-in", *, ip: str | None = None) -> None:
        body = parse_body(SendOTPBody, {"email": email, "type": type})
        await self.otp.issue(body.email, body.type)
        ocsf.authentication_event(
            activity_id=ocsf.AuthActivity.AUTHENTICATION_TICKET,
            activity_name="Authentication Ticket",
            status_id=ocsf.Status.SUCCESS,
            severity_id=ocsf.Severity.INFORMATIONAL,
            user_email=body.email,
            src_ip=ip,
            geo=self._tracked_geo(),
            message=f"One-time code issued ({body.type})",
        )

    async def sign_in_email_otp(
        self,
        email: str,
        otp: str,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> SignInResult:
        body = parse_body(SignInOTPBody, {"email": email, "otp": otp})
        try:
            await self.otp.verify(body.email, "sign-in", body.otp)
        except AuthAPIError as e:
            ocsf.authentication_event(
                activity_id=ocsf.AuthActivity.LOGON,
                activity_name="Logon",
                status_id=ocsf.Status.FAILURE,
                severity_id=ocsf.Severity.MEDIUM,
                user_email=body.email,
                src_ip=ip,
                geo=self._tracked_geo(),
                message=f"Email OTP sign-in failed: {e.code}",
            )
            raise

        async with self.db.begin() as conn:
            user = await self.sessions.find_or_create_user(
                conn, body.email, allow_sign_up=not self.options.email_otp.disable_sign_up
            )
            if user is None:
                raise AuthAPIError(400, "USER_NOT_FOUND", "User not found")
            session = await self.sessions.create(
                conn,
                user["id"],
                ip_address=ip,
                user_agent=user_agent,
                geo=self.options.cf,
            )

        ocsf.authentication_event(
            activity_id=ocsf.AuthActivity.LOGON,
            activity_name="Logon",
            status_id=ocsf.Status.SUCCESS,
            severity_id=ocsf.Severity.INFORMATIONAL,
            user_email=body.email,
            src_ip=ip,
            geo=self._tracked_geo(),
            message="User signed in with email OTP",
        )
        return SignInResult(
            token=session["token"],
            user=public_user(user),
            session=public_session(session),
            set_cookie=self.sessions.make_cookie(session["token"]),
        )

    async def get_session(self, cookies: Mapping[str, str]) -> dict[str, Any] | None:
        token = self.sessions.token_from_cookies(cookies)
        if token is None:
            return None
        found = await self.sessions.lookup(token)
        if found is None:
            return None
        session, user = found
        return {"session": public_session(session), "user": public_user(user)}

    async def sign_out(self, cookies: Mapping[str, str], *, ip: str | None = None) -> str:
        """Revoke the caller's session; returns the cookie-clearing header value."""
        token = self.sessions.token_from_cookies(cookies)
        if token is None:
            raise bad_request("FAILED_TO_GET_SESSION", "Failed to get session")
        found = await self.sessions.lookup(token)
        await self.sessions.revoke(token)
        ocsf.authentication_event(
            activity_id=ocsf.AuthActivity.LOGOFF,
            activity_name="Logoff",
            status_id=ocsf.Status.SUCCESS,
            severity_id=ocsf.Severity.INFORMATIONAL,
            user_email=found[1]["email"] if found else None,
            src_ip=ip,
            message="User signed out",
        )
        return self.sessions.make_cookie(None)

    # ── HTTP endpoints ─────────────────────────────────────────────────────

    async def _ok(self, request: Request, info: RequestInfo) -> Response:
        return JSONResponse({"ok": True})

    async def _send_verification_otp(self, request: Request, info: RequestInfo) -> Response:
        body = parse_body(SendOTPBody, await _json_body(request))
        await self.send_verification_otp(body.email, body.type, ip=info.ip)
        return JSONResponse({"success": True})

    async def _sign_in_email_otp(self, request: Request, info: RequestInfo) -> Response:
        body = parse_body(SignInOTPBody, await _json_body(request))
        result = await self.sign_in_email_otp(body.email, body.otp, ip=info.ip, user_agent=info.user_agent)
        response = JSONResponse({"token": result.token, "user": result.user})
        response.headers.append("set-cookie", result.set_cookie)
        return response

    async def _get_session(self, request: Request, info: RequestInfo) -> Response:
        return JSONResponse(await self.get_session(info.cookies))

    async def _sign_out(self, request: Request, info: RequestInfo) -> Response:
        cookie = await self.sign_out(info.cookies, ip=info.ip)
        response = JSONResponse({"success": True})
        response.headers.append("set-cookie", cookie)
        return response

    async def _geolocation(self, request: Request, info: RequestInfo) -> Response:
        current = await self.get_session(info.cookies)
        if current is None:
            raise unauthorized()
        session = current["session"]
        keys = ("timezone", "city", "country", "region", "regionCode", "colo", "latitude", "longitude")
        return JSONResponse({key: session.get(key) for key in keys})

    async def _open_api(self, request: Request, info: RequestInfo) -> Response:
        return JSONResponse(self.open_api_schema())

    def open_api_schema(self) -> dict[str, Any]:
        """OpenAPI 3 description of the routes this instance serves."""
        base = self.options.base_path.rstrip("/")
        paths: dict[str, Any] = {}
        for (method, sub), endpoint in sorted(self._routes.items(), key=lambda kv: kv[0][1]):
            doc = (endpoint.__doc__ or "").strip() or sub.strip("/")
            paths.setdefault(base + sub, {})[method.lower()] = {
                "operationId": endpoint.__name__.lstrip("_"),
                "summary": doc,
                "responses": {"200": {"description": "Success"}},
            }
        return {
            "openapi": "3.1.0",
            "info": {"title": "edge-auth", "version": "0.1.0"},
            "servers": [{"url": self.options.base_url}],
            "paths": paths,
        }


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise bad_request("INVALID_JSON", "Request body must be JSON") from None


def _not_found() -> Response:
    return JSONResponse({"code": "NOT_FOUND", "message": "Not Found"}, status_code=404)


def parse_body(model: type[BaseModelT], data: Any) -> BaseModelT:
    """Validate ``data`` as ``model``; failures become a 400 AuthAPIError."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = e.errors()
        message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
        raise bad_request("VALIDATION_ERROR", message.removeprefix("Value error, ")) from None
