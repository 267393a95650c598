"""Options an ``Auth`` instance is built from."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from ..platform import EdgeGeo
from ..schema import SCHEMA_OPTIONS, SchemaOptions

# send(email, otp, type)
SendVerificationOTP = Callable[[str, str, str], Awaitable[None]]


@dataclass(frozen=True)
class EmailOTPOptions:
    send_verification_otp: SendVerificationOTP
    otp_length: int = 6
    expires_in: int = 300  # seconds
    allowed_attempts: int = 3
    disable_sign_up: bool = False


@dataclass(frozen=True)
class RateLimitRule:
    max: int
    window: int  # seconds


# Path patterns relative to the auth base path; first match wins.
DEFAULT_RATE_LIMIT_RULES: Mapping[str, RateLimitRule] = {
    "/email-otp/send-verification-otp": RateLimitRule(max=3, window=60),
    "/sign-in/email-otp": RateLimitRule(max=3, window=60),
    "/sign-in/*": RateLimitRule(max=3, window=10),
}


@dataclass(frozen=True)
class RateLimitOptions:
    enabled: bool = False
    window: int = 10
    max: int = 100
    storage: str = "memory://"
    rules: Mapping[str, RateLimitRule] = field(default_factory=lambda: dict(DEFAULT_RATE_LIMIT_RULES))


@dataclass(frozen=True)
class AuthOptions:
    secret: str
    base_url: str
    email_otp: EmailOTPOptions
    trusted_origins: tuple[str, ...] = ()
    rate_limit: RateLimitOptions = RateLimitOptions()
    schema: SchemaOptions = SCHEMA_OPTIONS
    auto_detect_ip_address: bool = False
    geolocation_tracking: bool = False
    cf: EdgeGeo | None = None
    base_path: str = "/api/auth"
    session_expires_in: int = 7 * 24 * 3600
    cookie_prefix: str = "edge-auth"
    secure_cookies: bool = False
    open_api: bool = True
