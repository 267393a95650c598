from .builders import (
    SchemaAuth,
    build_auth,
    build_request_auth,
    get_auth_for_request,
    init_auth,
    reset_auth,
    schema_auth,
)
from .engine import Auth, SignInResult
from .errors import AuthAPIError
from .options import AuthOptions, EmailOTPOptions, RateLimitOptions, RateLimitRule

__all__ = [
    "Auth",
    "AuthAPIError",
    "AuthOptions",
    "EmailOTPOptions",
    "RateLimitOptions",
    "RateLimitRule",
    "SchemaAuth",
    "SignInResult",
    "build_auth",
    "build_request_auth",
    "get_auth_for_request",
    "init_auth",
    "reset_auth",
    "schema_auth",
]
