"""Errors raised by auth engine operations."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse


class AuthAPIError(Exception):
    """An operation failed in a way the caller should see.

    Carries the HTTP status plus a stable machine-readable code and a human
    message; ``Auth.handler`` renders it as ``{"code": ..., "message": ...}``.
    """

    def __init__(self, status: int, code: str, message: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.headers = headers or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}

    def to_response(self) -> JSONResponse:
        return JSONResponse(self.to_dict(), status_code=self.status, headers=self.headers)


def bad_request(code: str, message: str) -> AuthAPIError:
    return AuthAPIError(400, code, message)


def unauthorized(message: str = "Unauthorized") -> AuthAPIError:
    return AuthAPIError(401, "UNAUTHORIZED", message)
