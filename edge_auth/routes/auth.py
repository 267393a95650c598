"""GET|POST /api/auth/{path} -- Delegate to a per-request auth instance."""

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ..auth import get_auth_for_request

router = APIRouter()

# Responses depend on the caller's session and location.
NO_STORE = "no-store, no-cache, must-revalidate, private"


async def _delegate(request: Request) -> Response:
    auth = await get_auth_for_request(request)
    response = await auth.handler(request)
    response.headers["cache-control"] = NO_STORE
    return response


@router.get("/api/auth/{path:path}")
async def auth_get(request: Request, path: str):
    return await _delegate(request)


@router.post("/api/auth/{path:path}")
async def auth_post(request: Request, path: str):
    return await _delegate(request)
