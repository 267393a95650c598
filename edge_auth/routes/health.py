"""GET /health -- Liveness check."""

from fastapi import APIRouter

from ..config import get_settings

router = APIRouter()


@router.get("/health")
async def health():
    s = get_settings()
    return {
        "status": "ok",
        "mode": "edge-auth",
        "environment": s.environment,
    }
