from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from dm_service.api.v1.routers.ws import get_manager
from dm_service.config import settings
from dm_service.infrastructure.db.session import AsyncSessionLocal

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, object]:
    return {
        "status": "ok",
        "fanout": settings.FANOUT_BACKEND,
        "connections": len(get_manager()),
    }


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Ready when the message store answers and, with the redis backend, the fan-out bus does too."""
    problems: dict[str, str] = {}

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        problems["store"] = str(exc)

    bus = getattr(request.app.state, "redis", None)
    if bus is not None:
        try:
            await bus.ping()
        except Exception as exc:  # noqa: BLE001
            problems["fanout"] = str(exc)

    if problems:
        return JSONResponse(status_code=503, content={"status": "unavailable", "problems": problems})
    return JSONResponse(content={"status": "ready", "fanout": settings.FANOUT_BACKEND})
