from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.core.rate_limit import get_counter_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns a static status so load balancers can tell the process is up,
    without touching the counter store.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check() -> JSONResponse:
    """Readiness check: the counter store must answer a ping."""

    if await get_counter_store().ping():
        return JSONResponse(status_code=200, content={"status": "ok"})
    return JSONResponse(status_code=503, content={"status": "unavailable"})
