from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from app.core.rate_limit import enforce_rate_limit
from app.schemas.ping import PingQuery, PingResponse

router = APIRouter(prefix="/ping", tags=["Ping"])


@router.get(
    "",
    response_model=PingResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def ping(query: Annotated[PingQuery, Query()]) -> PingResponse:
    """Rate-limited ping endpoint.

    The caller is identified by the ``user_id`` header (configurable via
    ``APP_RATE_LIMIT_CLIENT_HEADER``); each call counts against that
    client's fixed window.

    Args:
        query: Validated query parameters.

    Returns:
        PingResponse: ``pong`` plus the caller's message, if any.
    """
    return PingResponse(echo=query.message)


@router.get("/health", response_class=PlainTextResponse)
async def ping_health() -> str:
    return "OK"
