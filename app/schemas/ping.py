from __future__ import annotations

from pydantic import BaseModel, Field


class PingQuery(BaseModel):
    """Optional query parameters accepted by the ping endpoint."""

    message: str | None = Field(
        None,
        min_length=1,
        max_length=200,
        description="Text echoed back in the response",
    )


class PingResponse(BaseModel):
    """Response body of the ping endpoint."""

    message: str = Field("pong", description="Constant liveness marker")
    echo: str | None = Field(None, description="The message sent by the caller, if any")
