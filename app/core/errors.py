"""Application-level exception types.

This module defines domain errors used across adapters and the HTTP layer,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep a consistent shape without forcing every
    error to fill all of them.
    """

    code: str
    message: str
    hint: str
    header: str
    http_status: int
    retry_after: float
    key_hash: str
    backend: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class InvalidClientError(ValidationAppError):
    """Raised when a rate-limited request carries no client identifier."""


class RateLimitStoreError(AppError):
    """Base for failures of the counter store behind the limiter."""


class StoreUnavailableError(RateLimitStoreError):
    """Raised when the counter store cannot be reached or times out."""


class CorruptStateError(RateLimitStoreError):
    """Raised when a stored counter does not parse as a non-negative integer."""
