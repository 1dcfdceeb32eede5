"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
counting strategy and its storage backend stay swappable.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


class RateLimitDecision(str, enum.Enum):
    """Verdict returned by a limiter for a single request."""

    ALLOWED = "allowed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit decision.

    Attributes:
        decision: Whether the request was admitted or rejected.
        limit: Max requests per window.
        count: Counter value observed (or produced) by this call.
        remaining: Remaining requests in the current window (0 when blocked).
        retry_after_seconds: Seconds until the current window resets, when
            the store reported it.
    """

    decision: RateLimitDecision
    limit: int
    count: int
    remaining: int
    retry_after_seconds: int | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is RateLimitDecision.ALLOWED


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def allow(self, client_id: str | None) -> RateLimitResult:
        """Decide whether a request from ``client_id`` is admitted.

        Args:
            client_id: Non-empty identifier of the requesting client.

        Returns:
            RateLimitResult describing the decision.

        Raises:
            InvalidClientError: If ``client_id`` is empty or missing.
            StoreUnavailableError: If the backing store cannot be reached.
            CorruptStateError: If the stored counter is malformed.
        """
        raise NotImplementedError
