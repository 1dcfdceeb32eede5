"""Fixed-window rate limiter backed by an expiring counter store.

Each client gets one counter per window. The first request creates the counter
with an expiry of ``window_seconds``; later requests increment it without
touching that expiry, so the window stays anchored to the first request. When
the store expires the counter, the next request opens a fresh window.

Notes:
- No in-process locking: atomicity comes from the store's conditional create
  and keep-TTL increment.
- Up to ``2 * limit`` requests can pass in a short span straddling two
  windows. That is inherent to fixed windows.
"""

from __future__ import annotations

import hashlib
import logging

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision, RateLimitResult
from app.adapters.rate_limit.store import AbstractCounterStore, CounterRecord
from app.core.errors import CorruptStateError, InvalidClientError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60
DEFAULT_NAMESPACE = "fw:"


def hash_client_key(key: str) -> str:
    """Hash a limiter key for logging without exposing the client id."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Admit at most ``limit`` requests per client per window."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store providing atomic create/increment with expiry.
            limit: Maximum number of admitted requests per window.
            window_seconds: Size of the fixed window in seconds.
            namespace: Prefix prepended to client ids to build store keys.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self._store = store
        self._limit = limit
        self._window_seconds = window_seconds
        self._namespace = namespace

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def build_key(self, client_id: str) -> str:
        return f"{self._namespace}{client_id}"

    def _parse_count(self, key: str, record: CounterRecord) -> int:
        try:
            count = int(record.value)
        except (TypeError, ValueError):
            count = -1
        if count < 0:
            logger.error(
                "rate_limit.corrupt_state",
                extra={"key_hash": hash_client_key(key), "backend": self._store.backend_name},
            )
            raise CorruptStateError(
                code="rate_limit_state_corrupt",
                message="Stored rate limit counter is malformed",
                details={"backend": self._store.backend_name},
            )
        return count

    def _result(self, decision: RateLimitDecision, count: int, retry_after: int | None) -> RateLimitResult:
        return RateLimitResult(
            decision=decision,
            limit=self._limit,
            count=count,
            remaining=max(0, self._limit - count),
            retry_after_seconds=retry_after,
        )

    async def allow(self, client_id: str | None) -> RateLimitResult:
        """Decide whether a request from ``client_id`` is admitted.

        Performs one store read and, on the normal paths, at most one write.
        A rejected request never mutates the counter.

        Args:
            client_id: Non-empty identifier of the requesting client.

        Returns:
            RateLimitResult with the decision and window metadata.

        Raises:
            InvalidClientError: If ``client_id`` is empty or missing.
            StoreUnavailableError: If the store cannot be reached.
            CorruptStateError: If the stored counter is not a non-negative integer.
        """
        if client_id is None or not client_id.strip():
            raise InvalidClientError(
                code="missing_client_id",
                message="A client identifier is required",
            )

        key = self.build_key(client_id)
        record = await self._store.get(key)

        if record is None:
            if await self._store.create(key, 1, self._window_seconds):
                return self._result(RateLimitDecision.ALLOWED, 1, self._window_seconds)

            # Another request opened this window between our read and write
            logger.info(
                "rate_limit.create_race_lost",
                extra={"key_hash": hash_client_key(key)},
            )
            return await self._count(key, ttl_hint=self._window_seconds)

        count = self._parse_count(key, record)
        if count >= self._limit:
            return self._result(RateLimitDecision.REJECTED, count, record.ttl_seconds)

        return await self._count(key, ttl_hint=record.ttl_seconds)

    async def _count(self, key: str, *, ttl_hint: int | None) -> RateLimitResult:
        count = await self._store.increment(key, self._window_seconds)
        if count > self._limit:
            # Concurrent admissions pushed the counter past the limit
            return self._result(RateLimitDecision.REJECTED, count, ttl_hint)
        return self._result(RateLimitDecision.ALLOWED, count, ttl_hint)
