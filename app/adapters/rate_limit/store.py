"""Counter storage backends for the fixed-window limiter.

The limiter only needs three primitives from its store, and all of them must
be atomic on the store side:

- read a counter together with its remaining lifetime
- create a counter with an expiry, only if it does not exist yet
- increment a counter without touching its expiry

Redis is the production backend. The in-memory store mirrors the same
semantics inside a single process for local development and tests.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.errors import CorruptStateError, StoreUnavailableError

logger = logging.getLogger(__name__)


# INCR keeps an existing TTL. If the key expired between the caller's read and
# this write, recreate it with a fresh expiry so no counter lives forever.
_INCREMENT_KEEP_TTL_LUA = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return redis.call('INCR', KEYS[1])
end
redis.call('SET', KEYS[1], 1, 'EX', ARGV[1])
return 1
"""


@dataclass(frozen=True)
class CounterRecord:
    """Raw counter state as read from the store.

    Attributes:
        value: Stored value, unparsed.
        ttl_seconds: Remaining lifetime in seconds, or None when the store
            reports no expiry.
    """

    value: str
    ttl_seconds: int | None


class AbstractCounterStore(ABC):
    """Key-value store with per-key expiry used by the limiter."""

    backend_name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> CounterRecord | None:
        """Read the counter and its remaining lifetime in one round trip."""
        raise NotImplementedError

    @abstractmethod
    async def create(self, key: str, value: int, ttl_seconds: int) -> bool:
        """Set ``key`` to ``value`` with an expiry, only if absent.

        Returns:
            True if this call created the record, False if it already existed.
        """
        raise NotImplementedError

    @abstractmethod
    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Add one to ``key`` leaving its expiry untouched.

        ``ttl_seconds`` is applied only when the record no longer exists.

        Returns:
            The counter value after the increment.
        """
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store is reachable."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources (no-op by default)."""


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by Redis via ``redis.asyncio``."""

    backend_name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client
        self._increment_script = client.register_script(_INCREMENT_KEEP_TTL_LUA)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = None,
        connect_timeout: float | None = None,
    ) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        Args:
            url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
            socket_timeout: Per-command timeout in seconds.
            connect_timeout: Connection timeout in seconds.
        """
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=connect_timeout,
        )
        return cls(client)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.warning(
                "counter_store.unavailable",
                extra={"backend": self.backend_name, "operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend_name},
            ) from exc
        except ResponseError as exc:
            # WRONGTYPE or "value is not an integer": the key holds garbage
            logger.error(
                "counter_store.corrupt_state",
                extra={"backend": self.backend_name, "operation": operation, "error_msg": str(exc)},
            )
            raise CorruptStateError(
                code="rate_limit_state_corrupt",
                message="Stored rate limit counter is malformed",
                details={"backend": self.backend_name},
            ) from exc
        except RedisError as exc:
            raise StoreUnavailableError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend_name},
            ) from exc

    async def get(self, key: str) -> CounterRecord | None:
        with self._translate_errors("get"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.get(key)
                pipe.ttl(key)
                value, ttl = await pipe.execute()

        if value is None:
            return None
        # TTL is -1 for keys without expiry and -2 for missing keys
        return CounterRecord(value=str(value), ttl_seconds=ttl if ttl is not None and ttl >= 0 else None)

    async def create(self, key: str, value: int, ttl_seconds: int) -> bool:
        with self._translate_errors("create"):
            created = await self._client.set(key, value, ex=ttl_seconds, nx=True)
        return bool(created)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        with self._translate_errors("increment"):
            count = await self._increment_script(keys=[key], args=[ttl_seconds])
        return int(count)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


@dataclass
class _Entry:
    value: str
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Per-process counter store with expiry.

    Important:
        State is not shared between workers, so running several Uvicorn
        workers multiplies the effective limit. Use Redis in deployments.
    """

    backend_name = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def put_raw(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store an arbitrary value; used to seed state in tests and tooling."""
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)

    async def get(self, key: str) -> CounterRecord | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            remaining = max(0, int(math.ceil(entry.expires_at - self._clock())))
            return CounterRecord(value=entry.value, ttl_seconds=remaining)

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired_keys:
            del self._entries[key]

    async def create(self, key: str, value: int, ttl_seconds: int) -> bool:
        with self._lock:
            # Client ids are caller-supplied; drop windows nobody read again
            self._evict_expired_locked()
            if self._live_entry_locked(key) is not None:
                return False
            self._entries[key] = _Entry(value=str(value), expires_at=self._clock() + ttl_seconds)
            return True

    async def increment(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                self._entries[key] = _Entry(value="1", expires_at=self._clock() + ttl_seconds)
                return 1
            try:
                count = int(entry.value) + 1
            except ValueError as exc:
                raise CorruptStateError(
                    code="rate_limit_state_corrupt",
                    message="Stored rate limit counter is malformed",
                    details={"backend": self.backend_name},
                ) from exc
            entry.value = str(count)
            return count

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
