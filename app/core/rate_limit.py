"""Rate limiting dependency for FastAPI routes.

This module wires the fixed-window limiter into the HTTP layer.

Strategy:
- One fixed-window counter per client id, read from a request header
  (``user_id`` by default).
- Missing client id -> 400, limit exceeded -> 429.
- Counter store failures -> 503/500 (fail-closed) unless
  ``APP_RATE_LIMIT_FAIL_OPEN`` is set, in which case the request passes.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, Response, status

from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter, hash_client_key
from app.adapters.rate_limit.store import AbstractCounterStore, InMemoryCounterStore, RedisCounterStore
from app.core.config import settings
from app.core.errors import RateLimitStoreError

logger = logging.getLogger(__name__)


_store: AbstractCounterStore | None = None
_limiter: FixedWindowRateLimiter | None = None
_limiter_config: tuple[int, int, str] | None = None


def build_counter_store() -> AbstractCounterStore:
    """Create the counter store selected by ``REDIS_BACKEND``."""

    if settings.redis.backend == "memory":
        logger.warning(
            "rate_limit.memory_store",
            extra={"hint": "per-process counters; limits are not shared between workers"},
        )
        return InMemoryCounterStore()

    return RedisCounterStore.from_url(
        settings.redis.url,
        socket_timeout=settings.redis.socket_timeout_seconds,
        connect_timeout=settings.redis.connect_timeout_seconds,
    )


def get_counter_store() -> AbstractCounterStore:
    """Return the process-wide counter store, creating it on first use."""

    global _store

    if _store is None:
        _store = build_counter_store()
    return _store


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The limiter holds no counters itself; it is cached only to avoid
    rebuilding it per request. If configuration changes (primarily in
    tests), the limiter is rebuilt over the same store.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
        settings.app.rate_limit_namespace,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = FixedWindowRateLimiter(
            get_counter_store(),
            limit=settings.app.rate_limit_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
            namespace=settings.app.rate_limit_namespace,
        )
        _limiter_config = config

    return _limiter


async def close_rate_limiter() -> None:
    """Close the counter store connection and drop cached instances."""

    global _store, _limiter, _limiter_config

    if _store is not None:
        await _store.close()
    _store = None
    _limiter = None
    _limiter_config = None


def _rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
    }
    if result.retry_after_seconds is not None:
        headers["X-RateLimit-Reset"] = str(result.retry_after_seconds)
    return headers


async def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: AbstractRateLimiter = Depends(get_rate_limiter),
) -> None:
    """FastAPI dependency enforcing the fixed-window limit.

    Counts the request against the caller's window. If the caller has used
    up the window, raises HTTP 429.

    Args:
        request: FastAPI request.
        response: Response whose headers receive the rate limit metadata.
        limiter: Limiter deciding admission.

    Raises:
        InvalidClientError: When the client id header is missing (-> 400).
        RateLimitStoreError: When the store fails and fail-open is disabled.
        HTTPException: 429 Too Many Requests when the limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return

    client_id = request.headers.get(settings.app.rate_limit_client_header)

    try:
        result = await limiter.allow(client_id)
    except RateLimitStoreError as exc:
        fail_open = settings.app.rate_limit_fail_open
        logger.error(
            "rate_limit.store_failure",
            extra={
                "error_code": exc.code,
                "fail_open": fail_open,
                "path": request.url.path,
            },
        )
        if fail_open:
            return
        raise

    key_hash = hash_client_key(f"{settings.app.rate_limit_namespace}{client_id}")
    window_s = settings.app.rate_limit_window_seconds

    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "count": result.count,
                "remaining": result.remaining,
                "window_s": window_s,
            },
        )
        if settings.app.rate_limit_include_headers:
            response.headers.update(_rate_limit_headers(result))
        return

    retry_after = result.retry_after_seconds if result.retry_after_seconds is not None else window_s
    logger.warning(
        "rate_limit.rejected",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "count": result.count,
            "window_s": window_s,
            "retry_after_s": retry_after,
        },
    )

    headers: dict[str, str] = {}
    if settings.app.rate_limit_include_headers:
        headers = _rate_limit_headers(result)
        headers["Retry-After"] = str(retry_after)

    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=headers or None,
    )
