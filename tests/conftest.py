"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests, so the
environment below is in place before ``app.core.config`` builds settings.
"""

import asyncio
import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["TESTING"] = "true"

# Per-process counters so tests never need a Redis server
os.environ.setdefault("REDIS_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from app.core.rate_limit import close_rate_limiter


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Drop the cached store/limiter so counters never leak between tests."""
    asyncio.run(close_rate_limiter())
    yield
    asyncio.run(close_rate_limiter())
