"""Bounded exponential back-off for idempotent backend calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from access_guard.config import settings
from access_guard.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BACKOFF_FACTOR: float = 2.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    attempts: int | None = None,
    initial_delay: float | None = None,
    max_delay: float | None = None,
) -> T:
    """Run *operation*, retrying on StoreUnavailable.

    Only safe for idempotent operations. The last StoreUnavailable is
    re-raised once *attempts* are exhausted; any other exception propagates
    immediately.
    """
    attempts = attempts if attempts is not None else settings.BACKEND_RETRY_ATTEMPTS
    backoff = initial_delay if initial_delay is not None else settings.BACKEND_RETRY_INITIAL_DELAY
    max_delay = max_delay if max_delay is not None else settings.BACKEND_RETRY_MAX_DELAY

    attempt = 1
    while True:
        try:
            return await operation()
        except StoreUnavailable:
            if attempt >= attempts:
                logger.warning("%s failed after %d attempt(s)", description, attempt)
                raise
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs ...",
                description,
                attempt,
                attempts,
                backoff,
            )
            await asyncio.sleep(backoff)
            backoff = min(backoff * _BACKOFF_FACTOR, max_delay)
            attempt += 1
