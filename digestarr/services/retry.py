"""Retry-with-backoff wrapper for source fetches."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from digestarr.providers.base import DecodeError, NotConfiguredError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that will not go away by asking again
NON_RETRYABLE = (NotConfiguredError, DecodeError, TimeoutError)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    name: str,
    max_retries: int,
    base_delay: float = 1.0,
) -> T:
    """Await ``operation()`` up to ``max_retries`` times.

    Between attempts it sleeps ``base_delay * attempt`` seconds (1s, 2s, ...).
    The last error is re-raised once attempts run out. Cancellation is never
    caught, so a deadline interrupts both the request and the backoff sleep.
    """
    attempts = max(1, max_retries)
    attempt = 1
    while True:
        try:
            return await operation()
        except NON_RETRYABLE:
            raise
        except Exception as e:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", name, attempt, e)
                raise
            delay = base_delay * attempt
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.0fs: %s",
                name,
                attempt,
                attempts,
                delay,
                e,
            )
            await asyncio.sleep(delay)
            attempt += 1
