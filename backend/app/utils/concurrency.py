"""
Concurrency utilities - bounded external calls, backoff retries, all-or-nothing joins.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Iterable, Tuple, TypeVar

from google.api_core import exceptions as google_exceptions

from app.config import logger
from app.errors import ExternalTimeout

T = TypeVar("T")

# Limits concurrent PDF-to-image conversions to avoid memory spikes
conversion_semaphore = asyncio.Semaphore(3)

# Upstream errors worth another attempt (429, 500, 503, 504)
TRANSIENT_ERRORS = (
    ExternalTimeout,
    google_exceptions.TooManyRequests,
    google_exceptions.InternalServerError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)


async def call_with_timeout(awaitable: Awaitable[T], timeout_seconds: float, operation_name: str) -> T:
    """
    Await an external call for at most timeout_seconds.
    Raises ExternalTimeout instead of hanging the request.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"⏱️ TIMEOUT after {timeout_seconds}s: {operation_name}")
        raise ExternalTimeout(f"{operation_name} exceeded {timeout_seconds}s timeout")


async def retry_transient(
    call: Callable[[], Awaitable[T]],
    max_attempts: int,
    base_delay: float,
    operation_name: str,
    transient: Tuple[type, ...] = TRANSIENT_ERRORS,
) -> T:
    """
    Run call() until it succeeds, retrying transient failures with
    exponential backoff (base_delay * 2**(attempt - 1), so the first wait is
    base_delay). Other errors propagate at once.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except transient as e:
            attempt += 1
            if attempt >= max_attempts:
                logger.error(f"{operation_name} failed after {attempt} attempts: {e}")
                raise
            wait_time = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{operation_name} attempt {attempt}/{max_attempts} failed ({e}); retrying in {wait_time}s")
            await asyncio.sleep(wait_time)


async def gather_all(calls: Dict[str, Awaitable[T]]) -> Dict[str, T]:
    """
    Run the awaitables concurrently and return their results by key.
    The first failure cancels the rest and is re-raised once they have all finished.
    """
    tasks = {key: asyncio.ensure_future(aw) for key, aw in calls.items()}
    try:
        await asyncio.gather(*tasks.values())
    except BaseException:
        await _cancel_pending(tasks.values())
        raise
    return {key: task.result() for key, task in tasks.items()}


async def _cancel_pending(tasks: Iterable[asyncio.Future]):
    tasks = list(tasks)
    for task in tasks:
        if not task.done():
            task.cancel()
    # Collects every sibling outcome so no task exception goes unretrieved
    await asyncio.gather(*tasks, return_exceptions=True)
