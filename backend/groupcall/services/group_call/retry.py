"""
Optimistic-concurrency retry.

Wraps one read-modify-write against the session store. The wrapped
operation must re-read the session on every attempt.
"""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from groupcall.config.constants import WRITE_RETRY_MAX_ATTEMPTS, WRITE_RETRY_BACKOFF_SEC
from .exceptions import WriteConflictError, CallInternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    max_attempts: int = WRITE_RETRY_MAX_ATTEMPTS,
    backoff_sec: float = WRITE_RETRY_BACKOFF_SEC,
) -> T:
    """
    Run ``operation`` until it stops raising WriteConflictError.

    Attempt N that conflicts sleeps ``backoff_sec * N`` before the next one.

    Raises:
        CallInternalError once ``max_attempts`` attempts have conflicted.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except WriteConflictError as e:
            if attempt >= max_attempts:
                logger.error(
                    f"[Retry] {description}: giving up after {attempt} conflicting attempts: {e}"
                )
                raise CallInternalError(
                    f"Could not {description} after {attempt} attempts due to concurrent updates"
                ) from e
            delay = backoff_sec * attempt
            logger.warning(
                f"[Retry] {description}: write conflict on attempt {attempt}/{max_attempts}, "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)
