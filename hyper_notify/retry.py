"""
Bounded retry policy shared by the storage fetch and Telegram delivery.

Fixed attempt count, fixed delay, and the last error re-raised unchanged
once attempts run out.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_base, stop_after_attempt, wait_fixed


def log_retry(what: str, attempts: int) -> Callable[[RetryCallState], None]:
    """before_sleep hook: one warning per failed attempt."""
    def log(state: RetryCallState) -> None:
        logger.warning(
            "{} failed (attempt {}/{}): {}",
            what, state.attempt_number, attempts, state.outcome.exception(),
        )
    return log


def bounded_retry(
    what: str,
    attempts: int,
    delay: float,
    retry: retry_base,
) -> AsyncRetrying:
    """
    Usage:
        async for attempt in bounded_retry("Fetching BTC data", 3, 5.0, pred):
            with attempt:
                result = await fetch()
    """
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry,
        before_sleep=log_retry(what, attempts),
        reraise=True,
    )
