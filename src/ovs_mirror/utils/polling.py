"""Bounded polling built on tenacity."""
import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def poll_attempts(timeout: float, interval: float) -> int:
    """Number of checks a poll makes before giving up.

    Checks happen at elapsed 0, interval, 2*interval, ... and the last one is
    the first at or past `timeout`.
    """
    if interval <= 0:
        raise ValueError(f"Poll interval must be positive, got {interval}")
    if timeout <= 0:
        return 1
    return math.ceil(timeout / interval) + 1


async def wait_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: float,
    interval: float,
    sleep: SleepFunc = asyncio.sleep,
    on_retry: Optional[Callable[[float], None]] = None,
) -> bool:
    """Poll `predicate` until it returns True or the time budget runs out.

    Elapsed time is counted in whole intervals, so a fake `sleep` makes the
    loop fully deterministic in tests.

    Args:
        predicate: Async check, retried while it returns False
        timeout: Time budget in seconds
        interval: Seconds between checks
        sleep: Async sleep function
        on_retry: Called with the elapsed seconds before each sleep

    Returns:
        True if the predicate succeeded, False on timeout
    """
    def _before_sleep(retry_state: RetryCallState) -> None:
        if on_retry is not None:
            on_retry((retry_state.attempt_number - 1) * interval)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(poll_attempts(timeout, interval)),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda ready: not ready),
        retry_error_callback=lambda retry_state: False,
        before_sleep=_before_sleep,
        sleep=sleep,
    )
    return await retrying(predicate)
