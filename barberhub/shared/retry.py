"""
Exponential backoff retry for outbound calls
Used by the Evolution API client, the OpenAI client and WhatsApp recovery steps
"""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ..config import RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS, RETRY_MAX_DELAY, RETRY_TIME_BUDGET

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryError(Exception):
    """Raised when every attempt failed, the time budget ran out or the call was cancelled"""

    def __init__(self, message: str, attempts: int, last_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


class CancellationToken:
    """Cooperative cancellation shared between a caller and a running retry loop"""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; returns True if cancelled meanwhile"""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


def backoff_delay(
    attempt: int,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    jitter: bool = True,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Delay before the next attempt (attempt is zero-based).

    base_delay * 2**attempt capped at max_delay; with jitter a uniform
    value in [0, capped] is returned ("full jitter").
    """
    capped = min(max_delay, base_delay * (2**attempt))
    if not jitter:
        return capped
    return (rng or random).uniform(0, capped)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    time_budget: Optional[float] = RETRY_TIME_BUDGET,
    jitter: bool = True,
    cancel_token: Optional[CancellationToken] = None,
    retry_on: tuple = (Exception,),
    description: str = "operation",
) -> T:
    """
    Call func until it succeeds.

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        max_attempts: Upper bound on calls
        base_delay: First backoff delay in seconds
        max_delay: Cap for a single backoff delay
        time_budget: Total seconds allowed across attempts and sleeps (None = unbounded)
        jitter: Randomize each delay in [0, delay]
        cancel_token: Stops the loop before the next attempt or during a sleep
        retry_on: Exception types worth retrying; anything else propagates immediately
        description: Used in log lines

    Returns:
        Whatever func returns on the first successful attempt

    Raises:
        RetryError: attempts exhausted, budget exceeded or cancelled
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    started = time.monotonic()
    last_exception: Optional[BaseException] = None

    for attempt in range(max_attempts):
        if cancel_token and cancel_token.cancelled:
            raise RetryError(
                f"{description} cancelled: {cancel_token.reason}", attempt, last_exception
            )

        try:
            return await func()
        except retry_on as e:
            last_exception = e
            logger.warning(f"🔄 Retry {attempt + 1}/{max_attempts} for {description}: {str(e)}")

        if attempt == max_attempts - 1:
            break

        delay = backoff_delay(attempt, base_delay, max_delay, jitter)
        if time_budget is not None:
            remaining = time_budget - (time.monotonic() - started)
            if remaining <= delay:
                logger.error(f"⏰ Time budget of {time_budget}s exhausted for {description}")
                raise RetryError(
                    f"{description} exceeded time budget of {time_budget}s",
                    attempt + 1,
                    last_exception,
                )

        if cancel_token:
            if await cancel_token.wait(delay):
                raise RetryError(
                    f"{description} cancelled: {cancel_token.reason}", attempt + 1, last_exception
                )
        else:
            await asyncio.sleep(delay)

    logger.error(f"❌ All retries failed for {description}: {str(last_exception)}")
    raise RetryError(
        f"{description} failed after {max_attempts} attempts", max_attempts, last_exception
    )
