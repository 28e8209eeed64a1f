"""
Async timing helpers: sleep, retry with backoff, timeouts and polling.

All durations are in milliseconds.
"""

import asyncio
import inspect
import logging
import random
import time
from typing import Any, Awaitable, Callable, Optional, Tuple

from .errors import OperationTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DELAY = 30000
DEFAULT_JITTER_FACTOR = 0.3


def now_ms() -> int:
    """Monotonic clock in milliseconds."""
    return int(time.monotonic() * 1000)


async def sleep(ms: float):
    """Sleep for the given number of milliseconds."""
    if ms and ms > 0:
        await asyncio.sleep(ms / 1000)


async def maybe_await(value: Any) -> Any:
    """Await value if it is awaitable, otherwise return it as-is."""
    if inspect.isawaitable(value):
        return await value
    return value


def calculate_delay(
    attempt: int,
    base_delay: float,
    max_delay: float = DEFAULT_MAX_DELAY,
    exponential: bool = True,
    jitter_factor: float = DEFAULT_JITTER_FACTOR,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Delay before retry number `attempt` (1-based).

    base_delay * 2^(attempt-1) when exponential, plus up to
    base_delay * jitter_factor of jitter drawn from rng, capped at max_delay.

    Examples:
        >>> calculate_delay(3, 100, jitter_factor=0)
        400
    """
    delay = base_delay * (2 ** (attempt - 1)) if exponential else base_delay
    if jitter_factor:
        source = rng if rng is not None else random
        delay += base_delay * jitter_factor * source.random()
    return min(delay, max_delay)


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    base_delay: float = 1000,
    max_delay: float = DEFAULT_MAX_DELAY,
    exponential: bool = True,
    jitter_factor: float = DEFAULT_JITTER_FACTOR,
    should_retry: Callable[[BaseException], bool] = None,
    on_retry: Callable[[BaseException, int, float], None] = None,
    rng: Optional[random.Random] = None,
) -> Any:
    """
    Call fn until it succeeds or max_attempts is reached.

    Args:
        fn: Zero-argument coroutine function
        max_attempts: Total number of attempts, including the first
        base_delay: Backoff base in ms
        should_retry: Return False to stop retrying on a given error
        on_retry: Called with (error, attempt, delay_ms) before each wait
        rng: Random source for jitter (inject for determinism)

    Returns:
        Whatever fn returns on its first successful attempt.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if attempt >= max_attempts:
                raise
            if should_retry and not should_retry(e):
                raise

            delay = calculate_delay(
                attempt, base_delay, max_delay, exponential, jitter_factor, rng
            )
            if on_retry:
                on_retry(e, attempt, delay)
            logger.debug(f"Attempt {attempt}/{max_attempts} failed, retrying in {delay:.0f}ms: {e}")
            await sleep(delay)


async def with_timeout(awaitable: Awaitable[Any], timeout_ms: float, operation: str) -> Any:
    """Await with a deadline, raising OperationTimeoutError when it passes."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise OperationTimeoutError(operation, int(timeout_ms)) from e


async def poll_until(
    condition: Callable[[], Any],
    timeout: float = 30000,
    interval: float = 1000,
    description: str = "condition",
) -> Any:
    """
    Poll condition (sync or async) until it returns a truthy value.

    Returns the truthy value. Raises OperationTimeoutError if the
    deadline passes first.
    """
    deadline = now_ms() + timeout
    while True:
        result = await maybe_await(condition())
        if result:
            return result
        if now_ms() >= deadline:
            raise OperationTimeoutError(description, int(timeout))
        await sleep(interval)


async def measure_duration(fn: Callable[[], Awaitable[Any]]) -> Tuple[Any, int]:
    """Run fn and return (result, duration_ms)."""
    start = now_ms()
    result = await fn()
    return result, now_ms() - start
