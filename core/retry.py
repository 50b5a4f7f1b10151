"""
Bounded retry with pluggable backoff.

A backoff strategy is a callable mapping the number of the attempt that just
failed (1-based) to the delay in seconds before the next attempt. Delays are
awaited through an injectable ``sleep`` so tests can run retry loops
instantly while production uses real backoff.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from core.exceptions import RetryableError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffStrategy = Callable[[int], float]
Sleep = Callable[[float], Awaitable[None]]


def no_backoff() -> BackoffStrategy:
    """Retry immediately."""
    return lambda attempt: 0.0


def fixed_backoff(delay: float) -> BackoffStrategy:
    """Wait the same delay after every failed attempt."""
    return lambda attempt: delay


def exponential_backoff(base_delay: float, max_delay: float = 30.0) -> BackoffStrategy:
    """base_delay, 2*base_delay, 4*base_delay, ... capped at max_delay."""

    def strategy(attempt: int) -> float:
        return min(max_delay, base_delay * (2 ** (attempt - 1)))

    return strategy


def jittered_backoff(
    base_delay: float,
    max_delay: float = 30.0,
    rng: Callable[[], float] = random.random,
) -> BackoffStrategy:
    """Exponential backoff with up to 25% random jitter added."""
    exponential = exponential_backoff(base_delay, max_delay)

    def strategy(attempt: int) -> float:
        delay = exponential(attempt)
        return min(max_delay, delay + rng() * 0.25 * delay)

    return strategy


def backoff_from_name(name: str, delay: float = 1.0, max_delay: float = 30.0) -> BackoffStrategy:
    """Resolve a configured strategy name."""
    strategies = {
        "none": lambda: no_backoff(),
        "fixed": lambda: fixed_backoff(delay),
        "exponential": lambda: exponential_backoff(delay, max_delay),
        "jittered": lambda: jittered_backoff(delay, max_delay),
    }
    try:
        return strategies[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown retry strategy {name!r}; expected one of {sorted(strategies)}"
        ) from None


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    backoff: Optional[BackoffStrategy] = None,
    retry_on: Tuple[Type[BaseException], ...] = (RetryableError,),
    sleep: Sleep = asyncio.sleep,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds or ``max_attempts`` attempts failed.

    Only exceptions listed in ``retry_on`` are retried; anything else
    propagates on the first occurrence.

    Raises:
        RetryExhaustedError: After the last allowed attempt failed; the last
            failure is attached as ``original_exception``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    backoff = backoff or no_backoff()

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt >= max_attempts:
                raise RetryExhaustedError(
                    f"{description} failed after {attempt} attempts",
                    context={"operation": description},
                    original_exception=e,
                    attempts=attempt,
                )

            delay = backoff(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {delay:.2f} seconds"
            )
            if delay > 0:
                await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RetryExhaustedError(f"{description} failed", attempts=max_attempts)
