"""
Retry combinator with exponential backoff.

Usage:
    series = await with_retry(
        lambda: client.get_price_history(...),
        attempts=3,
        policy=BackoffPolicy(base_delay=2.0),
        description="SOL_USD price history",
    )
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff schedule.

    delay(n) = base_delay * factor ** (n - 1), capped at max_delay, where n is
    the number of the attempt that just failed. With the defaults the waits are
    2s, 4s, 8s.
    """
    base_delay: float = 2.0
    factor: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.0

    def delay(self, failed_attempt: int) -> float:
        delay = min(self.base_delay * (self.factor ** (failed_attempt - 1)), self.max_delay)
        if self.jitter:
            delay += delay * random.uniform(0, self.jitter)
        return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    policy: Optional[BackoffPolicy] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` up to ``attempts`` times.

    Sleeps according to ``policy`` between attempts (never after the last one)
    and re-raises the last error once attempts are exhausted. Exceptions outside
    ``retry_on`` propagate immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    policy = policy or BackoffPolicy()
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt == attempts:
                break
            delay = policy.delay(attempt)
            logger.warning(
                f"{description} failed, retrying in {delay:.2f}s "
                f"(attempt {attempt}/{attempts}): {e}"
            )
            await sleep(delay)

    logger.error(f"{description} failed after {attempts} attempts: {last_error}")
    raise last_error
