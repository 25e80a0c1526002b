"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from shared.logging import get_logger


T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior.

    ``max_attempts`` counts every call, so ``max_attempts=4`` means one
    initial attempt plus three retries.
    """

    def __init__(self,
                 max_attempts: int = 4,
                 base_delay: float = 1.0,
                 max_delay: Optional[float] = None,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "exponential"):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    @classmethod
    def from_retries(cls, retries: int, base_delay: float, **kwargs) -> "RetryConfig":
        """Build a config from a number of retries rather than attempts."""
        return cls(max_attempts=max(0, retries) + 1, base_delay=base_delay, **kwargs)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before the retry that follows ``attempt`` (zero-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** attempt)
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * (attempt + 1)
    else:
        delay = config.base_delay

    if config.max_delay is not None:
        delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def retry_async(operation: Callable[[int], Awaitable[T]],
                      config: RetryConfig,
                      should_retry: Callable[[BaseException], bool] = lambda exc: True,
                      sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
                      name: str = "operation") -> T:
    """Run ``operation(attempt)`` until it succeeds or retries run out.

    The last exception is re-raised unchanged once the attempt budget is
    spent or ``should_retry`` declines it.
    """
    logger = get_logger(f"retry.{name}")
    sleep = sleep or asyncio.sleep

    for attempt in range(config.max_attempts):
        try:
            result = await operation(attempt)
            if attempt > 0:
                logger.info("Retry succeeded", attempt=attempt + 1, operation=name)
            return result
        except Exception as exc:
            last_attempt = attempt == config.max_attempts - 1
            if last_attempt or not should_retry(exc):
                if last_attempt and config.max_attempts > 1:
                    logger.error(
                        "All retry attempts exhausted",
                        attempts=config.max_attempts,
                        operation=name,
                        error=str(exc)
                    )
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(
                "Attempt failed, waiting before next attempt",
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay=delay,
                operation=name,
                error=str(exc)
            )
            await sleep(delay)

    raise RuntimeError("retry loop exited without result")  # pragma: no cover
