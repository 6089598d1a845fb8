"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, Type, Tuple

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 0.3,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "linear"):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate the wait after failed attempt number ``attempt`` (1-based)."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


async def retry_async(func: Callable[[], Awaitable[Any]],
                      *,
                      exceptions: Tuple[Type[BaseException], ...] = (Exception,),
                      config: Optional[RetryConfig] = None,
                      sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                      name: Optional[str] = None) -> Any:
    """
    Await ``func`` until it succeeds or ``config.max_attempts`` is reached.

    Exceptions outside ``exceptions`` propagate immediately. Once every
    attempt has failed, the last exception is re-raised unchanged. No sleep
    follows the final attempt.
    """
    if config is None:
        config = RetryConfig()

    label = name or getattr(func, "__name__", "operation")
    logger = get_logger(f"retry.{label}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except exceptions as e:
            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    function=label,
                    error=str(e)
                )
                raise

            delay = calculate_delay(attempt, config)

            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                function=label,
                error=str(e)
            )

            await sleep(delay)
        else:
            if attempt > 1:
                logger.info("Retry succeeded", attempt=attempt, function=label)
            return result

    # max_attempts >= 1 guarantees the loop returns or raises
    raise RuntimeError(f"Retry loop for {label} exited without a result")
