"""Backoff for transient backend failures.

Only errors a backend flags as retryable (rate limits, 5xx, dropped
connections) are retried. Everything else, timeouts included, surfaces on
the first attempt so the pipeline can record it as a failed response.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from storyloom.config import Settings
from storyloom.llm.exceptions import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff schedule.

    Attributes:
        max_retries: Retries after the first attempt.
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any computed delay.
        exponential_base: Growth factor per retry.
        jitter: Add up to 25% random extra delay.
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(max_retries=settings.generation_max_retries)


def is_transient(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.is_retryable


def backoff_delay(attempt: int, config: RetryConfig, retry_after: float | None = None) -> float:
    """Delay before retry number ``attempt + 1``.

    A server-supplied ``retry_after`` wins when it is longer than the
    computed delay.
    """
    delay = min(config.initial_delay * config.exponential_base**attempt, config.max_delay)
    if retry_after is not None and retry_after > delay:
        delay = retry_after
    if config.jitter:
        delay += random.uniform(0, delay * 0.25)
    return delay


async def with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying transient failures.

    Raises:
        The first non-transient error, or the last transient one once
        ``config.max_retries`` is used up.
    """
    config = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            if not is_transient(e) or attempt >= config.max_retries:
                raise
            delay = backoff_delay(attempt, config, getattr(e, "retry_after", None))
            logger.warning(
                "Transient backend error (%s), retry %d/%d in %.2fs",
                e,
                attempt + 1,
                config.max_retries,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
