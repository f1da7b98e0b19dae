"""
Bounded exponential backoff for provider calls.

Providers raise TransientProviderError for rate limits, 5xx responses and
dropped connections; HttpProvider hands those to retry_sync. Anything else
propagates on the first failure.
"""

import functools
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Upper bound of the random stretch applied to each delay.
JITTER_FRACTION = 0.25


@dataclass
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    exponential_base: float = 2.0
    jitter: bool = True
    retryable_exceptions: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to wait after the zero-based ``attempt`` failed."""
    backoff = config.base_delay * config.exponential_base ** attempt
    delay = min(backoff, config.max_delay)
    if config.jitter:
        delay *= 1 + random.uniform(0, JITTER_FRACTION)
    return delay


def retry_sync(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Call ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    ``sleep`` is injectable so tests can record the backoff instead of
    waiting. The error from the final attempt is re-raised unchanged.
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)
    name = getattr(func, "__qualname__", type(func).__name__)

    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            attempt += 1
            if attempt >= attempts:
                logger.error("provider_call_gave_up", call=name, attempts=attempts, error=str(e))
                raise
            wait = calculate_delay(attempt - 1, config)
            logger.warning(
                "provider_call_retrying",
                call=name,
                attempt=attempt,
                of=attempts,
                wait_s=round(wait, 2),
                error=str(e),
            )
            sleep(wait)


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator form of retry_sync."""
    def decorate(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def call(*args, **kwargs):
            return retry_sync(func, *args, config=config, **kwargs)
        return call
    return decorate
