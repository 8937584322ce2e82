"""Retry logic with exponential backoff."""

import asyncio
from dataclasses import dataclass
from typing import Callable, TypeVar, Optional
from functools import wraps
import structlog

from brokkr.core.errors import is_retryable

log = structlog.get_logger()

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the second attempt, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between attempts
        should_retry: Predicate deciding whether an exception is transient
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    exponential_base: float = 2.0
    should_retry: Callable[[Exception], bool] = is_retryable


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator for retry logic with exponential backoff.

    Only exceptions accepted by ``config.should_retry`` are retried; anything
    else propagates immediately.

    Args:
        config: Retry configuration (uses defaults if None)

    Example:
        @with_retry(RetryConfig(max_attempts=5))
        async def fetch_details():
            return await client.get(url)
    """
    config = config or RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(config.max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not config.should_retry(e):
                        raise

                    if attempt >= config.max_attempts - 1:
                        log.error(
                            "retry_exhausted",
                            attempts=config.max_attempts,
                            error=str(e),
                            function=func.__name__
                        )
                        raise

                    delay = min(
                        config.base_delay * (config.exponential_base ** attempt),
                        config.max_delay
                    )
                    log.warning(
                        "retry_attempt",
                        attempt=attempt + 1,
                        max_attempts=config.max_attempts,
                        delay=delay,
                        error=str(e),
                        function=func.__name__
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator
