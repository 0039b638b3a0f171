"""
Data Fetch Retry Utilities
==========================
Retry logic with exponential backoff for external market data calls.

Features:
- Configurable retry attempts
- Exponential backoff with jitter
- Optional retry when a fetch comes back empty (throttled data providers
  often answer with an empty frame instead of an error)
- Logging of retry attempts

Usage:
    from utils.api_retry import retry_api_call

    @retry_api_call(max_attempts=3, retry_on_empty=True)
    def download_closes(ticker):
        return yf.download(ticker, period='2y')

Author: Trading Bot Arsenal
Created: January 2026
"""

import time
import random
import logging
import functools
from typing import Callable, Optional, Tuple, Type
from dataclasses import dataclass

import requests

logger = logging.getLogger('APIRetry')


# Exceptions that should trigger a retry
RETRYABLE_EXCEPTIONS = (
    requests.exceptions.RequestException,
    ConnectionError,
    TimeoutError,
    OSError,  # Covers network-level errors
)


class EmptyResultError(Exception):
    """A fetch returned no data on its final attempt"""


@dataclass
class APIRetryConfig:
    """Configuration for fetch retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_range: Tuple[float, float] = (0.5, 1.5)
    retryable_exceptions: Tuple[Type[Exception], ...] = RETRYABLE_EXCEPTIONS
    retry_on_empty: bool = False
    log_retries: bool = True


def calculate_delay(attempt: int, config: APIRetryConfig) -> float:
    """
    Calculate delay before next retry using exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)
    if config.jitter:
        delay *= random.uniform(*config.jitter_range)
    return delay


def is_empty_result(result) -> bool:
    """True for None and for empty pandas/numpy/sequence results."""
    if result is None:
        return True
    empty = getattr(result, 'empty', None)
    if isinstance(empty, bool):
        return empty
    try:
        return len(result) == 0
    except TypeError:
        return False


def retry_api_call(
    max_attempts: int = None,
    base_delay: float = None,
    max_delay: float = None,
    retry_on_empty: bool = None,
    config: APIRetryConfig = None,
    on_retry: Callable[[int, Exception], None] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying data fetches with exponential backoff.

    Args:
        max_attempts: Override default max attempts
        base_delay: Override default base delay
        max_delay: Override default max delay
        retry_on_empty: Treat an empty result as a retryable failure
        config: Full config object (overrides individual params)
        on_retry: Callback called on each retry (attempt_num, exception)
        sleep: Sleep function (injectable for tests)

    Returns:
        Decorated function. After the last attempt the final exception is
        re-raised; an empty final result raises EmptyResultError.
    """
    if config is None:
        defaults = APIRetryConfig()
        config = APIRetryConfig(
            max_attempts=max_attempts or defaults.max_attempts,
            base_delay=defaults.base_delay if base_delay is None else base_delay,
            max_delay=defaults.max_delay if max_delay is None else max_delay,
            retry_on_empty=bool(retry_on_empty),
        )

    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(config.max_attempts):
                final = attempt == config.max_attempts - 1
                try:
                    result = func(*args, **kwargs)
                    if config.retry_on_empty and is_empty_result(result):
                        raise EmptyResultError(f"{func.__name__} returned no data")
                except config.retryable_exceptions + (EmptyResultError,) as e:
                    if isinstance(e, EmptyResultError) and not config.retry_on_empty:
                        raise
                    if final:
                        if config.log_retries:
                            logger.error(
                                f"{func.__name__}: All {config.max_attempts} attempts failed. "
                                f"Last error: {type(e).__name__}: {str(e)[:200]}"
                            )
                        raise

                    delay = calculate_delay(attempt, config)
                    if config.log_retries:
                        logger.warning(
                            f"{func.__name__}: {type(e).__name__}: {str(e)[:100]}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{config.max_attempts})"
                        )
                    if on_retry:
                        on_retry(attempt + 1, e)
                    sleep(delay)
                    continue

                if attempt > 0 and config.log_retries:
                    logger.info(f"{func.__name__}: Succeeded on attempt {attempt + 1}")
                return result

        return wrapper
    return decorator
