"""
Retry decorators with exponential backoff

Provides retry logic for transient failures with:
- Exponential backoff capped at a maximum delay
- +/-25% jitter
- Exception filtering by type or by predicate
- Callback support for metrics integration

Usage:
    from utils.retry import retry_database_operation

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def open_connection(dsn):
        return psycopg2.connect(dsn)
"""

import logging
import random
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, Exception, float], None]

# Substrings of transient database errors (message or exception type)
RETRYABLE_PATTERNS = (
    "connection refused",
    "connection reset",
    "connection closed",
    "connection terminated",
    "could not connect",
    "server closed the connection",
    "timeout",
    "timed out",
    "deadlock",
    "lock wait timeout",
    "broken pipe",
    "network error",
    "the database system is starting up",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
)


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Backoff delay before retry number ``attempt + 1``.

    Args:
        attempt: Zero-based attempt that just failed
        base_delay: Delay after the first failure
        max_delay: Upper bound before jitter
        exponential_base: Growth factor per attempt
        jitter: Add +/-25% random jitter

    Returns:
        Delay in seconds (at least 0.1 when jitter is on)
    """
    delay = min(base_delay * (exponential_base ** attempt), max_delay)
    if jitter:
        spread = delay * 0.25
        delay = max(0.1, delay + random.uniform(-spread, spread))
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
    retry_if: Callable[[Exception], bool] | None = None,
    on_retry: RetryCallback | None = None,
):
    """
    Decorator that retries a function with exponential backoff

    Args:
        max_retries: Maximum number of retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        jitter: Add random jitter to the delay
        retryable_exceptions: Exception types to retry (default: all)
        retry_if: Predicate deciding whether an exception is retryable
        on_retry: Callback(attempt, exception, delay) called before each retry

    Returns:
        Decorated function with retry logic

    Example:
        @retry_with_backoff(max_retries=5, retryable_exceptions=(ConnectionError,))
        def fetch_secret():
            return vault.get_secret("secret/database/reconciliation")
    """
    def decorator(func: Callable) -> Callable:
        func_name = getattr(func, "__name__", "function")

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    retryable = (
                        retryable_exceptions is None or isinstance(e, retryable_exceptions)
                    ) and (retry_if is None or retry_if(e))

                    if not retryable:
                        logger.error(
                            f"Non-retryable error in {func_name}: {type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        logger.error(
                            f"Max retries ({max_retries}) exceeded for {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    delay = compute_delay(
                        attempt, base_delay, max_delay, exponential_base, jitter
                    )
                    logger.warning(
                        f"Attempt {attempt + 1}/{max_retries + 1} failed for {func_name}: "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        try:
                            on_retry(attempt + 1, e, delay)
                        except Exception as callback_error:
                            logger.error(f"Error in retry callback: {callback_error}")

                    time.sleep(delay)

            raise RuntimeError(f"Unexpected exit from retry loop in {func_name}")

        return wrapper
    return decorator


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a database exception is transient

    Connection failures, timeouts and deadlocks are retryable; syntax errors
    and constraint violations are not.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable
    """
    exception_type = type(exception).__name__.lower()
    if exception_type in RETRYABLE_EXCEPTION_NAMES:
        return True

    message = str(exception).lower()
    return any(pattern in message for pattern in RETRYABLE_PATTERNS)


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: RetryCallback | None = None,
):
    """
    Retry decorator that only retries transient database errors

    Args:
        max_retries: Maximum number of retries
        base_delay: Initial delay in seconds
        on_retry: Callback(attempt, exception, delay) called before each retry
    """
    return retry_with_backoff(
        max_retries=max_retries,
        base_delay=base_delay,
        retry_if=is_retryable_db_exception,
        on_retry=on_retry,
    )
