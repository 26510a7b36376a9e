"""
Retry helpers with exponential backoff for vendor API calls.

Google Ads, DataForSEO and Moz all rate limit aggressively; connectors wrap
their network calls with these helpers so transient failures are retried
and everything else surfaces immediately.
"""
import asyncio
import functools
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Type

import httpx

from adpilot.utils.logger import log


RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)

# Network level failures are always worth another attempt
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
)


@dataclass
class RetryStats:
    """Attempts and delays accumulated by one retried call."""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    success: bool = False

    def record_attempt(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.attempts += 1
        self.total_delay_seconds += delay
        if error:
            message = f"{type(error).__name__}: {error}"
            self.last_error = message
            self.errors.append(message)

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "success": self.success,
            "last_error": self.last_error,
            "errors": self.errors[:5],
        }


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt: Attempt that just failed (1-indexed)
        base_delay: Delay after the first failure
        max_delay: Upper bound before jitter
        exponential_base: Growth factor per attempt
        jitter: Add up to 25% random spread

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)
    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    retryable_status_codes: Tuple[int, ...] = RETRYABLE_STATUS_CODES
) -> bool:
    """Decide whether an exception is transient."""
    if isinstance(error, retryable_exceptions):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in retryable_status_codes

    # Vendor SDKs (google-ads included) only expose the status in the message
    text = str(error).lower()
    if "rate limit" in text or "too many requests" in text or "resource_exhausted" in text:
        return True
    if any(str(code) in text for code in retryable_status_codes):
        return True
    if "timeout" in text or "timed out" in text:
        return True
    if "connection" in text and ("refused" in text or "reset" in text or "failed" in text):
        return True

    return False


def retry_async(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
):
    """
    Retry an async function with exponential backoff.

    Usage:
        @retry_async(max_attempts=3)
        async def post_task(payload):
            ...
    """
    def decorator(func: Callable):
        last_stats = [None]

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            stats = RetryStats()
            last_stats[0] = stats

            for attempt in range(1, max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    if attempt >= max_attempts or not is_retryable_error(e, retryable_exceptions):
                        stats.record_attempt(error=e)
                        log.error(f"{func.__name__} failed after {attempt} attempts: {e}")
                        raise

                    delay = calculate_backoff(attempt, base_delay=base_delay, max_delay=max_delay)
                    stats.record_attempt(error=e, delay=delay)
                    log.warning(f"{func.__name__} attempt {attempt} failed: {e}. Retrying in {delay:.1f}s...")
                    if on_retry:
                        on_retry(attempt, e, delay)
                    await asyncio.sleep(delay)
                    continue

                stats.record_attempt()
                stats.success = True
                if attempt > 1:
                    log.info(f"{func.__name__} succeeded on attempt {attempt}")
                return result

        wrapper.get_retry_stats = lambda: last_stats[0]
        return wrapper

    return decorator


class RetryContext:
    """
    Retry arbitrary calls while collecting stats.

    Usage:
        async with RetryContext(max_attempts=3) as ctx:
            data = await ctx.execute(client.post, url, json=body)
            log.info(ctx.stats.to_dict())
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions
        self.stats = RetryStats()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def execute(self, func: Callable, *args, **kwargs):
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = func(*args, **kwargs)
                if asyncio.iscoroutine(result):
                    result = await result
            except Exception as e:
                if attempt >= self.max_attempts or not is_retryable_error(e, self.retryable_exceptions):
                    self.stats.record_attempt(error=e)
                    raise
                delay = calculate_backoff(attempt, base_delay=self.base_delay, max_delay=self.max_delay)
                self.stats.record_attempt(error=e, delay=delay)
                log.warning(f"Attempt {attempt} failed: {e}. Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)
                continue

            self.stats.record_attempt()
            self.stats.success = True
            return result
