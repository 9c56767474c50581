"""
Retry and bounded polling for remote calls

Every remote interaction of an import session (chunk uploads, RowID
existence checks, export job polling) goes through one RetryPolicy so the
backoff rules live in a single place:
- Fixed delay by default (exponential_base=1.0), exponential when asked
- Optional jitter to avoid synchronized retries
- Exception filtering via a predicate (transient vs. permanent)
- Callback support for metrics integration
- Bounded polling with async sleep

Usage:
    from utils.retry import RetryPolicy

    policy = RetryPolicy(max_retries=2, base_delay=1.0)
    result = await policy.call(client.import_rows, table_id, chunk)

    status = await policy.poll(
        lambda: client.job_status(job_id),
        is_done=lambda s: s["code"] in (1003, 1004),
    )
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]


class PollTimeoutError(TimeoutError):
    """Raised when a polled condition is not reached within max_polls"""

    def __init__(self, attempts: int, last_value: Any = None):
        self.attempts = attempts
        self.last_value = last_value
        super().__init__(f"Condition not reached after {attempts} polls")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff settings shared by every remote call

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay: Delay before the first retry, in seconds
        exponential_base: Growth factor per retry; 1.0 keeps the delay fixed
        max_delay: Upper bound for a single delay
        jitter: Spread each delay by +/-25%
        poll_interval: Seconds between two polls
        max_polls: Maximum number of polls before giving up
    """

    max_retries: int = 2
    base_delay: float = 1.0
    exponential_base: float = 1.0
    max_delay: float = 60.0
    jitter: bool = False
    poll_interval: float = 1.0
    max_polls: int = 60

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.poll_interval < 0:
            raise ValueError("Delays must be >= 0")
        if self.max_polls < 1:
            raise ValueError(f"max_polls must be >= 1, got {self.max_polls}")

    def compute_delay(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (0-based)

        Args:
            attempt: Index of the failed attempt

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter and delay > 0:
            jitter_amount = delay * 0.25
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
        return delay

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args,
        is_retryable: Callable[[Exception], bool] | None = None,
        on_retry: RetryCallback | None = None,
        **kwargs,
    ) -> T:
        """
        Await ``func(*args, **kwargs)``, retrying on retryable failures

        Args:
            func: Coroutine function to call
            is_retryable: Predicate deciding whether an exception is transient
                (default: is_retryable_exception)
            on_retry: Callback(attempt, exception, delay) called before each retry

        Returns:
            The coroutine's result

        Raises:
            The last exception once retries are exhausted, or the first
            non-retryable exception immediately
        """
        check = is_retryable or is_retryable_exception
        func_name = getattr(func, "__name__", "operation")

        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not check(e):
                    logger.error(f"Non-retryable error in {func_name}: {type(e).__name__}: {e}")
                    raise

                if attempt == self.max_retries:
                    logger.error(
                        f"Max retries ({self.max_retries}) exceeded for {func_name}: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                delay = self.compute_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed for {func_name}: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )

                if on_retry:
                    try:
                        on_retry(attempt + 1, e, delay)
                    except Exception as callback_error:
                        logger.error(f"Error in retry callback: {callback_error}")

                await asyncio.sleep(delay)

        raise RuntimeError(f"Unexpected exit from retry loop for {func_name}")

    async def poll(
        self,
        func: Callable[[], Awaitable[T]],
        is_done: Callable[[T], bool],
    ) -> T:
        """
        Poll ``func`` until ``is_done`` accepts its result

        The first poll happens immediately; subsequent polls wait
        ``poll_interval`` seconds.

        Raises:
            PollTimeoutError: When max_polls is reached without completion
        """
        last_value = None
        for attempt in range(self.max_polls):
            if attempt:
                await asyncio.sleep(self.poll_interval)
            last_value = await func()
            if is_done(last_value):
                logger.debug(f"Poll condition reached after {attempt + 1} poll(s)")
                return last_value

        raise PollTimeoutError(self.max_polls, last_value)


_RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "timed out",
    "temporarily unavailable",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "too many requests",
    "rate limit",
    "throttl",
    "connection reset",
    "connection refused",
    "broken pipe",
    "network error",
    "server busy",
)

_RETRYABLE_STATUS_CODES = ("429", "502", "503", "504")

_RETRYABLE_TYPE_NAMES = (
    "connectionerror",
    "timeouterror",
    "transientremoteerror",
    "jobtimeouterror",
    "polltimeouterror",
)


def is_retryable_exception(exception: Exception) -> bool:
    """
    Determine if a remote-call exception is transient

    Checks the exception type, then common transient patterns in the
    message (network failures, timeouts, throttling, 5xx gateway codes).

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    if isinstance(exception, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    exception_type = type(exception).__name__.lower()
    if exception_type in _RETRYABLE_TYPE_NAMES:
        return True

    exception_str = str(exception).lower()
    if any(pattern in exception_str for pattern in _RETRYABLE_PATTERNS):
        return True

    return any(code in exception_str.split() for code in _RETRYABLE_STATUS_CODES)
