"""
Retry Policy - Bounded exponential backoff for upstream page fetches

The policy only decides and waits; the GitLab client decides what is retryable.
The sleep function is injectable so tests can run the backoff against a fake
clock.

Usage:
    policy = RetryPolicy.from_config(get_config().get_retry_config())

    for attempt in range(1, policy.max_attempts + 1):
        ...
        await policy.wait(attempt, retry_after=parse_retry_after(response.headers.get("Retry-After")))
"""

import asyncio
import email.utils
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from devtracker.domain.constants import retry_defaults
from devtracker.secure_config import RetryConfig

SleepFunc = Callable[[float], Awaitable[None]]


def parse_retry_after(raw_value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header value into seconds.

    Accepts delta-seconds ("30") or an HTTP-date ("Wed, 21 Oct 2015 07:28:00 GMT").

    Args:
        raw_value: Header value, or None
        now: Reference time for HTTP-dates (default: current UTC time)

    Returns:
        Non-negative seconds to wait, or None if absent or unparseable
    """
    if not raw_value:
        return None

    value = raw_value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        retry_at = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    reference = now or datetime.now(UTC)
    return max(0.0, (retry_at - reference).total_seconds())


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff with a retry-after override.

    Attributes:
        max_attempts: Total attempts per page, first try included
        base_delay: Delay before the second attempt; doubled for each later one
        max_delay: Upper bound for any single wait, retry-after hints included
        sleep: Awaitable sleep (asyncio.sleep in production, a recorder in tests)

    Example:
        >>> policy = RetryPolicy(max_attempts=4, base_delay=0.5)
        >>> [policy.delay_for(n) for n in (1, 2, 3)]
        [0.5, 1.0, 2.0]
        >>> policy.delay_for(1, retry_after=7)
        7.0
    """

    max_attempts: int = retry_defaults.MAX_ATTEMPTS
    base_delay: float = retry_defaults.BASE_DELAY_SECONDS
    max_delay: float = retry_defaults.MAX_DELAY_SECONDS
    sleep: SleepFunc = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must not be negative")

    @classmethod
    def from_config(cls, config: RetryConfig, sleep: SleepFunc | None = None) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base,
            max_delay=config.max_backoff,
            sleep=sleep or asyncio.sleep,
        )

    def should_retry(self, attempt: int) -> bool:
        """True if another attempt is allowed after `attempt` failed."""
        return attempt < self.max_attempts

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Seconds to wait after the given (1-based) failed attempt.

        A retry-after hint replaces the computed delay; both are capped at max_delay.
        """
        if retry_after is not None:
            return float(min(max(retry_after, 0.0), self.max_delay))
        return float(min(self.base_delay * (2 ** (attempt - 1)), self.max_delay))

    async def wait(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Sleep for the backoff delay of `attempt` and return the delay used.

        Cancellation during the sleep propagates immediately.
        """
        delay = self.delay_for(attempt, retry_after)
        await self.sleep(delay)
        return delay
