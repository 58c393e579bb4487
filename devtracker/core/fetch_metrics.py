"""
Fetch Metrics Tracking

Per-request counters for upstream fetches:
    - API calls issued
    - Rate-limit (429) responses
    - Transient-error retries
    - Malformed records skipped

One FetchMetrics instance belongs to one GitLabRESTClient, which belongs to one
request. Nothing here is process-global.
"""

import time
from dataclasses import dataclass, field
from typing import Any

from devtracker.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class FetchMetrics:
    """
    Tracks fetch health for a single request.

    Attributes:
        api_call_count: Number of HTTP requests made (retries included)
        rate_limit_hits: Number of 429 responses
        retry_count: Number of retried page fetches (any transient cause)
        skipped_records: Number of malformed records dropped
        skipped_by_resource: skipped_records broken down by resource ("events", "merge_requests", ...)
        started_at: Monotonic start time

    Example:
        >>> metrics = FetchMetrics()
        >>> metrics.record_skipped("events")
        >>> metrics.skipped_records
        1
    """

    api_call_count: int = 0
    rate_limit_hits: int = 0
    retry_count: int = 0
    skipped_records: int = 0
    skipped_by_resource: dict[str, int] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)

    def record_api_call(self) -> None:
        self.api_call_count += 1

    def record_rate_limit_hit(self) -> None:
        """
        Record a rate limit hit (429 response).

        Logs a warning once the request has been throttled more than three times.
        """
        self.rate_limit_hits += 1
        if self.rate_limit_hits > 3:
            logger.warning(
                "Repeated rate limiting for a single request",
                extra={"extra_fields": {"rate_limit_hits": self.rate_limit_hits}},
            )

    def record_retry(self) -> None:
        self.retry_count += 1

    def record_skipped(self, resource: str) -> None:
        """
        Record a malformed record that was skipped.

        Args:
            resource: Resource the record came from (e.g. "events")
        """
        self.skipped_records += 1
        self.skipped_by_resource[resource] = self.skipped_by_resource.get(resource, 0) + 1

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    def to_dict(self) -> dict[str, Any]:
        """
        Convert metrics to dictionary for structured logging.

        Returns:
            Dictionary with all counters and elapsed time
        """
        return {
            "api_call_count": self.api_call_count,
            "rate_limit_hits": self.rate_limit_hits,
            "retry_count": self.retry_count,
            "skipped_records": self.skipped_records,
            "skipped_by_resource": dict(self.skipped_by_resource),
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
