#!/usr/bin/env python3
"""
Application Constants

Centralized constants for GitLab API access, retry behavior and label names.
Provides type-safe, immutable values used across the client and the aggregator.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class GitLabAPIConfig:
    """
    GitLab REST API constants.

    Attributes:
        API_PREFIX: Path prefix of the v4 REST API
        AUTH_HEADER: Header carrying the personal access token
        PER_PAGE: Page size requested for paginated endpoints (GitLab maximum)
        MAX_PAGES: Safety limit on pages followed per resource
        DEFAULT_TIMEOUT_SECONDS: HTTP timeout for a single page fetch

    Example:
        >>> gitlab_api.PER_PAGE
        100
    """

    API_PREFIX: str = "/api/v4"
    """Path prefix of the v4 REST API"""

    AUTH_HEADER: str = "PRIVATE-TOKEN"
    """Header carrying the personal access token"""

    PER_PAGE: int = 100
    """Page size requested for paginated endpoints"""

    MAX_PAGES: int = 1000
    """Safety limit on pages followed per resource"""

    DEFAULT_TIMEOUT_SECONDS: int = 30
    """HTTP timeout for a single page fetch"""


@dataclass(frozen=True)
class RetryDefaults:
    """
    Backoff defaults for page fetches.

    Attributes:
        MAX_ATTEMPTS: Total attempts per page (first try included)
        BASE_DELAY_SECONDS: First backoff delay, doubled on every retry
        MAX_DELAY_SECONDS: Upper bound for any single wait (Retry-After included)
        RETRYABLE_STATUSES: HTTP statuses treated as transient
        AUTH_FAILURE_STATUSES: HTTP statuses that mean the token is unusable
    """

    MAX_ATTEMPTS: int = 4
    BASE_DELAY_SECONDS: float = 0.5
    MAX_DELAY_SECONDS: float = 60.0
    RETRYABLE_STATUSES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
    AUTH_FAILURE_STATUSES: frozenset[int] = frozenset({401, 403})


@dataclass(frozen=True)
class Labels:
    """
    Workflow label names used on issues and merge requests.

    Attributes:
        IN_PROGRESS: Issue is actively being worked on
        PAUSED: Work on the issue is paused
        ACTION_REQUIRED*: Merge request waits on its author
    """

    IN_PROGRESS: str = "in-progress"
    PAUSED: str = "paused"
    BLOCKED: str = "blocked"
    REVIEW: str = "review"
    CODE_REVIEW: str = "code-review"
    ACTION_REQUIRED: str = "action-required"
    ACTION_REQUIRED2: str = "action-required2"
    ACTION_REQUIRED3: str = "action-required3"
    STATUS_UPDATE_COMMIT: str = "status-commit"

    @property
    def action_required(self) -> frozenset[str]:
        """All label variants that mean "action required"."""
        return frozenset({self.ACTION_REQUIRED, self.ACTION_REQUIRED2, self.ACTION_REQUIRED3})


@dataclass(frozen=True)
class WorkingHours:
    """
    Working hours used for in-progress time, in UTC.

    Attributes:
        START_HOUR_UTC: First working hour of a weekday
        END_HOUR_UTC: End of the working day (exclusive)
        WEEKEND_DAYS: datetime.weekday() values that are never working time
    """

    START_HOUR_UTC: int = 8
    END_HOUR_UTC: int = 17
    WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})


# Singleton instances for easy import
gitlab_api = GitLabAPIConfig()
retry_defaults = RetryDefaults()
labels = Labels()
working_hours = WorkingHours()
