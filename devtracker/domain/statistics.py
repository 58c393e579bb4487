"""
Statistics domain models - Aggregated developer activity

Represents the output side of the core:
    - Granularity / TimeWindow: the range being aggregated and its bucket size
    - IssueStatistics: counts per (developer, bucket)
    - TimeInterval / IssueTimeStats: in-progress time per issue
    - StatisticsRequest: what the boundary layer asks for
    - StatisticsResult: what the core returns
    - ProjectData: immutable snapshot handed to the dashboard state owner
"""

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from devtracker.domain.gitlab import Developer
from devtracker.utils.datetime_utils import ensure_utc, floor_to_bucket, format_utc


class Granularity(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


@dataclass(frozen=True)
class TimeWindow:
    """
    Half-open UTC time range [start, end) split into fixed-size buckets.

    Attributes:
        start: Inclusive start (normalized to aware UTC)
        end: Exclusive end (normalized to aware UTC)
        granularity: Bucket size

    Example:
        window = TimeWindow(
            start=datetime(2024, 1, 1, tzinfo=UTC),
            end=datetime(2024, 1, 8, tzinfo=UTC),
            granularity=Granularity.DAILY,
        )
        window.bucket_for(datetime(2024, 1, 3, 15, tzinfo=UTC))  # 2024-01-03 00:00 UTC
    """

    start: datetime
    end: datetime
    granularity: Granularity = Granularity.DAILY

    def __post_init__(self) -> None:
        """
        Normalize bounds to UTC and validate ordering.

        Raises:
            TypeError: If start/end are not datetimes
            ValueError: If start is not before end
        """
        if not isinstance(self.start, datetime) or not isinstance(self.end, datetime):
            raise TypeError("TimeWindow start and end must be datetime instances")

        # frozen dataclass: normalize via object.__setattr__
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        object.__setattr__(self, "granularity", Granularity(self.granularity))

        if self.start >= self.end:
            raise ValueError(f"TimeWindow start must be before end: {self.start} >= {self.end}")

    @classmethod
    def last_days(
        cls, days: int, granularity: Granularity = Granularity.DAILY, now: datetime | None = None
    ) -> "TimeWindow":
        """
        Window covering the last `days` full UTC days up to the end of today.

        Args:
            days: Number of days (>= 1)
            granularity: Bucket size
            now: Reference time (default: current UTC time)
        """
        if days < 1:
            raise ValueError(f"days must be >= 1, got {days}")
        reference = ensure_utc(now or datetime.now(UTC))
        end = floor_to_bucket(reference, "daily") + timedelta(days=1)
        return cls(start=end - timedelta(days=days), end=end, granularity=granularity)

    def contains(self, value: datetime) -> bool:
        return self.start <= ensure_utc(value) < self.end

    def bucket_for(self, value: datetime) -> datetime:
        return floor_to_bucket(value, self.granularity.value)


@dataclass(frozen=True)
class IssueStatistics:
    """
    Activity of one developer within one bucket.

    A pure function of the deduplicated input records: the same records always
    produce equal IssueStatistics, whatever order they arrived in.

    Attributes:
        developer_id: Aggregation key (UNKNOWN_DEVELOPER_ID for non-members)
        username: Developer username at aggregation time
        bucket_start: Start of the UTC bucket
        event_count: Number of activity events
        events_by_action: Event counts keyed by action
        events_by_resource_type: Event counts keyed by resource type
        merge_request_count: Number of merge requests created in the bucket
        merge_requests_by_state: Merge request counts keyed by state
        label_counts: Label frequency (added event labels + merge request labels)
        action_required_count: Occurrences of any action-required label variant
    """

    developer_id: int
    username: str
    bucket_start: datetime
    event_count: int = 0
    events_by_action: Mapping[str, int] = field(default_factory=dict)
    events_by_resource_type: Mapping[str, int] = field(default_factory=dict)
    merge_request_count: int = 0
    merge_requests_by_state: Mapping[str, int] = field(default_factory=dict)
    label_counts: Mapping[str, int] = field(default_factory=dict)
    action_required_count: int = 0

    @property
    def key(self) -> tuple[int, datetime]:
        return (self.developer_id, self.bucket_start)

    def merge(self, other: "IssueStatistics") -> "IssueStatistics":
        """
        Sum two statistics for the same (developer, bucket).

        Raises:
            ValueError: If the keys differ
        """
        if self.key != other.key:
            raise ValueError(f"Cannot merge statistics for different keys: {self.key} != {other.key}")

        return IssueStatistics(
            developer_id=self.developer_id,
            username=self.username,
            bucket_start=self.bucket_start,
            event_count=self.event_count + other.event_count,
            events_by_action=_sum_counts(self.events_by_action, other.events_by_action),
            events_by_resource_type=_sum_counts(self.events_by_resource_type, other.events_by_resource_type),
            merge_request_count=self.merge_request_count + other.merge_request_count,
            merge_requests_by_state=_sum_counts(self.merge_requests_by_state, other.merge_requests_by_state),
            label_counts=_sum_counts(self.label_counts, other.label_counts),
            action_required_count=self.action_required_count + other.action_required_count,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape consumed by the dashboard."""
        return {
            "userId": self.developer_id,
            "username": self.username,
            "bucketStart": format_utc(self.bucket_start),
            "eventCount": self.event_count,
            "eventsByAction": dict(self.events_by_action),
            "eventsByResourceType": dict(self.events_by_resource_type),
            "mergeRequestCount": self.merge_request_count,
            "mergeRequestsByState": dict(self.merge_requests_by_state),
            "labelCounts": dict(self.label_counts),
            "actionRequiredCount": self.action_required_count,
        }


def _sum_counts(left: Mapping[str, int], right: Mapping[str, int]) -> dict[str, int]:
    total = Counter(left)
    total.update(right)
    return dict(sorted(total.items()))


@dataclass(frozen=True)
class TimeInterval:
    """
    Closed UTC interval [start, end].

    Attributes:
        start: When the issue entered in-progress
        end: When it left in-progress, or the reference time if it never did
        is_open: True when `end` is the reference time rather than an event
    """

    start: datetime
    end: datetime
    is_open: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end < self.start:
            raise ValueError(f"TimeInterval end must not be before start: {self.end} < {self.start}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> dict[str, Any]:
        return {"start": format_utc(self.start), "end": format_utc(self.end), "isOpen": self.is_open}


@dataclass(frozen=True)
class IssueTimeStats:
    """
    Time an issue spent in progress.

    Attributes:
        issue_id: Global issue id
        issue_iid: Project-scoped issue number
        title: Issue title
        assignee: Current assignee username
        intervals: Merged, non-overlapping in-progress intervals sorted by start
        in_progress: Calendar time inside the intervals
        working_time: Part of in_progress inside working hours on weekdays
        total_time: From assignment (or creation) to closing (or the reference time)
    """

    issue_id: int
    issue_iid: int
    title: str
    assignee: str | None
    intervals: tuple[TimeInterval, ...] = ()
    in_progress: timedelta = timedelta(0)
    working_time: timedelta = timedelta(0)
    total_time: timedelta = timedelta(0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issueId": self.issue_id,
            "issueIid": self.issue_iid,
            "title": self.title,
            "assignee": self.assignee,
            "intervals": [interval.to_dict() for interval in self.intervals],
            "inProgressSeconds": int(self.in_progress.total_seconds()),
            "workingSeconds": int(self.working_time.total_seconds()),
            "totalSeconds": int(self.total_time.total_seconds()),
        }


@dataclass(frozen=True)
class StatisticsRequest:
    """
    Request descriptor received from the web layer (untrusted until validated).

    Attributes:
        project_id: GitLab project id (default: GITLAB_PROJECT_ID, or the path)
        window: Time window to aggregate
        project_path: Namespace path (e.g. "group/project"), used when there is no id
        base_url: Optional per-request GitLab base URL override
    """

    project_id: int | None
    window: TimeWindow
    project_path: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class StatisticsResult:
    """
    Structured result returned to the web layer on success.

    Attributes:
        developers: Project members, sorted by user_id
        statistics: Aggregates sorted by (developer_id, bucket_start)
        skipped_records: Malformed upstream records dropped during the fetch
        generated_at: When the result was built (also "now" for open intervals)
        issue_time_stats: In-progress time per issue, sorted by issue id
    """

    developers: tuple[Developer, ...]
    statistics: tuple[IssueStatistics, ...]
    skipped_records: int = 0
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    issue_time_stats: tuple[IssueTimeStats, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "developers": [developer.to_dict() for developer in self.developers],
            "statistics": [stats.to_dict() for stats in self.statistics],
            "issueTimeStats": [stats.to_dict() for stats in self.issue_time_stats],
            "skippedRecords": self.skipped_records,
            "generatedAt": format_utc(self.generated_at),
        }


@dataclass(frozen=True)
class ProjectData:
    """
    Immutable snapshot of one tracked project for the dashboard state owner.

    The core builds these; it never mutates one after creation.
    """

    id: int
    name: str
    path: str
    developers: tuple[Developer, ...] = ()
    data: tuple[IssueStatistics, ...] = ()
    is_loading: bool = False
    error: str | None = None
    last_updated: datetime | None = None

    @classmethod
    def snapshot(
        cls,
        project_id: int,
        name: str,
        path: str,
        result: StatisticsResult | None = None,
        error: str | None = None,
        is_loading: bool = False,
    ) -> "ProjectData":
        """
        Build a snapshot from a finished (or failed, or still loading) request.

        Args:
            project_id: GitLab project id
            name: Display name
            path: Namespace path
            result: Successful StatisticsResult, if any
            error: User-facing error message, if the request failed
            is_loading: True while a refresh is in flight

        Example:
            data = ProjectData.snapshot(42, "Tracker", "team/tracker", result=result)
        """
        if result is not None:
            return cls(
                id=project_id,
                name=name,
                path=path,
                developers=result.developers,
                data=result.statistics,
                is_loading=is_loading,
                error=error,
                last_updated=result.generated_at,
            )
        return cls(
            id=project_id,
            name=name,
            path=path,
            is_loading=is_loading,
            error=error,
            last_updated=None if is_loading else datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "developers": [developer.to_dict() for developer in self.developers],
            "data": [stats.to_dict() for stats in self.data],
            "isLoading": self.is_loading,
            "error": self.error,
            "lastUpdated": format_utc(self.last_updated) if self.last_updated else None,
        }
