"""
Activity Aggregator

Folds fetched events and merge requests into IssueStatistics keyed by
(developer_id, bucket_start).

The fold is a pure function of the deduplicated inputs:
    - events are deduplicated by (source, id), merge requests by id
    - every record lands in exactly one (developer, UTC bucket) cell
    - counts are summed, so any split of the input aggregated separately and
      combined with merge_statistics() gives the same result
    - output is sorted by (developer_id, bucket_start)

Actors that are not project members are attributed to UNKNOWN_DEVELOPER.

Usage:
    from devtracker.collectors.activity_aggregator import aggregate

    statistics = aggregate(events, merge_requests, developers, granularity="daily")
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from devtracker.core import get_logger
from devtracker.domain.constants import labels
from devtracker.domain.gitlab import UNKNOWN_DEVELOPER, ActivityEvent, Developer, MergeRequestRecord
from devtracker.domain.statistics import Granularity, IssueStatistics
from devtracker.utils.datetime_utils import floor_to_bucket

logger = get_logger(__name__)

LABEL_ADD_ACTION = "add"


@dataclass
class _BucketAccumulator:
    event_count: int = 0
    events_by_action: Counter = field(default_factory=Counter)
    events_by_resource_type: Counter = field(default_factory=Counter)
    merge_request_count: int = 0
    merge_requests_by_state: Counter = field(default_factory=Counter)
    label_counts: Counter = field(default_factory=Counter)

    def add_event(self, event: ActivityEvent) -> None:
        self.event_count += 1
        self.events_by_action[event.action] += 1
        self.events_by_resource_type[event.resource_type] += 1
        if event.label and event.action == LABEL_ADD_ACTION:
            self.label_counts[event.label] += 1

    def add_merge_request(self, merge_request: MergeRequestRecord) -> None:
        self.merge_request_count += 1
        self.merge_requests_by_state[merge_request.state.value] += 1
        for label in merge_request.labels:
            self.label_counts[label] += 1

    def freeze(self, developer: Developer, bucket_start: datetime) -> IssueStatistics:
        return IssueStatistics(
            developer_id=developer.user_id,
            username=developer.username,
            bucket_start=bucket_start,
            event_count=self.event_count,
            events_by_action=dict(sorted(self.events_by_action.items())),
            events_by_resource_type=dict(sorted(self.events_by_resource_type.items())),
            merge_request_count=self.merge_request_count,
            merge_requests_by_state=dict(sorted(self.merge_requests_by_state.items())),
            label_counts=dict(sorted(self.label_counts.items())),
            action_required_count=sum(self.label_counts[name] for name in labels.action_required),
        )


def _event_sort_key(event: ActivityEvent) -> tuple:
    return (
        event.created_at,
        event.actor_user_id,
        event.action,
        event.resource_type,
        event.label or "",
        event.assignee or "",
        event.resource_id or 0,
    )


def _merge_request_sort_key(merge_request: MergeRequestRecord) -> tuple:
    return (
        merge_request.updated_at,
        merge_request.created_at,
        merge_request.author_user_id,
        merge_request.state.value,
        tuple(sorted(merge_request.labels)),
    )


def deduplicate_events(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """
    Keep one event per (source, id).

    If two records share an id but differ (an event re-read after an upstream
    edit), the smallest by content is kept so the choice never depends on input order.
    """
    unique: dict[tuple[str, int], ActivityEvent] = {}
    for event in events:
        existing = unique.get(event.identity)
        if existing is None or _event_sort_key(event) < _event_sort_key(existing):
            unique[event.identity] = event
    return [unique[identity] for identity in sorted(unique)]


def deduplicate_merge_requests(merge_requests: Iterable[MergeRequestRecord]) -> list[MergeRequestRecord]:
    """Keep one merge request per id, preferring the most recently updated copy."""
    unique: dict[int, MergeRequestRecord] = {}
    for merge_request in merge_requests:
        existing = unique.get(merge_request.id)
        if existing is None or _merge_request_sort_key(merge_request) > _merge_request_sort_key(existing):
            unique[merge_request.id] = merge_request
    return [unique[mr_id] for mr_id in sorted(unique)]


def aggregate(
    events: Iterable[ActivityEvent],
    merge_requests: Iterable[MergeRequestRecord],
    developers: Iterable[Developer],
    granularity: Granularity | str = Granularity.DAILY,
) -> list[IssueStatistics]:
    """
    Aggregate activity into per-developer, per-bucket statistics.

    Args:
        events: Activity events (any order, duplicates allowed)
        merge_requests: Merge requests (any order, duplicates allowed), bucketed by created_at
        developers: Project members; unmatched actors go to UNKNOWN_DEVELOPER
        granularity: Bucket size ("hourly", "daily", "weekly")

    Returns:
        IssueStatistics sorted by (developer_id, bucket_start)

    Raises:
        ValueError: If granularity is unknown

    Example:
        >>> stats = aggregate([event], [], [Developer(7, "alice")])
        >>> stats[0].events_by_action
        {'opened': 1}
    """
    bucket_size = Granularity(granularity).value
    lookup = {developer.user_id: developer for developer in developers}
    cells: dict[tuple[int, datetime], _BucketAccumulator] = {}
    owners: dict[int, Developer] = {}

    def cell_for(actor_user_id: int, timestamp: datetime) -> _BucketAccumulator:
        developer = lookup.get(actor_user_id, UNKNOWN_DEVELOPER)
        owners[developer.user_id] = developer
        key = (developer.user_id, floor_to_bucket(timestamp, bucket_size))
        if key not in cells:
            cells[key] = _BucketAccumulator()
        return cells[key]

    unique_events = deduplicate_events(events)
    unique_merge_requests = deduplicate_merge_requests(merge_requests)

    for event in unique_events:
        cell_for(event.actor_user_id, event.created_at).add_event(event)

    for merge_request in unique_merge_requests:
        cell_for(merge_request.author_user_id, merge_request.created_at).add_merge_request(merge_request)

    statistics = [cells[key].freeze(owners[key[0]], key[1]) for key in sorted(cells)]

    logger.debug(
        "Aggregated activity",
        extra={
            "extra_fields": {
                "events": len(unique_events),
                "merge_requests": len(unique_merge_requests),
                "buckets": len(statistics),
                "granularity": bucket_size,
            }
        },
    )
    return statistics


def merge_statistics(*statistic_lists: Iterable[IssueStatistics]) -> list[IssueStatistics]:
    """
    Sum several aggregates per (developer_id, bucket_start).

    Aggregating disjoint parts of an input separately and merging them equals
    aggregating the whole input at once.

    Returns:
        IssueStatistics sorted by (developer_id, bucket_start)
    """
    merged: dict[tuple[int, datetime], IssueStatistics] = {}
    for statistics in statistic_lists:
        for item in statistics:
            existing = merged.get(item.key)
            merged[item.key] = item if existing is None else existing.merge(item)
    return [merged[key] for key in sorted(merged)]
