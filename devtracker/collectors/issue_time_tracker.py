"""
Issue Time Tracker

Pure calculation functions for the time issues spend in progress.

An issue is in progress between adding the "in-progress" label and removing it
(or adding "paused"). Intervals are merged so overlapping label churn is never
counted twice. An interval still open at the end is closed when the issue was
closed (closed_at, or its last "closed" state event), otherwise at the
caller-supplied reference time, so the same history and reference time always
give the same result.

These statistics depend on the whole label history of an issue, not on single
events, so they are computed per issue and kept out of the per-bucket fold.

Usage:
    from devtracker.collectors.issue_time_tracker import calculate_issue_time_stats

    stats = calculate_issue_time_stats(issue, events, now=datetime.now(UTC))
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from devtracker.collectors.activity_aggregator import deduplicate_events
from devtracker.collectors.gitlab_transformers import ASSIGNEE_ACTION
from devtracker.domain.constants import labels, working_hours
from devtracker.domain.gitlab import ActivityEvent, EventSource, IssueRecord
from devtracker.domain.statistics import IssueTimeStats, TimeInterval
from devtracker.utils.datetime_utils import ensure_utc


def _chronological(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    return sorted(deduplicate_events(events), key=lambda event: (event.created_at, event.source, event.id))


def extract_in_progress_intervals(events: Iterable[ActivityEvent], close_at: datetime) -> list[TimeInterval]:
    """
    Extract the intervals an issue carried the in-progress label.

    Adding "in-progress" while already in progress keeps the earlier start.
    Removing it, or adding "paused", ends the interval.

    Args:
        events: Label events of one issue (any order, duplicates allowed)
        close_at: End for an interval that is still open

    Returns:
        Intervals in chronological order (not merged)
    """
    close_at = ensure_utc(close_at)
    intervals: list[TimeInterval] = []
    started: datetime | None = None

    for event in _chronological(events):
        if event.label == labels.IN_PROGRESS and event.action == "add":
            if started is None:
                started = event.created_at
        elif (event.label == labels.IN_PROGRESS and event.action == "remove") or (
            event.label == labels.PAUSED and event.action == "add"
        ):
            if started is not None:
                intervals.append(TimeInterval(started, event.created_at))
                started = None

    if started is not None:
        intervals.append(TimeInterval(started, max(started, close_at), is_open=True))

    return intervals


def merge_intervals(intervals: Iterable[TimeInterval]) -> list[TimeInterval]:
    """
    Merge overlapping or touching intervals.

    Returns:
        Non-overlapping intervals sorted by start

    Example:
        merge_intervals([TimeInterval(t0, t2), TimeInterval(t1, t3)])
        -> [TimeInterval(t0, t3)]
    """
    merged: list[TimeInterval] = []
    for interval in sorted(intervals, key=lambda item: (item.start, item.end)):
        if merged and interval.start <= merged[-1].end:
            last = merged.pop()
            if interval.end > last.end:
                merged.append(TimeInterval(last.start, interval.end, is_open=interval.is_open))
            else:
                merged.append(TimeInterval(last.start, last.end, is_open=last.is_open or interval.is_open))
        else:
            merged.append(interval)
    return merged


def calculate_working_time(start: datetime, end: datetime) -> timedelta:
    """
    Time between start and end that falls inside working hours.

    Working hours are START_HOUR_UTC..END_HOUR_UTC on weekdays, in UTC.

    Example:
        Friday 16:00 -> Monday 09:00 UTC gives 2 hours
    """
    start, end = ensure_utc(start), ensure_utc(end)
    total = timedelta(0)
    if end <= start:
        return total

    day = start.replace(hour=0, minute=0, second=0, microsecond=0)
    while day < end:
        if day.weekday() not in working_hours.WEEKEND_DAYS:
            work_start = day.replace(hour=working_hours.START_HOUR_UTC)
            work_end = day.replace(hour=working_hours.END_HOUR_UTC)
            overlap = min(end, work_end) - max(start, work_start)
            if overlap > timedelta(0):
                total += overlap
        day += timedelta(days=1)
    return total


def _closed_at(issue: IssueRecord, events: list[ActivityEvent]) -> datetime | None:
    if not issue.is_closed:
        return None
    if issue.closed_at is not None:
        return issue.closed_at
    closes = [event.created_at for event in events if event.source == EventSource.STATE and event.action == "closed"]
    return closes[-1] if closes else None


def _assigned_at(issue: IssueRecord, events: list[ActivityEvent]) -> datetime | None:
    if not issue.assignee:
        return None
    for event in events:
        if event.action == ASSIGNEE_ACTION and event.assignee == issue.assignee:
            return event.created_at
    return None


def calculate_issue_time_stats(issue: IssueRecord, events: Iterable[ActivityEvent], now: datetime) -> IssueTimeStats:
    """
    Calculate in-progress time for one issue.

    Args:
        issue: The issue
        events: Its label, state and assignment events
        now: Reference time for issues that are still open

    Returns:
        IssueTimeStats with merged intervals, calendar and working time
    """
    history = _chronological(events)
    reference = _closed_at(issue, history) or ensure_utc(now)

    intervals = merge_intervals(extract_in_progress_intervals(history, reference))
    started = _assigned_at(issue, history) or issue.created_at

    return IssueTimeStats(
        issue_id=issue.id,
        issue_iid=issue.iid,
        title=issue.title,
        assignee=issue.assignee,
        intervals=tuple(intervals),
        in_progress=sum((interval.duration for interval in intervals), timedelta(0)),
        working_time=sum((calculate_working_time(interval.start, interval.end) for interval in intervals), timedelta(0)),
        total_time=max(reference - started, timedelta(0)),
    )


def calculate_bulk_issue_time_stats(
    histories: Iterable[tuple[IssueRecord, Iterable[ActivityEvent]]], now: datetime
) -> list[IssueTimeStats]:
    """
    Calculate in-progress time for several issues.

    Returns:
        IssueTimeStats sorted by issue id
    """
    stats = [calculate_issue_time_stats(issue, events, now) for issue, events in histories]
    return sorted(stats, key=lambda item: item.issue_id)
