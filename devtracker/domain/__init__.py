"""
Domain Models - Type-safe data structures for developer activity

This package contains dataclasses representing business domain concepts:
    - gitlab: Developer, ActivityEvent, MergeRequestRecord, IssueRecord
    - statistics: TimeWindow, IssueStatistics, IssueTimeStats, StatisticsResult, ProjectData

Usage:
    from devtracker.domain import Developer, UNKNOWN_DEVELOPER, TimeWindow

    window = TimeWindow.last_days(7)
"""

from .gitlab import (
    UNKNOWN_DEVELOPER,
    UNKNOWN_DEVELOPER_ID,
    ActivityEvent,
    Developer,
    EventSource,
    IssueRecord,
    MergeRequestRecord,
    MergeRequestState,
)
from .statistics import (
    Granularity,
    IssueStatistics,
    IssueTimeStats,
    ProjectData,
    StatisticsRequest,
    StatisticsResult,
    TimeInterval,
    TimeWindow,
)

__all__ = [
    # GitLab records
    "Developer",
    "UNKNOWN_DEVELOPER",
    "UNKNOWN_DEVELOPER_ID",
    "ActivityEvent",
    "EventSource",
    "IssueRecord",
    "MergeRequestRecord",
    "MergeRequestState",
    # Statistics
    "Granularity",
    "TimeWindow",
    "IssueStatistics",
    "TimeInterval",
    "IssueTimeStats",
    "StatisticsRequest",
    "StatisticsResult",
    "ProjectData",
]
