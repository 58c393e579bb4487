"""
Collectors - Fetch and aggregate GitLab project activity

This package contains:
    - gitlab_rest_client: paginated, rate-limit aware GitLab v4 client
    - gitlab_transformers: raw JSON -> domain records
    - retry_policy: bounded exponential backoff
    - activity_aggregator: per-developer, per-bucket statistics
    - issue_time_tracker: in-progress time per issue
    - request_orchestrator: one statistics request end to end
"""

from .activity_aggregator import aggregate, merge_statistics
from .gitlab_rest_client import GitLabRESTClient
from .issue_time_tracker import calculate_bulk_issue_time_stats, calculate_issue_time_stats, merge_intervals
from .request_orchestrator import collect_project_statistics, verify_token
from .retry_policy import RetryPolicy, parse_retry_after

__all__ = [
    "GitLabRESTClient",
    "RetryPolicy",
    "parse_retry_after",
    "aggregate",
    "merge_statistics",
    "calculate_issue_time_stats",
    "calculate_bulk_issue_time_stats",
    "merge_intervals",
    "collect_project_statistics",
    "verify_token",
]
