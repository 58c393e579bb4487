#!/usr/bin/env python3
"""
Request Orchestrator - One statistics request, end to end

Pipeline for a single request:
    validate identifiers -> decrypt token -> open transport -> build client
    -> fetch members / events / merge requests / issue histories concurrently
    -> aggregate + in-progress time per issue

Performance:
- Sequential: members + events + merge requests + every issue history
- Concurrent: max(members, events, merge requests, issues + slowest history)

Failure handling:
- The first failing fetch cancels its siblings and its error propagates as-is
  (InvalidToken stays InvalidToken, UpstreamUnavailable stays UpstreamUnavailable)
- The Secret is discarded on success, error and cancellation
- Nothing is shared between requests: each gets its own Secret, transport,
  client and FetchMetrics
"""

import asyncio
from collections.abc import AsyncIterator, Coroutine
from contextlib import nullcontext
from datetime import UTC, datetime
from typing import Any, TypeVar

from devtracker.async_http_client import AsyncSecureHTTPClient
from devtracker.collectors.activity_aggregator import aggregate
from devtracker.collectors.gitlab_rest_client import GitLabRESTClient
from devtracker.collectors.issue_time_tracker import calculate_bulk_issue_time_stats
from devtracker.collectors.retry_policy import RetryPolicy
from devtracker.core import get_logger
from devtracker.core.fetch_metrics import FetchMetrics
from devtracker.domain.constants import gitlab_api
from devtracker.domain.gitlab import ActivityEvent, Developer, EventSource, IssueRecord
from devtracker.domain.statistics import StatisticsRequest, StatisticsResult, TimeWindow
from devtracker.errors import TrackerError
from devtracker.secure_config import GitLabConfig, SecureConfig, get_config
from devtracker.security.request_validator import validate_base_url, validate_statistics_request
from devtracker.security.token_crypto import secret_scope
from devtracker.utils.datetime_utils import ensure_utc
from devtracker.utils.error_handling import log_and_raise

logger = get_logger(__name__)

T = TypeVar("T")


async def _collect(records: AsyncIterator[T]) -> list[T]:
    return [record async for record in records]


async def _run_concurrently(*coroutines: Coroutine[Any, Any, Any]) -> list[Any]:
    """
    Run independent fetches as sibling tasks.

    If any task fails, or the caller is cancelled, the remaining tasks are
    cancelled and awaited before the original exception is re-raised.
    """
    tasks = [asyncio.create_task(coroutine) for coroutine in coroutines]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def _collect_issue_histories(
    client: GitLabRESTClient, project_id: int | None, window: TimeWindow
) -> list[tuple[IssueRecord, list[ActivityEvent]]]:
    """Fetch the issues touched since the window start, then each one's label, state and assignment history."""
    issues = await _collect(client.get_issues(project_id, window))
    histories = await _run_concurrently(*(client.get_issue_activity(project_id, issue) for issue in issues))
    return list(zip(issues, histories, strict=True))


def _resolve_transport(http_client: AsyncSecureHTTPClient | None):
    # A caller-supplied client stays open; the caller owns its lifetime
    if http_client is not None:
        return nullcontext(http_client)
    return AsyncSecureHTTPClient()


def _needs_gitlab_defaults(request: StatisticsRequest) -> bool:
    return not request.base_url or (request.project_id is None and not request.project_path)


async def collect_project_statistics(
    encrypted_token: str,
    request: StatisticsRequest,
    config: SecureConfig | None = None,
    http_client: AsyncSecureHTTPClient | None = None,
    retry_policy: RetryPolicy | None = None,
    now: datetime | None = None,
) -> StatisticsResult:
    """
    Produce developer statistics for one project and window.

    Args:
        encrypted_token: Caller's encrypted GitLab token
        request: Project id or path, window and optional base URL
        config: Configuration (default: get_config())
        http_client: Open transport to use instead of a fresh AsyncSecureHTTPClient
        retry_policy: Backoff policy (default: built from RetryConfig)
        now: Reference time for issues still in progress (default: current UTC time)

    Returns:
        StatisticsResult with developers, sorted statistics, in-progress time
        per issue and the skipped record count

    Raises:
        ConfigurationError: Missing or invalid identifiers or settings
        InvalidToken: Token could not be decrypted or was rejected by GitLab
        ProjectNotFound: GitLab returned 404 for the project
        UpstreamUnavailable: GitLab kept failing after retries
    """
    config = config or get_config()
    reference_time = ensure_utc(now or datetime.now(UTC))
    context = {"project_id": request.project_id}

    try:
        # GitLab settings are only required when the request leaves something out
        gitlab: GitLabConfig | None = config.get_gitlab_config() if _needs_gitlab_defaults(request) else None
        request = validate_statistics_request(
            request,
            default_base_url=gitlab.base_url if gitlab else None,
            default_project_id=gitlab.project_id if gitlab else None,
            default_project_path=gitlab.project_path if gitlab else None,
        )
        per_page = gitlab.per_page if gitlab else gitlab_api.PER_PAGE
        encryption = config.get_encryption_config()
        policy = retry_policy or RetryPolicy.from_config(config.get_retry_config())
    except TrackerError as e:
        log_and_raise(logger, e, context, "Statistics request validation")

    metrics = FetchMetrics()
    window = request.window
    project_id = request.project_id
    context = {"project_id": project_id, "project_path": request.project_path}
    logger.info(
        "Collecting project statistics",
        extra={
            "extra_fields": {
                **context,
                "window_start": window.start.isoformat(),
                "window_end": window.end.isoformat(),
                "granularity": window.granularity.value,
            }
        },
    )

    try:
        with secret_scope(encrypted_token, encryption.secret) as secret:
            async with _resolve_transport(http_client) as http:
                client = GitLabRESTClient(
                    request.base_url,
                    token=secret,
                    http_client=http,
                    project_path=request.project_path,
                    retry_policy=policy,
                    per_page=per_page,
                    metrics=metrics,
                )
                developers, events, merge_requests, issue_histories = await _run_concurrently(
                    client.get_project_members(project_id),
                    _collect(client.get_project_events(project_id, window)),
                    _collect(client.get_merge_requests(project_id, window)),
                    _collect_issue_histories(client, project_id, window),
                )
    except TrackerError as e:
        log_and_raise(logger, e, {**context, **metrics.to_dict()}, "Statistics request")

    # Issue histories are unbounded; only the part inside the window is aggregated.
    # State changes already arrive through project events.
    issue_events = [
        event
        for _, history in issue_histories
        for event in history
        if event.source != EventSource.STATE and window.contains(event.created_at)
    ]
    statistics = aggregate([*events, *issue_events], merge_requests, developers, window.granularity)
    issue_time_stats = calculate_bulk_issue_time_stats(issue_histories, reference_time)

    logger.info(
        "Project statistics collected",
        extra={
            "extra_fields": {
                **context,
                "developers": len(developers),
                "events": len(events),
                "issue_events": len(issue_events),
                "merge_requests": len(merge_requests),
                "issues": len(issue_histories),
                "buckets": len(statistics),
                **metrics.to_dict(),
            }
        },
    )

    return StatisticsResult(
        developers=tuple(developers),
        statistics=tuple(statistics),
        skipped_records=metrics.skipped_records,
        generated_at=reference_time,
        issue_time_stats=tuple(issue_time_stats),
    )


async def verify_token(
    encrypted_token: str,
    base_url: str | None = None,
    config: SecureConfig | None = None,
    http_client: AsyncSecureHTTPClient | None = None,
    retry_policy: RetryPolicy | None = None,
) -> Developer:
    """
    Check that an encrypted token decrypts and is accepted by GitLab.

    Args:
        encrypted_token: Caller's encrypted GitLab token
        base_url: GitLab instance URL (default: GITLAB_BASE_URL)
        config: Configuration (default: get_config())
        http_client: Open transport to use instead of a fresh AsyncSecureHTTPClient
        retry_policy: Backoff policy (default: built from RetryConfig)

    Returns:
        The GitLab user the token belongs to

    Raises:
        ConfigurationError: Missing or invalid base URL or settings
        InvalidToken: Token could not be decrypted or was rejected by GitLab
        UpstreamUnavailable: GitLab kept failing after retries
    """
    config = config or get_config()
    resolved_url = validate_base_url(base_url or config.get_gitlab_config().base_url)
    encryption = config.get_encryption_config()
    policy = retry_policy or RetryPolicy.from_config(config.get_retry_config())

    with secret_scope(encrypted_token, encryption.secret) as secret:
        async with _resolve_transport(http_client) as http:
            client = GitLabRESTClient(resolved_url, token=secret, http_client=http, retry_policy=policy)
            user = await client.validate_token()

    logger.info("GitLab token verified", extra={"extra_fields": {"user_id": user.user_id}})
    return user
