"""
GitLab REST API Client

Project-scoped read access to the GitLab v4 REST API for one request.
Uses AsyncSecureHTTPClient for HTTP/2, connection pooling, and SSL enforcement.

Every paginated resource is exposed as an async generator that fetches one page
at a time, so a caller that stops iterating never triggers the remaining page
fetches. Each page is retried on its own; pages already yielded are never
refetched.

Usage:
    from devtracker.collectors.gitlab_rest_client import GitLabRESTClient

    async with AsyncSecureHTTPClient() as http:
        client = GitLabRESTClient(base_url, token=secret, http_client=http)
        developers = await client.get_project_members(42)
        async for event in client.get_project_events(42, window):
            ...
        async for issue in client.get_issues(42, window):
            history = await client.get_issue_activity(42, issue)

API Documentation:
    https://docs.gitlab.com/ee/api/rest/
"""

from collections.abc import AsyncIterator, Callable
from datetime import timedelta
from typing import Any, TypeVar
from urllib.parse import quote

import httpx

from devtracker.async_http_client import AsyncSecureHTTPClient
from devtracker.collectors.gitlab_transformers import (
    DeveloperTransformer,
    EventTransformer,
    IssueTransformer,
    MergeRequestTransformer,
    NoteTransformer,
)
from devtracker.collectors.retry_policy import RetryPolicy, parse_retry_after
from devtracker.core import get_logger
from devtracker.core.fetch_metrics import FetchMetrics
from devtracker.domain.constants import gitlab_api, retry_defaults
from devtracker.domain.gitlab import ActivityEvent, Developer, IssueRecord, MergeRequestRecord
from devtracker.domain.statistics import TimeWindow
from devtracker.errors import InvalidToken, MalformedPayload, ProjectNotFound, UpstreamUnavailable
from devtracker.security.token_crypto import Secret
from devtracker.utils.datetime_utils import format_utc
from devtracker.utils.error_handling import log_and_continue

logger = get_logger(__name__)

T = TypeVar("T")


class GitLabRESTClient:
    """
    GitLab REST API v4 client bound to one request's token.

    Features:
    - PRIVATE-TOKEN authentication, header built per call from the Secret
    - Page-number pagination following X-Next-Page
    - Bounded exponential backoff for 429 / 5xx / network errors, honoring Retry-After
    - Authentication errors (401, 403) fail fast as InvalidToken
    - Malformed records skipped and counted in FetchMetrics
    """

    def __init__(
        self,
        base_url: str,
        token: Secret,
        http_client: AsyncSecureHTTPClient,
        project_path: str | None = None,
        retry_policy: RetryPolicy | None = None,
        per_page: int = gitlab_api.PER_PAGE,
        metrics: FetchMetrics | None = None,
    ):
        """
        Initialize GitLab REST client.

        Args:
            base_url: GitLab instance URL (e.g., https://gitlab.example.com)
            token: Request-scoped Secret holding the personal access token
            http_client: Open AsyncSecureHTTPClient owned by the caller
            project_path: Namespace path, used when no numeric project id is given
            retry_policy: Backoff policy (default: RetryPolicy())
            per_page: Page size, 1..100
            metrics: Counters for this request (default: new FetchMetrics)

        Raises:
            ValueError: If base_url or token is missing, or per_page is out of range
        """
        if not base_url or token is None:
            raise ValueError("base_url and token are required")
        if not 1 <= per_page <= gitlab_api.PER_PAGE:
            raise ValueError(f"per_page must be between 1 and {gitlab_api.PER_PAGE}, got {per_page}")

        self.base_url = base_url.rstrip("/")
        self.project_path = project_path
        self.http_client = http_client
        self.retry_policy = retry_policy or RetryPolicy()
        self.per_page = per_page
        self.metrics = metrics or FetchMetrics()
        self._token = token

    def _auth_headers(self) -> dict[str, str]:
        return {gitlab_api.AUTH_HEADER: self._token.reveal(), "Accept": "application/json"}

    def _build_url(self, resource: str) -> str:
        """
        Build a v4 API URL.

        Example:
            _build_url("projects/42/events")
            -> "https://gitlab.example.com/api/v4/projects/42/events"
        """
        return f"{self.base_url}{gitlab_api.API_PREFIX}/{resource.lstrip('/')}"

    def _project_ref(self, project_id: int | None) -> str:
        """Numeric id if given, otherwise the URL-encoded project path."""
        if project_id is not None:
            return str(project_id)
        if self.project_path:
            return quote(self.project_path, safe="")
        raise ValueError("project_id or project_path is required")

    async def _handle_api_call(self, resource: str, params: dict[str, Any]) -> httpx.Response:
        """
        Execute a GET with retry logic and error handling.

        Handles:
        - Rate limiting (429) with backoff, Retry-After overriding the computed delay
        - Server errors (500, 502, 503, 504) with exponential backoff
        - Network errors and timeouts with exponential backoff
        - Authentication errors (401, 403) fail fast
        - Not found (404) fails fast
        - Redirects (3xx) fail fast, they are never followed

        Args:
            resource: Path below /api/v4 (no host, safe to log)
            params: Query parameters

        Returns:
            Successful response

        Raises:
            InvalidToken: Upstream rejected the credential
            ProjectNotFound: Upstream returned 404
            UpstreamUnavailable: Retries exhausted, a redirect or a non-retryable error status
        """
        policy = self.retry_policy
        url = self._build_url(resource)
        last_status: int | None = None

        for attempt in range(1, policy.max_attempts + 1):
            self.metrics.record_api_call()
            retry_after: float | None = None

            try:
                response = await self.http_client.get(url, params=params, headers=self._auth_headers())
            except httpx.TransportError as e:
                last_status = None
                reason = e.__class__.__name__
            else:
                status_code = response.status_code

                if 200 <= status_code < 300:
                    return response

                # Redirects are not followed; the auth header stays on the configured host
                if 300 <= status_code < 400:
                    logger.error(
                        f"GitLab answered with a redirect (HTTP {status_code}), check the base URL",
                        extra={"extra_fields": {"resource": resource, "status": status_code}},
                    )
                    raise UpstreamUnavailable(
                        f"GitLab API redirected (HTTP {status_code}) for {resource}", status=status_code, attempts=attempt
                    )

                # Authentication/Authorization errors - fail fast
                if status_code in retry_defaults.AUTH_FAILURE_STATUSES:
                    logger.error(
                        f"GitLab rejected the access token (HTTP {status_code})",
                        extra={"extra_fields": {"resource": resource, "status": status_code}},
                    )
                    raise InvalidToken("GitLab rejected the access token")

                if status_code == 404:
                    raise ProjectNotFound(f"GitLab resource not found: {resource}")

                if status_code not in retry_defaults.RETRYABLE_STATUSES:
                    raise UpstreamUnavailable(
                        f"GitLab API error (HTTP {status_code}) for {resource}", status=status_code, attempts=attempt
                    )

                last_status = status_code
                reason = f"HTTP {status_code}"
                if status_code == 429:
                    self.metrics.record_rate_limit_hit()
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))

            if not policy.should_retry(attempt):
                break

            self.metrics.record_retry()
            delay = policy.delay_for(attempt, retry_after)
            logger.warning(
                f"GitLab request failed ({reason}), retrying in {delay:.2f}s (attempt {attempt}/{policy.max_attempts})",
                extra={"extra_fields": {"resource": resource, "status": last_status, "attempt": attempt}},
            )
            await policy.wait(attempt, retry_after)

        logger.error(
            f"GitLab request failed after {policy.max_attempts} attempts",
            extra={"extra_fields": {"resource": resource, "status": last_status}},
        )
        raise UpstreamUnavailable(
            f"GitLab API unavailable for {resource} after {policy.max_attempts} attempts",
            status=last_status,
            attempts=policy.max_attempts,
        )

    def _next_page(self, response: httpx.Response, page: int, body: Any) -> int | None:
        """
        Resolve the cursor of the page after `page`.

        X-Next-Page is authoritative when present (empty means last page). Without
        it, a full page implies there may be another one.
        """
        header = response.headers.get("X-Next-Page")
        if header is not None:
            try:
                next_page = int(header.strip())
            except ValueError:
                return None
            return next_page if next_page > 0 else None
        if isinstance(body, list) and len(body) >= self.per_page:
            return page + 1
        return None

    async def iter_pages(
        self, resource_name: str, resource: str, params: dict[str, Any] | None = None, start_page: int = 1
    ) -> AsyncIterator[list[Any]]:
        """
        Yield raw pages of a paginated resource, one fetch per iteration.

        Pagination is sequential: the cursor of each page comes from the previous
        response. A page whose body is not a JSON list is counted as one skipped
        record and yielded as an empty page.

        Args:
            resource_name: Short name for metrics and logs ("events", "members", ...)
            resource: Path below /api/v4
            params: Extra query parameters
            start_page: Cursor to resume from

        Yields:
            Raw page bodies (lists of JSON objects)
        """
        page: int | None = start_page
        pages_fetched = 0

        while page is not None:
            if pages_fetched >= gitlab_api.MAX_PAGES:
                logger.warning(
                    f"Stopped paging {resource_name} after {gitlab_api.MAX_PAGES} pages",
                    extra={"extra_fields": {"resource": resource}},
                )
                return

            response = await self._handle_api_call(resource, {**(params or {}), "page": page, "per_page": self.per_page})
            pages_fetched += 1

            try:
                body = response.json()
            except ValueError:
                body = None

            next_page = self._next_page(response, page, body)

            if not isinstance(body, list):
                self.metrics.record_skipped(resource_name)
                log_and_continue(
                    logger,
                    MalformedPayload("Page body is not a list"),
                    {"resource": resource, "page": page},
                    f"{resource_name} page parsing",
                )
                body = []

            yield body
            page = next_page

    async def _iter_records(
        self,
        resource_name: str,
        resource: str,
        params: dict[str, Any],
        transform: Callable[[Any], T | None],
        start_page: int = 1,
    ) -> AsyncIterator[T]:
        """Yield transformed records; None from the transform means "not relevant"."""
        async for page in self.iter_pages(resource_name, resource, params, start_page):
            for raw in page:
                try:
                    record = transform(raw)
                except MalformedPayload as e:
                    self.metrics.record_skipped(resource_name)
                    log_and_continue(
                        logger,
                        e,
                        {"resource": resource, "record_id": e.record_id, "field": e.field},
                        f"{resource_name} record parsing",
                    )
                    continue
                if record is not None:
                    yield record

    async def get_project_members(self, project_id: int | None = None) -> list[Developer]:
        """
        Get all project members, inherited members included.

        Args:
            project_id: GitLab project id (default: the client's project_path)

        Returns:
            Developers unique by user_id, sorted by user_id
        """
        resource = f"projects/{self._project_ref(project_id)}/members/all"
        members: dict[int, Developer] = {}
        async for developer in self._iter_records("members", resource, {}, DeveloperTransformer.transform_member):
            members[developer.user_id] = developer

        logger.debug(f"Fetched {len(members)} project members", extra={"extra_fields": {"resource": resource}})
        return sorted(members.values(), key=lambda developer: developer.user_id)

    async def get_project_events(
        self, project_id: int | None, window: TimeWindow, start_page: int = 1
    ) -> AsyncIterator[ActivityEvent]:
        """
        Lazily yield project events inside the window.

        GitLab's after/before filters are exclusive calendar dates, so the query
        is widened by a day on each side and narrowed to [start, end) here.

        Args:
            project_id: GitLab project id (default: the client's project_path)
            window: Time window to fetch
            start_page: Cursor to resume from

        Yields:
            ActivityEvent records in upstream order
        """
        resource = f"projects/{self._project_ref(project_id)}/events"
        params = {
            "after": (window.start - timedelta(days=1)).date().isoformat(),
            "before": (window.end + timedelta(days=1)).date().isoformat(),
            "sort": "asc",
        }
        async for event in self._iter_records("events", resource, params, EventTransformer.transform_event, start_page):
            if window.contains(event.created_at):
                yield event

    async def get_merge_requests(
        self, project_id: int | None, window: TimeWindow, start_page: int = 1
    ) -> AsyncIterator[MergeRequestRecord]:
        """
        Lazily yield merge requests created inside the window.

        Args:
            project_id: GitLab project id (default: the client's project_path)
            window: Time window to fetch
            start_page: Cursor to resume from

        Yields:
            MergeRequestRecord objects in upstream order
        """
        resource = f"projects/{self._project_ref(project_id)}/merge_requests"
        params = {
            "state": "all",
            "created_after": format_utc(window.start),
            "created_before": format_utc(window.end),
            "order_by": "created_at",
            "sort": "asc",
        }
        async for merge_request in self._iter_records(
            "merge_requests", resource, params, MergeRequestTransformer.transform_merge_request, start_page
        ):
            if window.contains(merge_request.created_at):
                yield merge_request

    async def get_issues(self, project_id: int | None, window: TimeWindow, start_page: int = 1) -> AsyncIterator[IssueRecord]:
        """
        Lazily yield issues updated since the window start.

        Any label or assignment change bumps updated_at, so every issue with
        activity inside the window is included.

        Args:
            project_id: GitLab project id (default: the client's project_path)
            window: Time window to fetch
            start_page: Cursor to resume from

        Yields:
            IssueRecord objects in upstream order
        """
        resource = f"projects/{self._project_ref(project_id)}/issues"
        params = {
            "scope": "all",
            "updated_after": format_utc(window.start),
            "order_by": "updated_at",
            "sort": "asc",
        }
        async for issue in self._iter_records("issues", resource, params, IssueTransformer.transform_issue, start_page):
            yield issue

    async def get_issue_label_events(
        self, project_id: int | None, issue_iid: int, start_page: int = 1
    ) -> AsyncIterator[ActivityEvent]:
        """
        Lazily yield the label history of one issue (resource_label_events).

        Yields:
            ActivityEvent records with source "label", action "add" or "remove"
        """
        resource = f"projects/{self._project_ref(project_id)}/issues/{issue_iid}/resource_label_events"
        async for event in self._iter_records(
            "label_events", resource, {}, EventTransformer.transform_label_event, start_page
        ):
            yield event

    async def get_issue_state_events(
        self, project_id: int | None, issue_iid: int, start_page: int = 1
    ) -> AsyncIterator[ActivityEvent]:
        """
        Lazily yield the open/close history of one issue (resource_state_events).

        Yields:
            ActivityEvent records with source "state", action "closed" or "reopened"
        """
        resource = f"projects/{self._project_ref(project_id)}/issues/{issue_iid}/resource_state_events"
        async for event in self._iter_records(
            "state_events", resource, {}, EventTransformer.transform_state_event, start_page
        ):
            yield event

    async def get_issue_assignment_events(
        self, project_id: int | None, issue_iid: int, start_page: int = 1
    ) -> AsyncIterator[ActivityEvent]:
        """
        Lazily yield assignment changes of one issue, read from its system notes.

        Yields:
            ActivityEvent records with source "note" and action "assignee"
        """
        resource = f"projects/{self._project_ref(project_id)}/issues/{issue_iid}/notes"
        params = {"order_by": "created_at", "sort": "asc"}
        async for event in self._iter_records(
            "notes", resource, params, NoteTransformer.transform_assignment_note, start_page
        ):
            yield event

    async def get_issue_activity(self, project_id: int | None, issue: IssueRecord) -> list[ActivityEvent]:
        """
        Fetch the full label, state and assignment history of one issue.

        Returns:
            Label, state and assignment events in that order, unfiltered by window
        """
        events = [event async for event in self.get_issue_label_events(project_id, issue.iid)]
        events.extend([event async for event in self.get_issue_state_events(project_id, issue.iid)])
        events.extend([event async for event in self.get_issue_assignment_events(project_id, issue.iid)])
        return events

    async def validate_token(self) -> Developer:
        """
        Check the token against GET /user.

        Returns:
            The authenticated user

        Raises:
            InvalidToken: If GitLab rejects the token or the user payload is unusable
            UpstreamUnavailable: If GitLab cannot be reached
        """
        response = await self._handle_api_call("user", {})
        try:
            return DeveloperTransformer.transform_member(response.json())
        except (ValueError, MalformedPayload) as e:
            raise InvalidToken("GitLab did not return a valid user for the token") from e
