"""
GitLab domain models - Developers and raw activity records

Represents the records fetched from a GitLab project:
    - Developer: project member, unique by user_id
    - UNKNOWN_DEVELOPER: sentinel for actors that are not project members
    - ActivityEvent: one project, label, state or assignment event
    - MergeRequestRecord: one merge request
    - IssueRecord: one issue, the owner of label, state and assignment events
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Developer:
    """
    A project member whose activity is aggregated.

    Attributes:
        user_id: GitLab user id (aggregation key)
        username: GitLab username

    Example:
        >>> Developer(user_id=7, username="alice").to_dict()
        {'userId': 7, 'username': 'alice'}
    """

    user_id: int
    username: str

    @property
    def is_unknown(self) -> bool:
        return self.user_id == UNKNOWN_DEVELOPER_ID

    def to_dict(self) -> dict[str, object]:
        return {"userId": self.user_id, "username": self.username}


UNKNOWN_DEVELOPER_ID = -1

# Activity whose actor is not among the project members is attributed here
UNKNOWN_DEVELOPER = Developer(user_id=UNKNOWN_DEVELOPER_ID, username="unknown-developer")


class MergeRequestState(str, Enum):
    """Merge request states reported by GitLab."""

    OPENED = "opened"
    CLOSED = "closed"
    MERGED = "merged"
    LOCKED = "locked"

    @classmethod
    def parse(cls, value: str) -> "MergeRequestState":
        """
        Parse a raw state string.

        Raises:
            ValueError: If the state is not one of the known values
        """
        return cls(value.strip().lower())


class EventSource:
    """Endpoints activity events are read from."""

    PROJECT = "project"
    LABEL = "label"
    STATE = "state"
    NOTE = "note"


@dataclass(frozen=True)
class ActivityEvent:
    """
    A single activity event on a project resource.

    Immutable once fetched. Equality and hashing cover every field, but the
    aggregator deduplicates by `(source, id)` only: GitLab numbers project
    events, label events, state events and notes independently.

    Attributes:
        id: Upstream event id
        actor_user_id: User who performed the action
        created_at: When it happened (aware UTC)
        resource_type: Resource kind ("issue", "merge_request", ...)
        action: What happened ("opened", "add", "remove", "closed", ...)
        label: Label name for label events
        assignee: Username of the assignee for assignment events
        resource_id: Upstream id of the resource the event belongs to
        source: EventSource the record was read from
    """

    id: int
    actor_user_id: int
    created_at: datetime
    resource_type: str
    action: str
    label: str | None = None
    assignee: str | None = None
    resource_id: int | None = None
    source: str = EventSource.PROJECT

    @property
    def identity(self) -> tuple[str, int]:
        return (self.source, self.id)


@dataclass(frozen=True)
class MergeRequestRecord:
    """
    A merge request as fetched from the project.

    Attributes:
        id: Global merge request id
        iid: Project-scoped merge request number
        title: Merge request title
        state: Current state
        created_at: Creation time (aware UTC), used for bucketing
        updated_at: Last update time (aware UTC)
        labels: Labels on the merge request
        author_user_id: Author of the merge request
        source_project_id: Project the source branch lives in
        web_url: Link to the merge request
    """

    id: int
    iid: int
    title: str
    state: MergeRequestState
    created_at: datetime
    updated_at: datetime
    labels: frozenset[str] = field(default_factory=frozenset)
    author_user_id: int = UNKNOWN_DEVELOPER_ID
    source_project_id: int | None = None
    web_url: str | None = None

    @property
    def is_merged(self) -> bool:
        return self.state is MergeRequestState.MERGED


@dataclass(frozen=True)
class IssueRecord:
    """
    An issue whose label and assignment history is fetched.

    Attributes:
        id: Global issue id
        iid: Project-scoped issue number (used in per-issue URLs)
        title: Issue title
        state: "opened" or "closed"
        created_at: Creation time (aware UTC)
        updated_at: Last update time (aware UTC)
        closed_at: When the issue was closed, if it is
        assignee: Username of the current assignee
        labels: Current labels
    """

    id: int
    iid: int
    title: str
    state: str
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    assignee: str | None = None
    labels: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"
