"""
GitLab REST API Response Transformers

Converts raw GitLab JSON records into immutable domain records.

Every transformer validates the fields the aggregator depends on and raises
MalformedPayload when one is missing or has the wrong type. The client catches
that per record, counts it and moves on.

Usage:
    from devtracker.collectors.gitlab_transformers import EventTransformer

    event = EventTransformer.transform_event(raw_event)
"""

import re
from typing import Any

from devtracker.domain.gitlab import (
    ActivityEvent,
    Developer,
    EventSource,
    IssueRecord,
    MergeRequestRecord,
    MergeRequestState,
)
from devtracker.errors import MalformedPayload
from devtracker.utils.datetime_utils import parse_gitlab_timestamp

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# System note bodies look like "assigned to @alice" or "assigned to @alice and unassigned @bob"
_ASSIGNED_TO = re.compile(r"assigned to @([^\s,]+)")

ASSIGNEE_ACTION = "assignee"


def _require_mapping(raw: Any, kind: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise MalformedPayload(f"{kind} record is not an object", field=None)
    return raw


def _require_int(value: Any, field: str, record_id: Any = None) -> int:
    # bool is an int subclass; GitLab never sends one for an id
    if isinstance(value, bool) or value is None:
        raise MalformedPayload(f"Missing or invalid '{field}'", field=field, record_id=record_id)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as e:
            raise MalformedPayload(f"Missing or invalid '{field}'", field=field, record_id=record_id) from e
    raise MalformedPayload(f"Missing or invalid '{field}'", field=field, record_id=record_id)


def _optional_int(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _require_str(value: Any, field: str, record_id: Any = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedPayload(f"Missing or invalid '{field}'", field=field, record_id=record_id)
    return value.strip()


def _require_timestamp(value: Any, field: str, record_id: Any = None):
    if not isinstance(value, str) or not value:
        raise MalformedPayload(f"Missing or invalid '{field}'", field=field, record_id=record_id)
    try:
        return parse_gitlab_timestamp(value)
    except ValueError as e:
        raise MalformedPayload(f"Invalid timestamp in '{field}'", field=field, record_id=record_id) from e


def normalize_resource_type(value: str | None) -> str:
    """
    Normalize GitLab resource/target type names.

    Examples:
        >>> normalize_resource_type("MergeRequest")
        'merge_request'
        >>> normalize_resource_type(None)
        'project'
    """
    if not value:
        return "project"
    return _CAMEL_BOUNDARY.sub("_", value.strip()).replace(" ", "_").lower()


class DeveloperTransformer:
    """Transform member and user payloads into Developer records."""

    @staticmethod
    def transform_member(raw: Any) -> Developer:
        """
        Transform one entry of /projects/:id/members/all (or /user).

        REST Response:
        {"id": 7, "username": "alice", "name": "Alice", "state": "active", ...}

        Raises:
            MalformedPayload: If id or username is missing
        """
        record = _require_mapping(raw, "Member")
        record_id = record.get("id")
        return Developer(
            user_id=_require_int(record_id, "id", record_id),
            username=_require_str(record.get("username"), "username", record_id),
        )


class EventTransformer:
    """
    Transform activity events into ActivityEvent records.

    Handles both payload shapes GitLab produces:

    Resource events (/issues/:iid/resource_label_events, resource_state_events):
    {"id": 1, "user": {"id": 7, "username": "alice"}, "created_at": "...",
     "resource_type": "Issue", "resource_id": 12, "action": "add",
     "label": {"id": 3, "name": "in-progress"}}

    Project events (/projects/:id/events):
    {"id": 1, "author_id": 7, "author": {...}, "created_at": "...",
     "target_type": "Issue", "target_id": 12, "action_name": "opened"}
    """

    @staticmethod
    def transform_event(raw: Any, source: str = EventSource.PROJECT) -> ActivityEvent:
        """
        Transform a single event.

        Args:
            raw: Event payload
            source: Endpoint the event came from (ids are only unique per source)

        Raises:
            MalformedPayload: If id, actor, created_at or action is missing or invalid
        """
        record = _require_mapping(raw, "Event")
        record_id = record.get("id")
        event_id = _require_int(record_id, "id", record_id)

        actor_id = EventTransformer._actor_id(record)
        if actor_id is None:
            raise MalformedPayload("Missing event actor", field="user", record_id=event_id)

        action = record.get("action") or record.get("action_name")
        resource_type = record.get("resource_type") or record.get("target_type")
        resource_id = record.get("resource_id")
        if resource_id is None:
            resource_id = record.get("target_id")

        return ActivityEvent(
            id=event_id,
            actor_user_id=_require_int(actor_id, "user.id", event_id),
            created_at=_require_timestamp(record.get("created_at"), "created_at", event_id),
            resource_type=normalize_resource_type(resource_type),
            action=_require_str(action, "action", event_id).lower(),
            label=EventTransformer._label_name(record.get("label")),
            assignee=EventTransformer._assignee_name(record.get("assignee")),
            resource_id=_optional_int(resource_id),
            source=source,
        )

    @staticmethod
    def transform_label_event(raw: Any) -> ActivityEvent:
        """Transform one entry of /projects/:id/issues/:iid/resource_label_events."""
        return EventTransformer.transform_event(raw, source=EventSource.LABEL)

    @staticmethod
    def transform_state_event(raw: Any) -> ActivityEvent:
        """
        Transform one entry of /projects/:id/issues/:iid/resource_state_events.

        REST Response:
        {"id": 5, "user": {"id": 7, "username": "alice"}, "created_at": "...",
         "resource_type": "Issue", "resource_id": 12, "state": "closed"}

        The new state ("closed", "reopened") becomes the action.
        """
        record = _require_mapping(raw, "State event")
        return EventTransformer.transform_event({**record, "action": record.get("state")}, source=EventSource.STATE)

    @staticmethod
    def _actor_id(record: dict[str, Any]) -> Any:
        for key in ("user", "author"):
            actor = record.get(key)
            if isinstance(actor, dict) and actor.get("id") is not None:
                return actor["id"]
        return record.get("author_id")

    @staticmethod
    def _label_name(label: Any) -> str | None:
        if isinstance(label, dict):
            name = label.get("name")
            return name if isinstance(name, str) and name else None
        if isinstance(label, str) and label:
            return label
        return None

    @staticmethod
    def _assignee_name(assignee: Any) -> str | None:
        if isinstance(assignee, dict):
            username = assignee.get("username")
            return username if isinstance(username, str) and username else None
        return None


class MergeRequestTransformer:
    """Transform /projects/:id/merge_requests entries into MergeRequestRecord."""

    @staticmethod
    def transform_merge_request(raw: Any) -> MergeRequestRecord:
        """
        Transform a single merge request.

        REST Response:
        {"id": 101, "iid": 5, "title": "...", "state": "merged",
         "created_at": "...", "updated_at": "...", "labels": ["review"],
         "author": {"id": 7, "username": "alice"}, "source_project_id": 42,
         "web_url": "https://gitlab.example.com/team/app/-/merge_requests/5"}

        Raises:
            MalformedPayload: If a required field is missing or the state is unknown
        """
        record = _require_mapping(raw, "Merge request")
        record_id = record.get("id")
        mr_id = _require_int(record_id, "id", record_id)

        author = record.get("author")
        if not isinstance(author, dict):
            raise MalformedPayload("Missing merge request author", field="author", record_id=mr_id)

        try:
            state = MergeRequestState.parse(_require_str(record.get("state"), "state", mr_id))
        except ValueError as e:
            raise MalformedPayload("Unknown merge request state", field="state", record_id=mr_id) from e

        raw_labels = record.get("labels") or []
        if not isinstance(raw_labels, list):
            raise MalformedPayload("Labels must be a list", field="labels", record_id=mr_id)

        created_at = _require_timestamp(record.get("created_at"), "created_at", mr_id)
        updated_raw = record.get("updated_at")
        updated_at = _require_timestamp(updated_raw, "updated_at", mr_id) if updated_raw else created_at

        source_project_id = record.get("source_project_id")
        web_url = record.get("web_url")

        return MergeRequestRecord(
            id=mr_id,
            iid=_require_int(record.get("iid"), "iid", mr_id),
            title=str(record.get("title") or ""),
            state=state,
            created_at=created_at,
            updated_at=updated_at,
            labels=frozenset(label for label in raw_labels if isinstance(label, str) and label),
            author_user_id=_require_int(author.get("id"), "author.id", mr_id),
            source_project_id=source_project_id if isinstance(source_project_id, int) else None,
            web_url=web_url if isinstance(web_url, str) else None,
        )


class NoteTransformer:
    """Turn assignment system notes into ActivityEvent records."""

    @staticmethod
    def transform_assignment_note(raw: Any) -> ActivityEvent | None:
        """
        Transform one entry of /projects/:id/issues/:iid/notes.

        REST Response:
        {"id": 301, "body": "assigned to @alice", "system": true,
         "author": {"id": 8, "username": "bob"}, "created_at": "...",
         "noteable_type": "Issue", "noteable_id": 12}

        Returns:
            An "assignee" event, or None for comments and other system notes

        Raises:
            MalformedPayload: If an assignment note lacks id, author or created_at
        """
        record = _require_mapping(raw, "Note")
        body = record.get("body")
        if record.get("system") is not True or not isinstance(body, str):
            return None
        match = _ASSIGNED_TO.search(body)
        if match is None:
            return None

        record_id = record.get("id")
        note_id = _require_int(record_id, "id", record_id)
        author = record.get("author")
        if not isinstance(author, dict):
            raise MalformedPayload("Missing note author", field="author", record_id=note_id)

        return ActivityEvent(
            id=note_id,
            actor_user_id=_require_int(author.get("id"), "author.id", note_id),
            created_at=_require_timestamp(record.get("created_at"), "created_at", note_id),
            resource_type=normalize_resource_type(record.get("noteable_type") or "Issue"),
            action=ASSIGNEE_ACTION,
            assignee=match.group(1),
            resource_id=_optional_int(record.get("noteable_id")),
            source=EventSource.NOTE,
        )


class IssueTransformer:
    """Transform /projects/:id/issues entries into IssueRecord."""

    @staticmethod
    def transform_issue(raw: Any) -> IssueRecord:
        """
        Transform a single issue.

        REST Response:
        {"id": 12, "iid": 3, "title": "...", "state": "opened",
         "created_at": "...", "updated_at": "...", "closed_at": null,
         "labels": ["in-progress"], "assignee": {"id": 7, "username": "alice"}}

        Raises:
            MalformedPayload: If id, iid or a timestamp is missing or invalid
        """
        record = _require_mapping(raw, "Issue")
        record_id = record.get("id")
        issue_id = _require_int(record_id, "id", record_id)

        raw_labels = record.get("labels") or []
        if not isinstance(raw_labels, list):
            raise MalformedPayload("Labels must be a list", field="labels", record_id=issue_id)

        created_at = _require_timestamp(record.get("created_at"), "created_at", issue_id)
        updated_raw = record.get("updated_at")
        closed_raw = record.get("closed_at")

        return IssueRecord(
            id=issue_id,
            iid=_require_int(record.get("iid"), "iid", issue_id),
            title=str(record.get("title") or ""),
            state=_require_str(record.get("state"), "state", issue_id).lower(),
            created_at=created_at,
            updated_at=_require_timestamp(updated_raw, "updated_at", issue_id) if updated_raw else created_at,
            closed_at=_require_timestamp(closed_raw, "closed_at", issue_id) if closed_raw else None,
            assignee=EventTransformer._assignee_name(record.get("assignee")),
            labels=frozenset(label for label in raw_labels if isinstance(label, str) and label),
        )
