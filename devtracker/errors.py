"""
Tracker Error Kinds

Every failure that can leave the core is one of the exceptions below. The web
layer translates them into HTTP responses with to_error_response(); the core
itself never re-wraps one kind into another.

    InvalidToken         -> 401 (bad/tampered encrypted token, upstream rejected credential)
    UpstreamUnavailable  -> 503 (rate limit / network / server errors after retries)
    ProjectNotFound      -> 404 (upstream 404 for the project)
    ConfigurationError   -> 500 (missing or invalid identifiers / settings)
    MalformedPayload     -> never surfaces; the client skips and counts the record

Messages never contain upstream response bodies, hosts, or credentials.
"""

from datetime import UTC, datetime
from typing import Any


class TrackerError(Exception):
    """Base class for all tracker errors."""

    code = "INTERNAL_SERVER_ERROR"
    http_status = 500


class InvalidToken(TrackerError):
    """Token could not be decrypted, failed its integrity check, or was rejected upstream."""

    code = "INVALID_TOKEN"
    http_status = 401


class UpstreamUnavailable(TrackerError):
    """
    Upstream API kept failing with transient errors until retries ran out.

    Attributes:
        status: HTTP status of the last response (None for transport errors)
        attempts: Number of attempts made for the failing page
    """

    code = "GITLAB_API_ERROR"
    http_status = 503

    def __init__(self, message: str, status: int | None = None, attempts: int = 0):
        super().__init__(message)
        self.status = status
        self.attempts = attempts


class ProjectNotFound(TrackerError):
    code = "PROJECT_NOT_FOUND"
    http_status = 404


class ConfigurationError(TrackerError):
    """Raised when configuration or a required request identifier is missing or invalid."""

    code = "INTERNAL_SERVER_ERROR"
    http_status = 500


class MalformedPayload(TrackerError):
    """
    A single upstream record is missing a required field or has the wrong shape.

    Recovered locally by the client (record skipped, counter incremented).
    """

    code = "GITLAB_API_ERROR"
    http_status = 502

    def __init__(self, message: str, field: str | None = None, record_id: Any = None):
        super().__init__(message)
        self.field = field
        self.record_id = record_id


GENERIC_ERROR_MESSAGE = "Internal server error"


def to_error_response(error: BaseException) -> tuple[dict[str, Any], int]:
    """
    Build the boundary error payload and HTTP status for an exception.

    Args:
        error: Any exception that reached the boundary

    Returns:
        (payload, status) where payload is
        {"success": False, "error": {"message", "code", "timestamp"}}

    Example:
        >>> payload, status = to_error_response(InvalidToken("Token rejected"))
        >>> status
        401
    """
    if isinstance(error, TrackerError) and not isinstance(error, ConfigurationError):
        message = str(error) or error.__class__.__name__
        code = error.code
        status = error.http_status
    else:
        # Configuration details and unknown failures stay server-side
        message = GENERIC_ERROR_MESSAGE
        code = TrackerError.code
        status = TrackerError.http_status

    payload = {
        "success": False,
        "error": {
            "message": message,
            "code": code,
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        },
    }
    return payload, status
