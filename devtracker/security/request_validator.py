"""
Request Validator - Presence and shape checks for untrusted identifiers

The web layer hands the core a project id or path and an optional base URL,
all taken from the browser. They are validated here before any of them
reaches a URL.

Usage:
    from devtracker.security.request_validator import validate_statistics_request

    request = validate_statistics_request(request, default_base_url=gitlab_config.base_url)
"""

import re
from dataclasses import replace

from devtracker.domain.statistics import StatisticsRequest, TimeWindow
from devtracker.errors import ConfigurationError

# group/subgroup/project, GitLab path characters only
_PROJECT_PATH_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+(/[A-Za-z0-9_.\-]+)*$")
_BASE_URL_PATTERN = re.compile(r"^https?://[^\s/?#]+(/[^\s?#]*)?$")


def validate_project_id(project_id: object) -> int:
    """
    Validate a project id.

    Raises:
        ConfigurationError: If missing, not an integer or not positive
    """
    if project_id is None or project_id == "":
        raise ConfigurationError("Project ID is required")
    if isinstance(project_id, bool) or not isinstance(project_id, (int, str)):
        raise ConfigurationError("Project ID must be an integer")
    try:
        value = int(project_id)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("Project ID must be an integer") from e
    if value <= 0:
        raise ConfigurationError(f"Project ID must be positive, got {value}")
    return value


def validate_project_path(project_path: str | None) -> str | None:
    """
    Validate an optional namespace path such as "group/project".

    Raises:
        ConfigurationError: If present but not a GitLab path
    """
    if project_path is None:
        return None
    path = project_path.strip().strip("/")
    if not path or ".." in path or not _PROJECT_PATH_PATTERN.match(path):
        raise ConfigurationError("Project path is not valid")
    return path


def validate_base_url(base_url: str | None) -> str:
    """
    Validate a GitLab base URL and strip any trailing slash.

    Raises:
        ConfigurationError: If missing or not an http(s) URL
    """
    if not base_url:
        raise ConfigurationError("GitLab base URL is required")
    url = base_url.strip()
    if not _BASE_URL_PATTERN.match(url):
        raise ConfigurationError("GitLab base URL must be an http(s) URL")
    return url.rstrip("/")


def validate_statistics_request(
    request: StatisticsRequest,
    default_base_url: str | None = None,
    default_project_id: int | None = None,
    default_project_path: str | None = None,
) -> StatisticsRequest:
    """
    Validate every identifier of a statistics request and fill in defaults.

    The project is taken from the request (id, then path); only a request that
    names neither falls back to the configured id, then the configured path.

    Args:
        request: Request descriptor from the web layer
        default_base_url: Configured base URL used when the request has none
        default_project_id: Configured GITLAB_PROJECT_ID
        default_project_path: Configured GITLAB_PROJECT_PATH

    Returns:
        A copy of the request holding only validated values

    Raises:
        ConfigurationError: If any required identifier is missing or invalid
    """
    project_id = request.project_id
    project_path = request.project_path
    if _is_missing(project_id) and _is_missing(project_path):
        project_id, project_path = default_project_id, default_project_path

    if _is_missing(project_id) and _is_missing(project_path):
        raise ConfigurationError("Project ID is required")

    if not isinstance(request.window, TimeWindow):
        raise ConfigurationError("Time window is required")

    return replace(
        request,
        project_id=None if _is_missing(project_id) else validate_project_id(project_id),
        project_path=None if _is_missing(project_path) else validate_project_path(project_path),
        base_url=validate_base_url(request.base_url or default_base_url),
    )


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
