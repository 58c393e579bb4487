"""
Tests for error kinds and boundary translation
"""

import pytest

from devtracker.errors import (
    GENERIC_ERROR_MESSAGE,
    ConfigurationError,
    InvalidToken,
    MalformedPayload,
    ProjectNotFound,
    TrackerError,
    UpstreamUnavailable,
    to_error_response,
)


class TestErrorKinds:
    """Tests for the exception hierarchy"""

    @pytest.mark.parametrize("error_class", [InvalidToken, UpstreamUnavailable, ProjectNotFound, ConfigurationError, MalformedPayload])
    def test_all_kinds_are_tracker_errors(self, error_class):
        """Test every kind shares the TrackerError base"""
        assert issubclass(error_class, TrackerError)

    def test_upstream_unavailable_attributes(self):
        """Test status and attempts are carried"""
        error = UpstreamUnavailable("down", status=503, attempts=4)

        assert error.status == 503
        assert error.attempts == 4

    def test_malformed_payload_attributes(self):
        """Test field and record id are carried"""
        error = MalformedPayload("missing", field="created_at", record_id=9)

        assert (error.field, error.record_id) == ("created_at", 9)


class TestToErrorResponse:
    """Tests for to_error_response"""

    @pytest.mark.parametrize(
        "error,status,code",
        [
            (InvalidToken("Token rejected"), 401, "INVALID_TOKEN"),
            (UpstreamUnavailable("GitLab down"), 503, "GITLAB_API_ERROR"),
            (ProjectNotFound("missing"), 404, "PROJECT_NOT_FOUND"),
        ],
    )
    def test_known_kinds(self, error, status, code):
        """Test each kind maps to its status and code"""
        payload, http_status = to_error_response(error)

        assert http_status == status
        assert payload["success"] is False
        assert payload["error"]["code"] == code
        assert payload["error"]["message"] == str(error)
        assert payload["error"]["timestamp"].endswith("Z")

    def test_configuration_error_is_generic(self):
        """Test configuration details are not exposed"""
        payload, status = to_error_response(ConfigurationError("ENCRYPTION_KEY environment variable is not set"))

        assert status == 500
        assert payload["error"]["message"] == GENERIC_ERROR_MESSAGE
        assert payload["error"]["code"] == "INTERNAL_SERVER_ERROR"

    def test_unknown_exception_is_generic(self):
        """Test unexpected exceptions are not exposed"""
        payload, status = to_error_response(RuntimeError("https://internal.host/secret-path"))

        assert status == 500
        assert "internal.host" not in payload["error"]["message"]
