"""
Tests for logging configuration

Tests credential redaction, JSON formatting and handler setup.
"""

import json
import logging

import pytest

from devtracker.core.logging_config import (
    REDACTED,
    ContextFormatter,
    JSONFormatter,
    SecretRedactionFilter,
    redact_secrets,
    setup_logging,
)
from devtracker.secure_config import validate_config_on_startup


def make_record(message: str, *args, **attrs) -> logging.LogRecord:
    record = logging.LogRecord("devtracker.test", logging.INFO, __file__, 10, message, args, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestRedactSecrets:
    """Tests for redact_secrets"""

    @pytest.mark.parametrize(
        "text",
        [
            "headers={'PRIVATE-TOKEN': 'glpat-abc123'}",
            "PRIVATE-TOKEN: glpat-abc123",
            "Authorization: Bearer glpat-abc123",
            "GET /api/v4/projects?private_token=glpat-abc123&page=2",
            "callback?token=glpat-abc123",
        ],
    )
    def test_token_values_masked(self, text):
        """Test common credential shapes are masked"""
        redacted = redact_secrets(text)

        assert "glpat-abc123" not in redacted
        assert REDACTED in redacted

    def test_plain_text_untouched(self):
        """Test messages without credentials are unchanged"""
        assert redact_secrets("Fetched 10 events for project 42") == "Fetched 10 events for project 42"


class TestSecretRedactionFilter:
    """Tests for SecretRedactionFilter"""

    def test_filter_rewrites_message_with_args(self):
        """Test the rendered message (args included) is redacted"""
        record = make_record("Request headers: %s", {"PRIVATE-TOKEN": "glpat-xyz"})

        assert SecretRedactionFilter().filter(record) is True
        assert "glpat-xyz" not in record.getMessage()
        assert record.args is None

    def test_filter_leaves_clean_record(self):
        """Test clean records keep their args"""
        record = make_record("Fetched %d events", 3)

        SecretRedactionFilter().filter(record)

        assert record.args == (3,)
        assert record.getMessage() == "Fetched 3 events"


class TestJSONFormatter:
    """Tests for JSONFormatter"""

    def test_json_output_with_extra_fields(self):
        """Test extra_fields are merged into the JSON object"""
        record = make_record("Collected", extra_fields={"project_id": 42, "buckets": 3})

        payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Collected"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "devtracker.test"
        assert payload["project_id"] == 42
        assert payload["buckets"] == 3
        assert payload["timestamp"].endswith("Z")

    def test_non_serializable_extra_uses_str(self):
        """Test values like datetimes do not break formatting"""
        from datetime import UTC, datetime

        record = make_record("Window", extra_fields={"start": datetime(2024, 1, 1, tzinfo=UTC)})

        payload = json.loads(JSONFormatter().format(record))

        assert payload["start"].startswith("2024-01-01")


class TestContextFormatter:
    """Tests for ContextFormatter"""

    def test_levelname_restored_after_format(self):
        """Test color codes never leak into the record"""
        record = make_record("hello")
        formatter = ContextFormatter(fmt="%(levelname)s %(message)s")

        output = formatter.format(record)

        assert "hello" in output
        assert record.levelname == "INFO"


class TestSetupLogging:
    """Tests for setup_logging"""

    def test_handler_carries_redaction_filter(self):
        """Test the console handler redacts and httpx request logs are quieted"""
        setup_logging(level="DEBUG", json_output=True)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert any(isinstance(f, SecretRedactionFilter) for f in handlers[0].filters)
        assert isinstance(handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

        setup_logging(level="INFO")

    def test_console_output_is_redacted(self, capsys):
        """Test a leaked token never reaches stdout"""
        setup_logging(level="INFO", json_output=True)

        logging.getLogger("devtracker.test").warning("Upstream said PRIVATE-TOKEN: glpat-leak")

        output = capsys.readouterr().out
        assert "glpat-leak" not in output
        assert json.loads(output.strip().splitlines()[-1])["level"] == "WARNING"

        setup_logging(level="INFO")

    def test_startup_validation_applies_logging_config(self, monkeypatch):
        """Test LOG_LEVEL and LOG_JSON drive the root logger"""
        monkeypatch.setenv("LOG_LEVEL", "warning")
        monkeypatch.setenv("LOG_JSON", "true")

        validate_config_on_startup(["logging"])

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

        setup_logging(level="INFO")
