"""
Centralized logging configuration with structured JSON output.

Provides:
- JSON structured logging for production
- Human-readable console logging for development
- Credential redaction on the handler (tokens never reach a log sink)

Usage:
    from devtracker.core.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Fetched events", extra={"extra_fields": {"project_id": 42, "count": 310}})
"""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

REDACTED = "[REDACTED]"

# header-style and query-style credential patterns
_SECRET_PATTERNS = [
    re.compile(r"(?i)(private-token[\"']?\s*[:=]\s*[\"']?)([^\s\"',}]+)"),
    re.compile(r"(?i)(authorization[\"']?\s*[:=]\s*[\"']?(?:bearer|basic)?\s*)([^\s\"',}]+)"),
    re.compile(r"(?i)((?:private_token|access_token|token)=)([^&\s]+)"),
]


def redact_secrets(text: str) -> str:
    """
    Mask credential values in a rendered log message.

    Example:
        >>> redact_secrets("headers={'PRIVATE-TOKEN': 'glpat-abc'}")
        "headers={'PRIVATE-TOKEN': '[REDACTED]'}"
    """
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """
    Rewrites log records so credential values are masked before formatting.

    Installed on the handler created by setup_logging().
    """

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    Produces machine-readable logs suitable for log aggregation tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string"""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = redact_secrets(self.formatException(record.exc_info))

        # Add extra fields (from logger.info("msg", extra={"extra_fields": {...}}))
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class ContextFormatter(logging.Formatter):
    """
    Human-readable formatter for console output.

    Includes color coding for log levels (when supported).
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with color coding"""
        levelname = record.levelname
        if sys.stderr.isatty():
            color = self.COLORS.get(levelname, "")
            record.levelname = f"{color}{levelname}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure application-wide logging on stdout.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, use JSON formatter; if False, use human-readable format

    Example:
        # Driven by LOG_LEVEL / LOG_JSON
        validate_config_on_startup(["logging"])
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(SecretRedactionFilter())

    if json_output:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ContextFormatter(
                fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    root_logger.addHandler(console_handler)

    # httpx logs request lines at INFO/DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Logger for a devtracker module (pass __name__)."""
    return logging.getLogger(name)


# Default configuration (can be overridden by calling setup_logging)
if not logging.getLogger().handlers:
    setup_logging(level="INFO", json_output=False)
