#!/usr/bin/env python3
"""
Error Handling Utility Module

Reusable logging helpers for the two places the core deliberately handles
errors instead of letting them propagate:

1. log_and_continue() - a malformed upstream record is skipped and the fetch goes on
2. log_and_raise() - a failure reaches the request boundary and is re-raised unchanged

Both emit structured context (never credentials) so skipped records and failed
requests can be traced from the logs.
"""

import logging
from typing import Any, NoReturn


def log_and_continue(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> None:
    """
    Log an error with structured context and continue execution gracefully.

    Use this for expected per-record failures that must not halt a fetch.

    Args:
        logger: Logger instance from get_logger(__name__)
        error: The caught exception
        context: Structured data about what failed (record id, field, page)
        error_type: Human-readable description of the operation

    Example:
        try:
            event = parse_activity_event(raw)
        except MalformedPayload as e:
            log_and_continue(logger, e, {"record_id": raw.get("id")}, "Event parsing")
            continue
    """
    logger.warning(
        f"{error_type} failed: {error}",
        extra={
            "extra_fields": {
                "error_type": error_type,
                "exception_class": error.__class__.__name__,
                "context": context,
            }
        },
    )


def log_and_raise(
    logger: logging.Logger,
    error: Exception,
    context: dict[str, Any],
    error_type: str = "Operation",
) -> NoReturn:
    """
    Log an error with context and re-raise the same exception object.

    The exception type is preserved so callers can still tell InvalidToken
    from UpstreamUnavailable.

    Args:
        logger: Logger instance
        error: The caught exception
        context: Structured data about what failed
        error_type: Human-readable description

    Raises:
        The original exception after logging
    """
    logger.error(
        f"{error_type} failed: {error}",
        extra={
            "extra_fields": {
                "error_type": error_type,
                "exception_class": error.__class__.__name__,
                "context": context,
            }
        },
    )
    raise error
