"""
Core Infrastructure - Logging and Fetch Metrics

This package provides centralized infrastructure utilities that should be used
throughout the application instead of direct library calls.

Usage:
    from devtracker.core import get_logger

    logger = get_logger(__name__)
"""

from .fetch_metrics import FetchMetrics
from .logging_config import (
    JSONFormatter,
    SecretRedactionFilter,
    get_logger,
    redact_secrets,
    setup_logging,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "redact_secrets",
    "JSONFormatter",
    "SecretRedactionFilter",
    # Metrics
    "FetchMetrics",
]
