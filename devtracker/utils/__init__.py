"""Shared helpers for datetime handling and structured error logging."""
