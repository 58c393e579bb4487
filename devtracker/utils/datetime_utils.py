"""
Datetime Utility Functions

Centralized datetime parsing and bucketing used by the transformers and the
aggregator.

Handles:
- GitLab ISO timestamps ("2024-01-01T10:00:00Z", "2024-01-01T10:00:00.123+02:00")
- Normalizing everything to timezone-aware UTC
- Flooring timestamps to hourly / daily / weekly bucket starts
"""

from datetime import UTC, datetime, timedelta

BUCKET_GRANULARITIES = ("hourly", "daily", "weekly")


def parse_gitlab_timestamp(timestamp_str: str | None) -> datetime | None:
    """
    Parse a GitLab ISO 8601 timestamp to an aware UTC datetime.

    Naive timestamps are taken to be UTC. Offsets are converted to UTC so two
    representations of the same instant compare and bucket identically.

    Args:
        timestamp_str: ISO timestamp string, or None

    Returns:
        datetime in UTC, or None if input is None/empty

    Raises:
        ValueError: If timestamp format is invalid

    Examples:
        >>> parse_gitlab_timestamp("2024-01-01T10:00:00Z")
        datetime.datetime(2024, 1, 1, 10, 0, tzinfo=datetime.timezone.utc)

        >>> parse_gitlab_timestamp("2024-01-01T12:00:00+02:00")
        datetime.datetime(2024, 1, 1, 10, 0, tzinfo=datetime.timezone.utc)
    """
    if not timestamp_str:
        return None

    if not isinstance(timestamp_str, str):
        raise ValueError(f"Timestamp must be a string, got {type(timestamp_str)}")

    try:
        normalized = timestamp_str.strip()
        if normalized.endswith(("Z", "z")):
            normalized = normalized[:-1] + "+00:00"
        parsed = datetime.fromisoformat(normalized)
    except (ValueError, AttributeError) as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e

    return ensure_utc(parsed)


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def floor_to_bucket(value: datetime, granularity: str) -> datetime:
    """
    Floor a timestamp to the start of its UTC bucket.

    Args:
        value: Timestamp (aware or naive-UTC)
        granularity: "hourly", "daily" or "weekly" (weeks start Monday 00:00 UTC)

    Returns:
        Aware UTC datetime at the bucket start

    Raises:
        ValueError: If granularity is unknown

    Examples:
        >>> floor_to_bucket(datetime(2024, 1, 3, 15, 30, tzinfo=UTC), "daily")
        datetime.datetime(2024, 1, 3, 0, 0, tzinfo=datetime.timezone.utc)

        >>> floor_to_bucket(datetime(2024, 1, 3, 15, 30, tzinfo=UTC), "weekly")
        datetime.datetime(2024, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    utc_value = ensure_utc(value)

    if granularity == "hourly":
        return utc_value.replace(minute=0, second=0, microsecond=0)

    day_start = utc_value.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == "daily":
        return day_start
    if granularity == "weekly":
        return day_start - timedelta(days=day_start.weekday())

    raise ValueError(f"Unknown bucket granularity: {granularity} (expected one of {BUCKET_GRANULARITIES})")


def format_utc(value: datetime) -> str:
    """
    Format an aware datetime as a compact UTC ISO string with 'Z' suffix.

    Example:
        >>> format_utc(datetime(2024, 1, 1, tzinfo=UTC))
        '2024-01-01T00:00:00Z'
    """
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
