"""ISO-8601 helpers shared by the gateway, checkpoint and report."""

from datetime import datetime, timezone
from typing import Optional


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Notion or checkpoint timestamp.

    Accepts the trailing "Z" form Notion returns. Naive values are
    assumed to be UTC so they compare against API timestamps.

    Raises:
        TypeError: If the value is not a string.
        ValueError: If the value is not ISO-8601.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a "Z" suffix."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
