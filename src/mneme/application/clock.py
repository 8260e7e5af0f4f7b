"""Calendar helpers. "Today" is the server's local calendar day."""

from datetime import datetime


def local_day_start(now: datetime) -> datetime:
    """Local midnight of the day containing ``now`` (timezone-aware)."""
    return now.astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
