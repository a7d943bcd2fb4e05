import time
from datetime import datetime, timezone
from typing import Any, Optional

class Clock:
    """
    Authoritative local clock source.
    Wall-clock instants are timezone-aware UTC datetimes; scheduling uses the monotonic clock.
    """

    @staticmethod
    def now() -> datetime:
        """
        Returns the current UTC instant. Used as the `now` of a reconciliation cycle.
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def monotonic() -> float:
        """
        Returns monotonic seconds.
        WARNING: Not comparable with wall-clock instants, only with other monotonic readings.
        """
        return time.monotonic()

    @staticmethod
    def parse_timestamp(value: Any) -> Optional[datetime]:
        """
        Parses an ISO-8601 string (or datetime) into an aware UTC datetime.
        Returns None for missing or malformed input instead of raising.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            # fromisoformat only accepts the "Z" suffix from 3.11 onward
            if text.endswith("Z") or text.endswith("z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
        else:
            return None

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    @staticmethod
    def elapsed_seconds(start: datetime, end: datetime) -> float:
        """
        Seconds from start to end. Negative if end precedes start.
        """
        return (end - start).total_seconds()
