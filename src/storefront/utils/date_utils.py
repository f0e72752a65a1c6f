from datetime import datetime, timezone
from typing import Optional
from dateutil import parser as date_parser


class DateUtils:
    """
    Date/time helpers shared by the caches and the promotion window checks

    Key Features:
    - Timezone-aware datetime handling (always UTC)
    - ISO 8601 parsing and formatting
    - Cache age and validity windows
    """

    UTC = timezone.utc

    @classmethod
    def now_utc(cls) -> datetime:
        """Get current UTC datetime - always use this for persisted timestamps"""
        return datetime.now(cls.UTC)

    @classmethod
    def ensure_aware(cls, dt: datetime) -> datetime:
        """Treat naive datetimes as UTC"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=cls.UTC)
        return dt

    @classmethod
    def parse_iso_string(cls, date_string: str) -> datetime:
        """
        Parse ISO 8601 date string to datetime

        Handles various formats:
        - 2026-01-03T10:30:00Z
        - 2026-01-03T10:30:00+00:00
        - 2026-01-03T10:30:00.123456Z
        """
        try:
            # Use dateutil parser for flexibility
            parsed_dt = date_parser.isoparse(date_string)
            return cls.ensure_aware(parsed_dt)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid date format: {date_string}") from e

    @classmethod
    def to_iso_string(cls, dt: datetime) -> str:
        """Convert datetime to ISO 8601 string"""
        return cls.ensure_aware(dt).isoformat()

    @classmethod
    def age_seconds(cls, dt: datetime, now: Optional[datetime] = None) -> float:
        """Seconds elapsed since dt"""
        now = now or cls.now_utc()
        return (cls.ensure_aware(now) - cls.ensure_aware(dt)).total_seconds()

    @classmethod
    def is_within_window(
        cls,
        now: datetime,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> bool:
        """Check now against an optional [start, end] window"""
        now = cls.ensure_aware(now)
        if start is not None and now < cls.ensure_aware(start):
            return False
        if end is not None and now > cls.ensure_aware(end):
            return False
        return True
