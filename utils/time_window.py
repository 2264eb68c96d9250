"""Timezone-fixed date windows and countdown helpers."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

CIVIL_DATE_FORMAT = '%Y-%m-%d'
CIVIL_DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'

EN_WEEKDAYS = ['Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun']
EN_MONTHS = [
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
]
JA_WEEKDAYS = ['月', '火', '水', '木', '金', '土', '日']

DateLike = Union[str, date, datetime]


def parse_utc_instant(value: Union[str, datetime]) -> datetime:
    """
    Parse a backend timestamp as an aware UTC instant.

    Args:
        value: ISO 8601 string ("Z" or offset suffix) or datetime.
            Values without an offset are taken as UTC.

    Returns:
        Aware datetime in UTC

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError('empty timestamp')
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TimeWindow:
    """
    Civil-time calculations in one configured timezone.

    Every "today" and "days until" answer is computed in the configured
    zone, never in the host's local zone. The clock is injectable so the
    windows can be pinned in tests.
    """

    def __init__(
        self,
        tz_name: str = 'Asia/Manila',
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the time window.

        Args:
            tz_name: IANA timezone name (default: Asia/Manila)
            clock: Callable returning the current aware datetime
                (default: UTC wall clock)
        """
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current instant as an aware datetime in the configured zone."""
        current = self._clock()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def today_date(self) -> date:
        return self.now().date()

    def today(self) -> str:
        return self.today_date().strftime(CIVIL_DATE_FORMAT)

    def tomorrow(self) -> str:
        return (self.today_date() + timedelta(days=1)).strftime(CIVIL_DATE_FORMAT)

    def this_week(self) -> Tuple[str, str]:
        """
        Bounds of the current week, Sunday through Saturday.

        Returns:
            Tuple of (start, end) civil date strings
        """
        today = self.today_date()
        # date.weekday(): Monday=0 .. Sunday=6
        offset = (today.weekday() + 1) % 7
        start = today - timedelta(days=offset)
        end = start + timedelta(days=6)
        return start.strftime(CIVIL_DATE_FORMAT), end.strftime(CIVIL_DATE_FORMAT)

    def to_local(self, value: Union[str, datetime]) -> datetime:
        """Convert a UTC instant to an aware datetime in the configured zone."""
        return parse_utc_instant(value).astimezone(self.tz)

    def to_civil_string(self, value: Union[str, datetime]) -> str:
        """Convert a UTC instant to a local civil "YYYY-MM-DD HH:MM:SS" string."""
        return self.to_local(value).strftime(CIVIL_DATETIME_FORMAT)

    def localize(self, value: DateLike) -> datetime:
        """
        Interpret a stored or user-supplied value as local civil time.

        Aware datetimes are converted into the zone; naive datetimes and
        strings are taken to already be local wall-clock time; plain dates
        become local midnight.

        Args:
            value: Aware/naive datetime, date, or "YYYY-MM-DD[ HH:MM[:SS]]" string

        Returns:
            Aware datetime in the configured zone

        Raises:
            ValueError: If a string value cannot be parsed
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.replace(tzinfo=self.tz)
            return value.astimezone(self.tz)
        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=self.tz)

        text = str(value).strip()
        if text.endswith('Z'):
            return parse_utc_instant(text).astimezone(self.tz)
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=self.tz)
        return parsed.astimezone(self.tz)

    def days_until(self, target: DateLike) -> int:
        """
        Whole civil days from today until the target's civil date.

        Both sides are truncated to their civil date in the configured
        zone and subtracted as dates, so the hour of day never matters.

        Args:
            target: Instant or civil value (see localize)

        Returns:
            Signed day count (0 = today, 1 = tomorrow, negative = past)
        """
        target_date = self.localize(target).date()
        return (target_date - self.today_date()).days

    def format_time(self, value: DateLike) -> str:
        return self.localize(value).strftime('%H:%M')

    def format_short_date(self, value: DateLike) -> str:
        local = self.localize(value)
        return f"{local.month}/{local.day}"

    def format_localized_date(self, value: DateLike, style: str = 'en') -> str:
        """
        Human readable date with weekday.

        Args:
            value: Date-like value
            style: "en" ("Thu, Feb 15") or "ja" ("2月15日（木）")

        Returns:
            Formatted date string
        """
        local = self.localize(value)
        if style == 'ja':
            return f"{local.month}月{local.day}日（{JA_WEEKDAYS[local.weekday()]}）"
        return (
            f"{EN_WEEKDAYS[local.weekday()]}, "
            f"{EN_MONTHS[local.month - 1]} {local.day}"
        )

    def dates_between(self, start: str, end: str) -> List[str]:
        """Inclusive list of civil date strings from start to end."""
        first = datetime.strptime(start, CIVIL_DATE_FORMAT).date()
        last = datetime.strptime(end, CIVIL_DATE_FORMAT).date()
        days = []
        current = first
        while current <= last:
            days.append(current.strftime(CIVIL_DATE_FORMAT))
            current += timedelta(days=1)
        return days
