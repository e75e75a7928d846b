"""
Calendar-day and calendar-week boundaries for gamification periods

All streak and mission arithmetic goes through Calendar so the timezone and
the week convention live in one place:
- A "day" is a date in the configured IANA timezone
- Weeks run Monday through Sunday
- A week ends on Sunday at 23:59:59.999999 local time; on a Sunday the
  current week ends that same night
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from engagement_engine.exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


class Calendar:
    """
    Pure calendar helpers bound to a timezone and an injectable clock.

    Args:
        tz_name: IANA timezone name (e.g. "Europe/Stockholm")
        clock: Zero-argument callable returning an aware datetime.
            Defaults to the system clock in UTC.
    """

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE, clock: Optional[Clock] = None):
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"Unknown timezone '{tz_name}'",
                config_key="timezone",
                cause=e
            ) from e
        self.tz_name = tz_name
        self._clock = clock or utc_now

    def now(self) -> datetime:
        """Current instant expressed in the configured timezone"""
        current = self._clock()
        if current.tzinfo is None:
            raise ValidationError(
                "Clock returned a naive datetime",
                field="clock",
                value=current.isoformat()
            )
        return current.astimezone(self.tz)

    def day_of(self, ts: datetime) -> date:
        """Calendar-day projection of a timestamp"""
        if ts.tzinfo is None:
            raise ValidationError("Cannot project a naive datetime", field="ts", value=ts.isoformat())
        return ts.astimezone(self.tz).date()

    def today(self) -> date:
        return self.now().date()

    def yesterday(self) -> date:
        return self.today() - timedelta(days=1)

    def start_of_week(self, day: Optional[date] = None) -> date:
        """Monday of the week containing day (default: today)"""
        day = day or self.today()
        return day - timedelta(days=day.weekday())

    def end_of_day(self, day: Optional[date] = None) -> datetime:
        """Last microsecond of day (default: today), local time"""
        return self._end_of(day or self.today())

    def end_of_week(self, day: Optional[date] = None) -> datetime:
        """Last microsecond of the Sunday ending day's week (day itself if it is a Sunday)"""
        day = day or self.today()
        days_until_sunday = 6 - day.weekday()
        return self._end_of(day + timedelta(days=days_until_sunday))

    @staticmethod
    def days_between(earlier: date, later: date) -> int:
        return (later - earlier).days

    def _end_of(self, day: date) -> datetime:
        return datetime.combine(day, time.max, tzinfo=self.tz)
