"""Reference-timezone clock and time-of-day arithmetic.

Period times are plain times of day (``"9:05"``, ``"09:05:00"``,
``"1:30 pm"``) interpreted in one fixed reference zone, whatever zone the
host runs in.  All interval math is done on integer minutes-of-day; absolute
instants are only built when a timer has to be armed.
"""

from __future__ import annotations

import re
import time as _time
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from pygsds._constants import DEFAULT_TIME_ZONE, MIDNIGHT_MARGIN_SECONDS

MINUTES_PER_DAY = 24 * 60

_TIME_OF_DAY = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?(\s*[APap][Mm])?")


def parse_time_to_minutes(text: str | None) -> int | None:
    """Convert a time-of-day string to minutes since midnight.

    Returns ``None`` when *text* is empty, has no ``H:MM`` component, or
    names an hour/minute that does not exist.
    """
    if not text:
        return None
    match = _TIME_OF_DAY.search(str(text))
    if match is None:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    marker = match.group(4)
    if marker:
        is_pm = "p" in marker.lower()
        if is_pm and hours < 12:
            hours += 12
        if not is_pm and hours == 12:
            hours = 0
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def seconds_until(target: datetime, now: datetime) -> float:
    """Seconds from *now* to *target*, computed in UTC.

    Subtracting two aware datetimes sharing one ``ZoneInfo`` compares wall
    clocks, which is off by an hour across a DST change.
    """
    return (target.astimezone(UTC) - now.astimezone(UTC)).total_seconds()


class ReferenceClock:
    """Resolve "now" in a fixed zone regardless of the host zone.

    Parameters
    ----------
    time_zone
        IANA zone name.
    now
        Optional source of the current instant (any aware datetime).  Tests
        pass a fake; production uses the system clock.
    """

    def __init__(
        self,
        time_zone: str = DEFAULT_TIME_ZONE,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._tz = ZoneInfo(time_zone)
        self._now = now

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        """Current instant expressed in the reference zone."""
        if self._now is None:
            return datetime.now(self._tz)
        value = self._now()
        if value.tzinfo is None:
            value = value.replace(tzinfo=self._tz)
        return value.astimezone(self._tz)

    def now_ms(self) -> int:
        """Milliseconds since the epoch."""
        if self._now is None:
            return int(_time.time() * 1000)
        return int(self.now().timestamp() * 1000)

    def minutes_of_day(self, dt: datetime | None = None) -> int:
        current = self._localize(dt)
        return current.hour * 60 + current.minute

    def at_minutes(self, day: date, minutes: int, second: int = 0) -> datetime:
        """Build the reference-zone instant ``minutes`` past midnight of *day*."""
        hours, mins = divmod(minutes % MINUTES_PER_DAY, 60)
        return datetime.combine(day, time(hours, mins, second), tzinfo=self._tz)

    def next_occurrence(self, text: str | None, now: datetime | None = None) -> datetime | None:
        """Next instant strictly after *now* whose time of day matches *text*."""
        target_minutes = parse_time_to_minutes(text)
        if target_minutes is None:
            return None
        current = self._localize(now)
        target = self.at_minutes(current.date(), target_minutes)
        if seconds_until(target, current) <= 0:
            target = self.at_minutes(current.date() + timedelta(days=1), target_minutes)
        return target

    def next_midnight(
        self,
        now: datetime | None = None,
        *,
        margin_seconds: int = MIDNIGHT_MARGIN_SECONDS,
    ) -> datetime:
        """The coming reference-zone midnight plus *margin_seconds*."""
        current = self._localize(now)
        return self.at_minutes(current.date() + timedelta(days=1), 0, margin_seconds)

    def _localize(self, dt: datetime | None) -> datetime:
        if dt is None:
            return self.now()
        if dt.tzinfo is None:
            return dt.replace(tzinfo=self._tz)
        return dt.astimezone(self._tz)
