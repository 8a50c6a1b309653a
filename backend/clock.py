"""Wall clock in the fixed reference timezone.

Everything that asks "what day is it" goes through a clock so tests can
freeze time on either side of midnight.
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import config


class SystemClock:
    def __init__(self, tz: str | ZoneInfo = config.REFERENCE_TZ):
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FrozenClock(SystemClock):
    """Clock that only moves when told to."""

    def __init__(self, at: datetime, tz: str | ZoneInfo = config.REFERENCE_TZ):
        super().__init__(tz)
        self.set(at)

    def set(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=self.tz)
        self._now = at.astimezone(self.tz)

    def advance(self, **kwargs):
        self._now = (self._now.astimezone(timezone.utc) + timedelta(**kwargs)).astimezone(self.tz)

    def now(self) -> datetime:
        return self._now


default_clock = SystemClock()


def to_naive_utc(d: datetime) -> datetime:
    """Stored timestamps are naive UTC (SQLite has no tz support)."""
    if d.tzinfo:
        d = d.astimezone(timezone.utc).replace(tzinfo=None)
    return d


def iso_utc(d: datetime | None):
    """Safe ISO string for JSON. Returns None if d is None."""
    if d is None:
        return None
    if d.tzinfo:
        d = d.astimezone(timezone.utc).replace(tzinfo=None)
    return d.replace(microsecond=0).isoformat() + "Z"


def parse_day(s: str | None, clock=None) -> date:
    """'2026-03-09' -> date; missing value means today in the reference tz."""
    if not s:
        return (clock or default_clock).today()
    return date.fromisoformat(s.strip())
