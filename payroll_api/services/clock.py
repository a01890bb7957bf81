# payroll_api/services/clock.py
"""
Organisation clock and working-day calendar.

All engine code asks a `Clock` for "now" instead of calling
`datetime.now()` directly, so a request sees one consistent instant and
tests can pin time with `FixedClock`.

Instants are timezone-aware in the organisation's fixed offset (UTC+8 by
default). The database keeps naive UTC; use `to_storage` / `from_storage`
at that boundary.
"""
from __future__ import annotations

from datetime import date, datetime, time as _time, timedelta, timezone
from typing import Iterator, Optional

from flask import current_app, has_app_context

SUNDAY = 6  # date.weekday()


class Clock:
    """Base clock: subclasses only provide `now()`."""

    def __init__(self, offset_hours: float = 8, weekly_off_day: Optional[int] = SUNDAY):
        self.tz = timezone(timedelta(hours=offset_hours))
        self.weekly_off_day = weekly_off_day

    def now(self) -> datetime:  # pragma: no cover - abstract
        raise NotImplementedError

    # ---- day arithmetic ----
    def today(self) -> date:
        return self.now().date()

    def local_date(self, instant: datetime) -> date:
        return self.localize(instant).date()

    def localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def at(self, d: date, t: _time) -> datetime:
        """Wall-clock `t` on local day `d` as an aware instant."""
        return datetime.combine(d, t, tzinfo=self.tz)

    def start_of_day(self, d: date) -> datetime:
        return self.at(d, _time.min)

    def end_of_day(self, d: date) -> datetime:
        return self.at(d, _time.max)

    # ---- calendar ----
    def is_working_day(self, d: date) -> bool:
        # holidays are not folded in here; they surface as NON_WORKING in the status engine
        return self.weekly_off_day is None or d.weekday() != self.weekly_off_day

    def working_days(self, start: date, end: date) -> Iterator[date]:
        for d in iter_days(start, end):
            if self.is_working_day(d):
                yield d

    def count_working_days(self, start: date, end: date) -> int:
        return sum(1 for _ in self.working_days(start, end))

    # ---- storage boundary ----
    def to_storage(self, instant: datetime) -> datetime:
        return self.localize(instant).astimezone(timezone.utc).replace(tzinfo=None)

    def from_storage(self, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return self.localize(value)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Deterministic clock for tests and replays."""

    def __init__(self, instant: datetime, offset_hours: float = 8, weekly_off_day: Optional[int] = SUNDAY):
        super().__init__(offset_hours, weekly_off_day)
        self._now = self.localize(instant) if instant.tzinfo else instant.replace(tzinfo=self.tz)

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = self.localize(instant) if instant.tzinfo else instant.replace(tzinfo=self.tz)

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


def iter_days(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def clock_from_config(config) -> Clock:
    return SystemClock(
        offset_hours=float(config.get("PAYROLL_UTC_OFFSET_HOURS", 8)),
        weekly_off_day=config.get("PAYROLL_WEEKLY_OFF_DAY", SUNDAY),
    )


def get_clock() -> Clock:
    """Clock configured on the running app; a default system clock outside one."""
    if has_app_context():
        clock = current_app.extensions.get("payroll_clock")
        if clock is None:
            clock = clock_from_config(current_app.config)
            current_app.extensions["payroll_clock"] = clock
        return clock
    return SystemClock()
