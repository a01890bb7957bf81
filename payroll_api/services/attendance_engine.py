# payroll_api/services/attendance_engine.py
"""
Attendance status engine.

Turns a stored attendance record (raw punches + stored status) and the
current instant into the *effective* status of that day, then prices the
day with a RateCard. This is the only place where "is it late / absent
yet" is decided; routes, the aggregator and batch jobs all call into it.

Precedence for a day:
  1. stored ON_LEAVE
  2. holiday / weekly off / stored NON_WORKING  -> NON_WORKING
  3. future day                                 -> PENDING
  4. has time-in  -> PARTIAL | LATE | PRESENT
  5. no time-in   -> ABSENT once the time-out window closed, else PENDING

A cutoff that is disabled or unset never produces a penalty.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import AbstractSet, Dict, Iterable, List, Optional, Tuple
import logging

from payroll_api.models.attendance import (
    PENDING, PRESENT, LATE, ABSENT, PARTIAL, ON_LEAVE, NON_WORKING,
)
from payroll_api.services.breakdown import DayLine
from payroll_api.services.clock import Clock, iter_days
from payroll_api.services.period import ResolvedPeriod
from payroll_api.services import rates as R
from payroll_api.services.settings import SettingsSnapshot

log = logging.getLogger(__name__)

SECONDS_PER_HOUR = Decimal("3600")
TERMINAL_STATUSES = frozenset({PRESENT, LATE, ABSENT, PARTIAL, ON_LEAVE, NON_WORKING})


@dataclass(frozen=True)
class DayInput:
    """Storage-independent view of one attendance day; instants are tz-aware."""
    employee_id: int
    work_date: date
    status: str = PENDING
    time_in: Optional[datetime] = None
    time_out: Optional[datetime] = None
    virtual: bool = False


@dataclass(frozen=True)
class DayStatus:
    status: str
    reason: str
    warnings: Tuple[str, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def day_input(record, clock: Clock) -> DayInput:
    """Adapt an AttendanceRecord row (naive UTC punches) to a DayInput."""
    return DayInput(
        employee_id=record.employee_id,
        work_date=record.work_date,
        status=record.status or PENDING,
        time_in=clock.from_storage(record.time_in),
        time_out=clock.from_storage(record.time_out),
    )


def time_out_cutoff(d: date, settings: SettingsSnapshot, clock: Clock) -> Optional[datetime]:
    if not settings.timeout_enforced:
        return None
    return clock.at(d, settings.time_out_end)


def time_in_cutoff(d: date, settings: SettingsSnapshot, clock: Clock) -> Optional[datetime]:
    if not settings.late_enforced:
        return None
    return clock.at(d, settings.time_in_end)


def is_late(time_in: datetime, d: date, settings: SettingsSnapshot, clock: Clock) -> bool:
    """Grace boundary is inclusive: a punch exactly at time_in_end is on time."""
    cutoff = time_in_cutoff(d, settings, clock)
    return cutoff is not None and time_in > cutoff


def effective_status(day: DayInput, settings: SettingsSnapshot, clock: Clock,
                     holidays: AbstractSet[date] = frozenset()) -> DayStatus:
    now = clock.now()
    d = day.work_date

    if day.status == ON_LEAVE:
        return DayStatus(ON_LEAVE, "approved leave")
    if d in holidays:
        return DayStatus(NON_WORKING, "holiday")
    if not clock.is_working_day(d) or day.status == NON_WORKING:
        return DayStatus(NON_WORKING, "weekly off")
    if d > clock.today():
        return DayStatus(PENDING, "future day")

    cutoff = time_out_cutoff(d, settings, clock)

    if day.time_in is not None:
        if day.status == PARTIAL:
            return DayStatus(PARTIAL, "marked partial")
        if day.time_out is None and cutoff is not None and now > cutoff:
            return DayStatus(PARTIAL, "no time-out before window closed")
        if is_late(day.time_in, d, settings, clock):
            return DayStatus(LATE, "time-in after window end")
        return DayStatus(PRESENT, "time-in within window")

    if cutoff is not None:
        if now > cutoff:
            return DayStatus(ABSENT, "no time-in before time-out window closed")
        return DayStatus(PENDING, "time-out window still open")

    # no enforceable cutoff: never fabricate an absence
    warnings = tuple(settings.config_warnings()) or ("time-out cutoff disabled",)
    if d == clock.today() or day.status == PENDING:
        return DayStatus(PENDING, "no cutoff configured", warnings)
    return DayStatus(day.status, "stored status kept; no cutoff configured", warnings)


def hours_worked(day: DayInput, status: str, clock: Clock) -> Decimal:
    """
    Hours from time-in to time-out, or to now (clamped to the end of that day)
    while the time-out is still open. A day closed as PARTIAL without a
    time-out counts zero hours.
    """
    if day.time_in is None:
        return Decimal("0")
    if day.time_out is not None:
        end = day.time_out
    elif status == PARTIAL:
        return Decimal("0")
    else:
        end = min(clock.now(), clock.end_of_day(day.work_date))
    secs = max(int((end - day.time_in).total_seconds()), 0)
    return Decimal(secs) / SECONDS_PER_HOUR


def evaluate_day(day: DayInput, settings: SettingsSnapshot, rates: R.RateCard, clock: Clock,
                 holidays: AbstractSet[date] = frozenset()) -> DayLine:
    st = effective_status(day, settings, clock, holidays)
    status = st.status
    notes: List[str] = [st.reason, *st.warnings]

    hours = Decimal("0")
    earned = Decimal("0")
    seconds_late = seconds_early = 0
    late = early = absence = partial = Decimal("0")

    if status in (PRESENT, LATE, PARTIAL):
        hours = hours_worked(day, status, clock)
        earned = R.earnings(hours, rates)

    if status == LATE and day.time_in is not None and settings.late_enforced:
        seconds_late = int((day.time_in - time_in_cutoff(day.work_date, settings, clock)).total_seconds())
        late = R.late_deduction(seconds_late, rates)
    elif status == ABSENT and settings.timeout_enforced:
        absence = R.absence_deduction(rates)
    elif status == PARTIAL:
        partial = R.partial_deduction(hours, rates)

    if status in (PRESENT, LATE) and day.time_out is not None and settings.early_out_enforced:
        early_cutoff = clock.at(day.work_date, settings.time_out_start)
        if day.time_out < early_cutoff:
            seconds_early = int((early_cutoff - day.time_out).total_seconds())
            early = R.early_out_deduction(seconds_early, rates)

    total = R.cap_daily(late + early + absence + partial, rates)

    return DayLine(
        work_date=day.work_date,
        status=status,
        stored_status=None if day.virtual else day.status,
        time_in=day.time_in.isoformat() if day.time_in else None,
        time_out=day.time_out.isoformat() if day.time_out else None,
        hours_worked=hours,
        earnings=earned,
        seconds_late=seconds_late,
        seconds_early=seconds_early,
        late_deduction=late,
        early_out_deduction=early,
        absence_deduction=absence,
        partial_deduction=partial,
        total_deduction=total,
        virtual=day.virtual,
        notes=tuple(notes),
    )


def evaluate_period(records: Iterable[DayInput], employee_id: int, period: ResolvedPeriod,
                    settings: SettingsSnapshot, rates: R.RateCard, clock: Clock,
                    holidays: AbstractSet[date] = frozenset(),
                    leave_days: AbstractSet[date] = frozenset()) -> List[DayLine]:
    """
    Replay every day of the capped period. Working days without a stored
    record are evaluated as a virtual PENDING day so a missing row can still
    become ABSENT. Days covered by approved leave are ON_LEAVE whether or not
    a row exists; stored punches on those days are ignored.
    """
    by_date: Dict[date, DayInput] = {}
    for r in records:
        if period.period_start <= r.work_date <= period.capped_end:
            by_date[r.work_date] = r

    lines = []
    for d in iter_days(period.period_start, period.capped_end):
        day = by_date.get(d)
        if d in leave_days:
            day = DayInput(employee_id=employee_id, work_date=d, status=ON_LEAVE,
                           virtual=day is None)
        elif day is None:
            day = DayInput(employee_id=employee_id, work_date=d, status=PENDING, virtual=True)
        lines.append(evaluate_day(day, settings, rates, clock, holidays))
    return lines


def attendance_total(lines: Iterable[DayLine]) -> Decimal:
    return sum((l.total_deduction for l in lines), Decimal("0"))
