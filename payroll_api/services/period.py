# payroll_api/services/period.py
"""
Pay period resolution.

The daily rate divisor is the number of working days in the *current pay
period capped at today*, never the working days of the calendar month.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Tuple
import logging

from payroll_api.services.clock import Clock
from payroll_api.services.settings import SettingsSnapshot

log = logging.getLogger(__name__)

FALLBACK_WORKING_DAYS = 22
SEMI_MONTHLY_MAX_DAYS = 16

HALF = Decimal("0.5")
ONE = Decimal("1")


@dataclass(frozen=True)
class ResolvedPeriod:
    period_start: date
    period_end: date        # as configured
    capped_end: date        # min(period_end, today)
    working_days: int       # never zero
    period_factor: Decimal  # 0.5 semi-monthly, 1.0 monthly
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def length_days(self) -> int:
        return (self.period_end - self.period_start).days + 1

    @property
    def in_progress(self) -> bool:
        return self.capped_end < self.period_end

    def contains(self, d: date) -> bool:
        return self.period_start <= d <= self.period_end

    def to_dict(self) -> dict:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "capped_end": self.capped_end.isoformat(),
            "working_days": self.working_days,
            "period_factor": str(self.period_factor),
            "warnings": list(self.warnings),
        }


def period_factor(start: date, end: date) -> Decimal:
    return HALF if (end - start).days + 1 <= SEMI_MONTHLY_MAX_DAYS else ONE


def semi_monthly_bounds(d: date) -> Tuple[date, date]:
    """The 1–15 or 16–end-of-month half that contains `d`."""
    if d.day <= 15:
        return d.replace(day=1), d.replace(day=15)
    last = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=16), d.replace(day=last)


def resolve_bounds(start: date, end: date, clock: Clock,
                   fallback_days: int = FALLBACK_WORKING_DAYS,
                   warnings: Optional[list] = None) -> ResolvedPeriod:
    warnings = list(warnings or [])
    if start > end:
        warnings.append(f"period start {start} is after period end {end}")
        log.warning("misconfigured period %s..%s", start, end)

    capped_end = min(end, clock.today())
    count = clock.count_working_days(start, capped_end) if start <= capped_end else 0
    if count <= 0:
        warnings.append(f"no working days between {start} and {capped_end}; using {fallback_days}")
        log.warning("degenerate working-day count for %s..%s, falling back to %s", start, capped_end, fallback_days)
        count = fallback_days

    return ResolvedPeriod(
        period_start=start,
        period_end=end,
        capped_end=capped_end,
        working_days=count,
        period_factor=period_factor(start, end),
        warnings=tuple(warnings),
    )


def resolve_period(settings: SettingsSnapshot, clock: Clock,
                   fallback_days: int = FALLBACK_WORKING_DAYS) -> ResolvedPeriod:
    """Active period from settings, or the current semi-monthly half when none is configured."""
    warnings = []
    start, end = settings.period_start, settings.period_end
    if start is None or end is None:
        start, end = semi_monthly_bounds(clock.today())
        warnings.append("no pay period configured; using the current semi-monthly period")
        log.warning("no pay period configured, defaulting to %s..%s", start, end)
    return resolve_bounds(start, end, clock, fallback_days, warnings)


def next_period(settings: SettingsSnapshot, clock: Clock) -> Tuple[date, date]:
    """Semi-monthly period that follows the configured one (or today's half)."""
    end = settings.period_end
    if end is None:
        _, end = semi_monthly_bounds(clock.today())
    return semi_monthly_bounds(end + timedelta(days=1))
