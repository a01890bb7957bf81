# payroll_api/services/rates.py
"""
Salary proration and attendance deduction arithmetic.

Everything here is Decimal and unrounded; call `money()` only when a figure
is displayed or persisted.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import NewType, Optional, Union

Number = Union[Decimal, int, str]

HOURS_PER_DAY = Decimal("8")
SECONDS_PER_HOUR = Decimal("3600")
LATE_CAP_RATIO = Decimal("0.5")
EARLY_OUT_CAP_RATIO = Decimal("0.5")
ZERO = Decimal("0")
CENT = Decimal("0.01")

# Two divisor conventions that must never be mixed inside one figure.
# Only the period rate feeds deductions.
PeriodDailyRate = NewType("PeriodDailyRate", Decimal)
MonthDailyRate = NewType("MonthDailyRate", Decimal)


def D(x: Optional[Number]) -> Decimal:
    if x is None:
        return ZERO
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def money(x: Number) -> Decimal:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RateCard:
    """Rates for one employee in one resolved period."""
    monthly_salary: Decimal
    working_days: int
    daily_rate: PeriodDailyRate

    @property
    def hourly_rate(self) -> Decimal:
        return self.daily_rate / HOURS_PER_DAY

    @property
    def per_second_rate(self) -> Decimal:
        return self.daily_rate / HOURS_PER_DAY / SECONDS_PER_HOUR

    def to_dict(self) -> dict:
        return {
            "monthly_salary": str(self.monthly_salary),
            "working_days": self.working_days,
            "daily_rate": str(self.daily_rate),
            "hourly_rate": str(self.hourly_rate),
            "per_second_rate": str(self.per_second_rate),
        }


def daily_rate_for_period(monthly_salary: Number, working_days_in_period: int) -> PeriodDailyRate:
    if working_days_in_period <= 0:
        raise ValueError("working days in period must be positive")
    return PeriodDailyRate(D(monthly_salary) / Decimal(working_days_in_period))


def daily_rate_for_month(monthly_salary: Number, working_days_in_month: int) -> MonthDailyRate:
    """Reference figure only (shown on payslips); never used for deductions."""
    if working_days_in_month <= 0:
        raise ValueError("working days in month must be positive")
    return MonthDailyRate(D(monthly_salary) / Decimal(working_days_in_month))


def rate_card(monthly_salary: Number, working_days_in_period: int) -> RateCard:
    return RateCard(
        monthly_salary=D(monthly_salary),
        working_days=working_days_in_period,
        daily_rate=daily_rate_for_period(monthly_salary, working_days_in_period),
    )


# ---- per-day amounts ----

def _prorate_seconds(secs: Decimal, rates: RateCard) -> Decimal:
    # seconds × per-second rate, multiplied first so whole hours stay exact
    return secs * rates.daily_rate / HOURS_PER_DAY / SECONDS_PER_HOUR


def late_deduction(seconds_late: Number, rates: RateCard) -> Decimal:
    """min(seconds_late × per-second rate, 50% of the daily rate)."""
    secs = max(D(seconds_late), ZERO)
    return min(_prorate_seconds(secs, rates), rates.daily_rate * LATE_CAP_RATIO)


def early_out_deduction(seconds_early: Number, rates: RateCard) -> Decimal:
    secs = max(D(seconds_early), ZERO)
    return min(_prorate_seconds(secs, rates), rates.daily_rate * EARLY_OUT_CAP_RATIO)


def absence_deduction(rates: RateCard) -> Decimal:
    return D(rates.daily_rate)


def partial_deduction(hours_worked: Number, rates: RateCard) -> Decimal:
    hours_short = max(HOURS_PER_DAY - D(hours_worked), ZERO)
    return hours_short * rates.hourly_rate


def earnings(hours_worked: Number, rates: RateCard) -> Decimal:
    return max(D(hours_worked), ZERO) * rates.hourly_rate


def cap_daily(total: Decimal, rates: RateCard) -> Decimal:
    """No single day may cost more than its daily rate."""
    return min(total, D(rates.daily_rate))


# ---- period-scoped amounts ----

def period_salary(monthly_salary: Number, factor: Decimal) -> Decimal:
    return D(monthly_salary) * factor


def percentage_of(base: Number, percent: Number) -> Decimal:
    return D(base) * D(percent) / Decimal(100)


def loan_payment(amount: Number, monthly_payment_percent: Number, factor: Decimal) -> Decimal:
    return percentage_of(amount, monthly_payment_percent) * factor


def net_pay(gross: Decimal, total_deductions: Decimal) -> Decimal:
    return max(gross - total_deductions, ZERO)
