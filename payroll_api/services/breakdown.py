# payroll_api/services/breakdown.py
"""
Immutable payroll breakdown.

A breakdown is everything a payslip needs: rates, per-day attendance lines,
catalog deductions, loan payments and totals. It is persisted as JSON on the
PayrollEntry at release and only ever rebuilt with `from_dict`, never edited
in place. Decimals are stored as full-precision strings.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, fields, asdict, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from payroll_api.services.rates import money

BREAKDOWN_VERSION = 1


def _dec(v) -> Decimal:
    return Decimal(str(v)) if v is not None else Decimal("0")


def _date(v) -> Optional[date]:
    return date.fromisoformat(v) if v else None


def _encode(v: Any):
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, tuple):
        return [_encode(x) for x in v]
    if isinstance(v, dict):
        return {k: _encode(x) for k, x in v.items()}
    return v


def _coerce(cls, raw: Dict[str, Any], decimals=(), dates=()):
    kwargs = {}
    names = {f.name for f in fields(cls)}
    for k, v in raw.items():
        if k not in names:
            continue
        if k in decimals:
            v = _dec(v)
        elif k in dates:
            v = _date(v)
        elif isinstance(v, list):
            v = tuple(v)
        kwargs[k] = v
    return cls(**kwargs)


@dataclass(frozen=True)
class DayLine:
    work_date: date
    status: str
    stored_status: Optional[str] = None
    time_in: Optional[str] = None       # ISO instant, organisation offset
    time_out: Optional[str] = None
    hours_worked: Decimal = Decimal("0")
    earnings: Decimal = Decimal("0")
    seconds_late: int = 0
    seconds_early: int = 0
    late_deduction: Decimal = Decimal("0")
    early_out_deduction: Decimal = Decimal("0")
    absence_deduction: Decimal = Decimal("0")
    partial_deduction: Decimal = Decimal("0")
    total_deduction: Decimal = Decimal("0")
    virtual: bool = False
    notes: Tuple[str, ...] = ()

    _DECIMALS = ("hours_worked", "earnings", "late_deduction", "early_out_deduction",
                 "absence_deduction", "partial_deduction", "total_deduction")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DayLine":
        return _coerce(cls, raw, decimals=cls._DECIMALS, dates=("work_date",))


@dataclass(frozen=True)
class DeductionLine:
    deduction_id: Optional[int]
    name: str
    category: str
    amount: Decimal
    applied_at: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DeductionLine":
        return _coerce(cls, raw, decimals=("amount",))


@dataclass(frozen=True)
class LoanLine:
    loan_id: int
    principal: Decimal
    balance: Decimal
    monthly_payment_percent: Decimal
    payment: Decimal
    purpose: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LoanLine":
        return _coerce(cls, raw, decimals=("principal", "balance", "monthly_payment_percent", "payment"))


@dataclass(frozen=True)
class PayrollBreakdown:
    employee_id: int
    employee_name: str
    period_start: date
    period_end: date
    capped_end: date
    working_days: int
    period_factor: Decimal
    monthly_salary: Decimal
    daily_rate: Decimal
    per_second_rate: Decimal
    month_daily_rate: Optional[Decimal]
    period_salary: Decimal
    overtime: Decimal
    days: Tuple[DayLine, ...]
    attendance_deduction: Decimal
    deductions: Tuple[DeductionLine, ...]
    catalog_deduction: Decimal
    loans: Tuple[LoanLine, ...]
    loan_deduction: Decimal
    unpaid_leave_days: int
    unpaid_leave_deduction: Decimal
    gross_pay: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    computed_at: str
    flags: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    version: int = BREAKDOWN_VERSION

    _DECIMALS = ("period_factor", "monthly_salary", "daily_rate", "per_second_rate",
                 "period_salary", "overtime", "attendance_deduction", "catalog_deduction",
                 "loan_deduction", "unpaid_leave_deduction", "gross_pay", "total_deductions", "net_pay")

    @property
    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(d.status for d in self.days))

    @property
    def earned(self) -> Decimal:
        return sum((d.earnings for d in self.days), Decimal("0"))

    def totals(self) -> Dict[str, str]:
        """Rounded figures for display and for the PayrollEntry columns."""
        return {
            "period_salary": str(money(self.period_salary)),
            "overtime": str(money(self.overtime)),
            "attendance_deduction": str(money(self.attendance_deduction)),
            "catalog_deduction": str(money(self.catalog_deduction)),
            "loan_deduction": str(money(self.loan_deduction)),
            "unpaid_leave_deduction": str(money(self.unpaid_leave_deduction)),
            "gross_pay": str(money(self.gross_pay)),
            "total_deductions": str(money(self.total_deductions)),
            "net_pay": str(money(self.net_pay)),
            "earned_to_date": str(money(self.earned)),
        }

    def to_dict(self) -> Dict[str, Any]:
        return _encode(asdict(self))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PayrollBreakdown":
        version = raw.get("version", BREAKDOWN_VERSION)
        if version != BREAKDOWN_VERSION:
            raise ValueError(f"unsupported breakdown version {version}")
        scalars = {k: v for k, v in raw.items() if k not in ("days", "deductions", "loans")}
        out = _coerce(cls, {**scalars, "days": [], "deductions": [], "loans": []},
                      decimals=cls._DECIMALS, dates=("period_start", "period_end", "capped_end"))
        month_rate = raw.get("month_daily_rate")
        return replace(
            out,
            month_daily_rate=_dec(month_rate) if month_rate is not None else None,
            days=tuple(DayLine.from_dict(d) for d in raw.get("days") or []),
            deductions=tuple(DeductionLine.from_dict(d) for d in raw.get("deductions") or []),
            loans=tuple(LoanLine.from_dict(d) for d in raw.get("loans") or []),
        )
