# payroll_api/services/payroll_aggregator.py
from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal
from typing import AbstractSet, Iterable, List, Optional, Sequence
import logging

from payroll_api.models.deduction import Deduction, ATTENDANCE, DISCRETIONARY
from payroll_api.models.employee import Employee
from payroll_api.models.loan import Loan, LOAN_ACTIVE
from payroll_api.services import repositories as repo
from payroll_api.services import rates as R
from payroll_api.services.attendance_engine import DayInput, day_input, evaluate_period, attendance_total
from payroll_api.services.breakdown import DeductionLine, LoanLine, PayrollBreakdown
from payroll_api.services.clock import Clock
from payroll_api.services.period import ResolvedPeriod
from payroll_api.services.settings import SettingsSnapshot

log = logging.getLogger(__name__)

FLAG_MISSING_PERSONNEL_TYPE = "missing_personnel_type"


def catalog_lines(deductions: Iterable[Deduction], period: ResolvedPeriod, clock: Clock) -> List[DeductionLine]:
    """
    Non-attendance deductions for the period:
      - ATTENDANCE rows never count (those are replayed live from records)
      - archived rows never count
      - MANDATORY always counts
      - DISCRETIONARY counts when applied inside the period window
    """
    lines = []
    for d in deductions:
        dtype = d.deduction_type
        category = dtype.category if dtype is not None else DISCRETIONARY
        if category == ATTENDANCE or d.archived_at is not None:
            continue
        if category == DISCRETIONARY:
            applied_on = clock.local_date(d.applied_at)
            if not period.contains(applied_on):
                continue
        lines.append(DeductionLine(
            deduction_id=d.id,
            name=dtype.name if dtype is not None else "Deduction",
            category=category,
            amount=R.D(d.amount),
            applied_at=clock.localize(d.applied_at).isoformat() if d.applied_at else None,
            notes=d.notes,
        ))
    return lines


def loan_lines(loans: Iterable[Loan], factor: Decimal) -> List[LoanLine]:
    """Scheduled payment per ACTIVE loan, never more than the outstanding balance."""
    return [
        LoanLine(
            loan_id=ln.id,
            principal=R.D(ln.amount),
            balance=R.D(ln.balance),
            monthly_payment_percent=R.D(ln.monthly_payment_percent),
            payment=min(R.loan_payment(ln.amount, ln.monthly_payment_percent, factor), R.D(ln.balance)),
            purpose=ln.purpose,
        )
        for ln in loans
        if ln.status == LOAN_ACTIVE
    ]


def unpaid_leave_days(unpaid_days: AbstractSet[date], period: ResolvedPeriod, clock: Clock,
                      holidays: AbstractSet[date]) -> int:
    return sum(
        1 for d in unpaid_days
        if period.period_start <= d <= period.capped_end
        and clock.is_working_day(d) and d not in holidays
    )


def month_reference_rate(monthly_salary: Decimal, period: ResolvedPeriod, clock: Clock) -> Optional[R.MonthDailyRate]:
    first = period.period_start.replace(day=1)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    days = clock.count_working_days(first, last)
    return R.daily_rate_for_month(monthly_salary, days) if days else None


def aggregate(
    *,
    employee_id: int,
    employee_name: str,
    monthly_salary: Optional[Decimal],
    period: ResolvedPeriod,
    settings: SettingsSnapshot,
    clock: Clock,
    records: Sequence[DayInput] = (),
    holidays: AbstractSet[date] = frozenset(),
    leave_days: AbstractSet[date] = frozenset(),
    unpaid_days: AbstractSet[date] = frozenset(),
    deductions: Sequence[DeductionLine] = (),
    loans: Sequence[LoanLine] = (),
    overtime: Decimal = Decimal("0"),
) -> PayrollBreakdown:
    """
    Pure aggregation for one employee and one period. Same inputs and the
    same instant always produce the same breakdown.
    """
    flags: List[str] = []
    warnings: List[str] = [*period.warnings, *settings.config_warnings()]

    if monthly_salary is None:
        flags.append(FLAG_MISSING_PERSONNEL_TYPE)
        warnings.append(f"employee {employee_id} has no personnel type; salary treated as zero")
        log.warning("employee %s has no personnel type; computing with zero salary", employee_id)
        monthly_salary = Decimal("0")

    salary = R.D(monthly_salary)
    card = R.rate_card(salary, period.working_days)

    days = evaluate_period(records, employee_id, period, settings, card, clock, holidays, leave_days)
    attendance = attendance_total(days)

    catalog = sum((l.amount for l in deductions), Decimal("0"))
    loan_total = sum((l.payment for l in loans), Decimal("0"))

    n_unpaid = unpaid_leave_days(unpaid_days, period, clock, holidays)
    unpaid = Decimal(n_unpaid) * card.daily_rate

    period_salary = R.period_salary(salary, period.period_factor)
    gross = period_salary + R.D(overtime)
    total = attendance + catalog + loan_total + unpaid

    return PayrollBreakdown(
        employee_id=employee_id,
        employee_name=employee_name,
        period_start=period.period_start,
        period_end=period.period_end,
        capped_end=period.capped_end,
        working_days=period.working_days,
        period_factor=period.period_factor,
        monthly_salary=salary,
        daily_rate=card.daily_rate,
        per_second_rate=card.per_second_rate,
        month_daily_rate=month_reference_rate(salary, period, clock),
        period_salary=period_salary,
        overtime=R.D(overtime),
        days=tuple(days),
        attendance_deduction=attendance,
        deductions=tuple(deductions),
        catalog_deduction=catalog,
        loans=tuple(loans),
        loan_deduction=loan_total,
        unpaid_leave_days=n_unpaid,
        unpaid_leave_deduction=unpaid,
        gross_pay=gross,
        total_deductions=total,
        net_pay=R.net_pay(gross, total),
        computed_at=clock.now().isoformat(),
        flags=tuple(flags),
        warnings=tuple(warnings),
    )


def compute_for_employee(employee: Employee, period: ResolvedPeriod, settings: SettingsSnapshot,
                         clock: Clock, overtime: Decimal = Decimal("0")) -> PayrollBreakdown:
    """Load every input for one employee from the store and aggregate."""
    holidays = repo.holiday_dates(period.period_start, period.period_end)
    records = [day_input(r, clock) for r in repo.list_records(employee.id, period.period_start, period.capped_end)]
    leaves = repo.approved_leaves(employee.id, period.period_start, period.period_end)
    deductions = Deduction.query.filter(
        Deduction.employee_id == employee.id,
        Deduction.archived_at.is_(None),
    ).order_by(Deduction.applied_at.asc()).all()
    loans = Loan.query.filter_by(employee_id=employee.id, status=LOAN_ACTIVE).order_by(Loan.id.asc()).all()

    return aggregate(
        employee_id=employee.id,
        employee_name=employee.full_name,
        monthly_salary=employee.monthly_salary,
        period=period,
        settings=settings,
        clock=clock,
        records=records,
        holidays=holidays,
        leave_days=repo.leave_days(leaves, period.period_start, period.period_end),
        unpaid_days=repo.leave_days(leaves, period.period_start, period.period_end, paid=False),
        deductions=catalog_lines(deductions, period, clock),
        loans=loan_lines(loans, period.period_factor),
        overtime=overtime,
    )


def preview_period(period: ResolvedPeriod, settings: SettingsSnapshot, clock: Clock) -> List[PayrollBreakdown]:
    """Live figures for every active employee; nothing is written."""
    return [compute_for_employee(emp, period, settings, clock) for emp in repo.active_employees()]


def summarize(breakdowns: Iterable[PayrollBreakdown]) -> dict:
    items = list(breakdowns)
    gross = sum((b.gross_pay for b in items), Decimal("0"))
    deductions = sum((b.total_deductions for b in items), Decimal("0"))
    net = sum((b.net_pay for b in items), Decimal("0"))
    return {
        "employees": len(items),
        "gross_pay": str(R.money(gross)),
        "total_deductions": str(R.money(deductions)),
        "net_pay": str(R.money(net)),
        "flagged": [b.employee_id for b in items if b.flags],
    }
