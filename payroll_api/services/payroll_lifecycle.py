# payroll_api/services/payroll_lifecycle.py
"""
PayrollEntry lifecycle: PENDING -> RELEASED -> ARCHIVED.

PENDING entries are drafts and are recomputed on every read. Release runs
the aggregator one last time, freezes the breakdown on the row and applies
the side effects (discretionary deductions archived, loan balances paid
down) in the same transaction. RELEASED / ARCHIVED entries are only ever
served from that frozen breakdown.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

from flask import current_app, has_app_context
from sqlalchemy import update

from payroll_api.extensions import db
from payroll_api.models.deduction import Deduction, DISCRETIONARY
from payroll_api.models.loan import Loan, LOAN_ACTIVE, LOAN_COMPLETED
from payroll_api.models.payroll import PayrollEntry, ENTRY_PENDING, ENTRY_RELEASED, ENTRY_ARCHIVED
from payroll_api.services import events
from payroll_api.services import repositories as repo
from payroll_api.services import rates as R
from payroll_api.services.breakdown import LoanLine, PayrollBreakdown
from payroll_api.services.clock import Clock, get_clock
from payroll_api.services.errors import DataInconsistency, DuplicatePeriod, InvalidTransition, NotFound, PayrollError
from payroll_api.services.payroll_aggregator import compute_for_employee
from payroll_api.services.period import FALLBACK_WORKING_DAYS, ResolvedPeriod, resolve_bounds, resolve_period
from payroll_api.services.settings import SettingsSnapshot, load_settings

log = logging.getLogger(__name__)

FROZEN_STATUSES = (ENTRY_RELEASED, ENTRY_ARCHIVED)


# ---------- period helpers ----------

def _fallback_days() -> int:
    if has_app_context():
        return int(current_app.config.get("PAYROLL_FALLBACK_WORKING_DAYS", FALLBACK_WORKING_DAYS))
    return FALLBACK_WORKING_DAYS


def active_period(settings: Optional[SettingsSnapshot] = None, clock: Optional[Clock] = None) -> ResolvedPeriod:
    settings = settings or load_settings()
    return resolve_period(settings, clock or get_clock(), _fallback_days())


def period_between(start: date, end: date, clock: Optional[Clock] = None) -> ResolvedPeriod:
    return resolve_bounds(start, end, clock or get_clock(), _fallback_days())


def _entry_period(entry: PayrollEntry, clock: Clock) -> ResolvedPeriod:
    return period_between(entry.period_start, entry.period_end, clock)


def _totals(bd: PayrollBreakdown) -> dict:
    return {
        "basic_salary": R.money(bd.period_salary),
        "overtime": R.money(bd.overtime),
        "deductions": R.money(bd.total_deductions),
        "net_pay": R.money(bd.net_pay),
    }


def _facts(entry: PayrollEntry, bd: Optional[PayrollBreakdown] = None) -> dict:
    return {
        "entry_id": entry.id,
        "employee_id": entry.employee_id,
        "period_start": entry.period_start,
        "period_end": entry.period_end,
        "net_pay": R.money(bd.net_pay) if bd else entry.net_pay,
    }


# ---------- drafts ----------

def generate_draft(employee_id: int, period: ResolvedPeriod, settings: SettingsSnapshot,
                   clock: Clock) -> Tuple[PayrollEntry, PayrollBreakdown]:
    """Create or refresh the PENDING entry for (employee, period)."""
    emp = repo.get_employee(employee_id)
    if emp is None:
        raise NotFound(f"employee {employee_id} not found")

    start, end = period.period_start, period.period_end
    frozen = repo.find_entry(emp.id, start, end, statuses=FROZEN_STATUSES)
    if frozen is not None:
        raise DuplicatePeriod(
            f"payroll for employee {emp.id} in {start}..{end} is already {frozen.status}",
            entry_id=frozen.id,
        )
    overlaps = repo.overlapping_live_entries(emp.id, start, end)
    if overlaps:
        raise DuplicatePeriod(
            f"employee {emp.id} already has a payroll entry overlapping {start}..{end}",
            entry_ids=[e.id for e in overlaps],
        )

    entry = repo.find_entry(emp.id, start, end, statuses=(ENTRY_PENDING,))
    overtime = R.D(entry.overtime) if entry is not None else Decimal("0")
    bd = compute_for_employee(emp, period, settings, clock, overtime=overtime)

    if entry is None:
        entry = PayrollEntry(employee_id=emp.id, period_start=start, period_end=end, status=ENTRY_PENDING)
        db.session.add(entry)
    for k, v in _totals(bd).items():
        setattr(entry, k, v)
    entry.flags = list(bd.flags) or None
    entry.processed_at = clock.to_storage(clock.now())
    db.session.commit()

    events.entry_releasable.send(events.SENDER, **_facts(entry, bd))
    return entry, bd


def generate_period(period: ResolvedPeriod, settings: SettingsSnapshot, clock: Clock) -> dict:
    generated, skipped = [], []
    for emp in repo.active_employees():
        try:
            entry, _ = generate_draft(emp.id, period, settings, clock)
            generated.append(entry.id)
        except DuplicatePeriod as e:
            db.session.rollback()
            skipped.append({"employee_id": emp.id, "reason": e.message})
    log.info("generated %s payroll drafts for %s..%s (%s skipped)",
             len(generated), period.period_start, period.period_end, len(skipped))
    return {"generated": generated, "skipped": skipped}


def read_entry(entry: PayrollEntry, settings: SettingsSnapshot, clock: Clock) -> PayrollBreakdown:
    """Live figures for a draft; the frozen snapshot for anything released."""
    if entry.status in FROZEN_STATUSES:
        if not entry.breakdown:
            raise DataInconsistency(f"payroll entry {entry.id} is {entry.status} but has no snapshot")
        return PayrollBreakdown.from_dict(entry.breakdown)
    return compute_for_employee(entry.employee, _entry_period(entry, clock), settings, clock,
                                overtime=R.D(entry.overtime))


# ---------- release ----------

def _archive_discretionary(bd: PayrollBreakdown, employee_id: int, stamp) -> int:
    ids = [l.deduction_id for l in bd.deductions if l.category == DISCRETIONARY and l.deduction_id]
    if not ids:
        return 0
    res = db.session.execute(
        update(Deduction)
        .where(Deduction.id.in_(ids), Deduction.employee_id == employee_id, Deduction.archived_at.is_(None))
        .values(archived_at=stamp)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


def _apply_loan_payments(lines: Iterable[LoanLine], clock: Clock) -> List[int]:
    completed = []
    for line in lines:
        loan = Loan.query.filter(Loan.id == line.loan_id).with_for_update().first()
        if loan is None or loan.status != LOAN_ACTIVE:
            continue
        paid = min(R.money(line.payment), R.D(loan.balance))
        loan.balance = R.money(R.D(loan.balance) - paid)
        if loan.balance <= 0:
            loan.balance = Decimal("0.00")
            loan.status = LOAN_COMPLETED
            loan.end_date = clock.today()
            completed.append(loan.id)
    return completed


def release_entry(entry_id: int, settings: SettingsSnapshot, clock: Clock) -> Tuple[PayrollEntry, PayrollBreakdown]:
    """
    PENDING -> RELEASED, exactly once. Everything happens in one transaction;
    any rejection leaves the entry (and its snapshot) untouched.
    """
    entry = repo.get_entry(entry_id, for_update=True)
    if entry is None:
        raise NotFound(f"payroll entry {entry_id} not found")
    if entry.status != ENTRY_PENDING:
        raise InvalidTransition(
            f"payroll entry {entry_id} is already {entry.status}; nothing was changed",
            status=entry.status,
        )

    emp = entry.employee
    if emp is None or emp.monthly_salary is None:
        raise DataInconsistency(
            f"employee {entry.employee_id} has no personnel type; assign one before releasing",
            employee_id=entry.employee_id,
        )

    bd = compute_for_employee(emp, _entry_period(entry, clock), settings, clock, overtime=R.D(entry.overtime))
    stamp = clock.to_storage(clock.now())

    flipped = repo.transition_status(
        PayrollEntry, entry.id, ENTRY_PENDING, ENTRY_RELEASED,
        breakdown=bd.to_dict(),
        flags=list(bd.flags) or None,
        released_at=stamp,
        processed_at=stamp,
        **_totals(bd),
    )
    if not flipped:
        raise InvalidTransition(f"payroll entry {entry_id} was released concurrently; nothing was changed")

    archived = _archive_discretionary(bd, emp.id, stamp)
    completed = _apply_loan_payments(bd.loans, clock)
    db.session.commit()

    log.info("released payroll entry %s (employee=%s, %s..%s, net=%s, archived_deductions=%s, completed_loans=%s)",
             entry.id, emp.id, entry.period_start, entry.period_end, R.money(bd.net_pay), archived, completed)
    db.session.refresh(entry)
    events.entry_released.send(events.SENDER, **_facts(entry, bd))
    return entry, bd


def release_period(period: ResolvedPeriod, settings: SettingsSnapshot, clock: Clock) -> dict:
    """Release every PENDING entry of the period, each in its own transaction."""
    released, skipped = [], []
    for entry in repo.entries_for_period(period.period_start, period.period_end, statuses=(ENTRY_PENDING,)):
        entry_id = entry.id
        try:
            release_entry(entry_id, settings, clock)
            released.append(entry_id)
        except PayrollError as e:
            db.session.rollback()
            skipped.append({"entry_id": entry_id, "code": e.code, "reason": e.message})
    log.info("period %s..%s: released=%s skipped=%s",
             period.period_start, period.period_end, len(released), len(skipped))
    return {"released": released, "skipped": skipped}


# ---------- archive ----------

def archive_period(start: date, end: date, clock: Clock) -> int:
    """RELEASED -> ARCHIVED for every employee of the period; snapshots are not touched."""
    stamp = clock.to_storage(clock.now())
    res = db.session.execute(
        update(PayrollEntry)
        .where(
            PayrollEntry.period_start == start,
            PayrollEntry.period_end == end,
            PayrollEntry.status == ENTRY_RELEASED,
        )
        .values(status=ENTRY_ARCHIVED, archived_at=stamp)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    count = res.rowcount or 0
    log.info("archived %s payroll entries for %s..%s", count, start, end)
    events.period_archived.send(events.SENDER, period_start=start, period_end=end, count=count)
    return count
