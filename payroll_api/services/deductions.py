# payroll_api/services/deductions.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy import update

from payroll_api.extensions import db
from payroll_api.models.deduction import (
    Deduction, DeductionType, ATTENDANCE, MANDATORY, DISCRETIONARY, PERCENTAGE,
)
from payroll_api.models.employee import Employee
from payroll_api.models.payroll import PayrollEntry, ENTRY_RELEASED
from payroll_api.services import repositories as repo
from payroll_api.services import rates as R
from payroll_api.services.clock import Clock
from payroll_api.services.errors import DataInconsistency, InvalidTransition, NotFound

log = logging.getLogger(__name__)


def snapshot_amount(dtype: DeductionType, employee: Employee) -> Decimal:
    """Amount frozen on a Deduction at creation: fixed, or salary × percentage / 100."""
    if dtype.calculation_type == PERCENTAGE:
        salary = employee.monthly_salary
        if salary is None:
            raise DataInconsistency(
                f"employee {employee.id} has no personnel type; cannot compute percentage deduction",
                employee_id=employee.id,
            )
        return R.money(R.percentage_of(salary, dtype.percentage_value or 0))
    return R.money(dtype.amount or 0)


def apply_deduction(employee_id: int, type_id: int, clock: Clock,
                    amount: Optional[Decimal] = None, notes: Optional[str] = None) -> Deduction:
    emp = repo.get_employee(employee_id)
    if emp is None:
        raise NotFound(f"employee {employee_id} not found")
    dtype = db.session.get(DeductionType, type_id)
    if dtype is None or not dtype.is_active:
        raise NotFound(f"deduction type {type_id} not found")
    if dtype.category == ATTENDANCE:
        # late / absence / partial are computed from attendance, never stored
        raise InvalidTransition(f"'{dtype.name}' is attendance-based and cannot be applied manually")

    if amount is not None and not R.D(amount).is_finite():
        raise ValueError("amount must be a finite number")
    value = R.money(amount) if amount is not None else snapshot_amount(dtype, emp)
    if value < 0:
        raise ValueError("amount must not be negative")

    d = Deduction(
        employee_id=emp.id,
        deduction_type_id=dtype.id,
        amount=value,
        notes=notes,
        applied_at=clock.to_storage(clock.now()),
    )
    db.session.add(d)
    db.session.commit()
    log.info("deduction %s (%s) applied to employee %s: %s", d.id, dtype.name, emp.id, value)
    return d


def sync_mandatory_deductions(clock: Clock) -> dict:
    """
    Make sure every active employee with a personnel type carries one live
    instance of each active MANDATORY type. Existing instances are left alone.
    """
    types = DeductionType.query.filter_by(category=MANDATORY, is_active=True).all()
    created, skipped = 0, 0
    stamp = clock.to_storage(clock.now())
    for emp in repo.active_employees():
        if emp.personnel_type is None:
            skipped += 1
            continue
        have = {
            row[0] for row in db.session.query(Deduction.deduction_type_id)
            .filter(Deduction.employee_id == emp.id, Deduction.archived_at.is_(None)).all()
        }
        for t in types:
            if t.id in have:
                continue
            db.session.add(Deduction(
                employee_id=emp.id,
                deduction_type_id=t.id,
                amount=snapshot_amount(t, emp),
                applied_at=stamp,
                notes="mandatory",
            ))
            created += 1
    db.session.commit()
    log.info("mandatory deductions synced: created=%s, employees_without_type=%s", created, skipped)
    return {"created": created, "employees_without_type": skipped, "types": len(types)}


def archive_released_deductions(clock: Clock) -> int:
    """
    Maintenance sweep: archive DISCRETIONARY deductions that fall inside the
    period of an already RELEASED entry but were left unarchived.
    """
    stamp = clock.to_storage(clock.now())
    type_ids = [t.id for t in DeductionType.query.filter_by(category=DISCRETIONARY).all()]
    if not type_ids:
        return 0
    total = 0
    for entry in PayrollEntry.query.filter_by(status=ENTRY_RELEASED).all():
        lo = clock.to_storage(clock.start_of_day(entry.period_start))
        hi = clock.to_storage(clock.end_of_day(entry.period_end))
        res = db.session.execute(
            update(Deduction)
            .where(
                Deduction.employee_id == entry.employee_id,
                Deduction.deduction_type_id.in_(type_ids),
                Deduction.archived_at.is_(None),
                Deduction.applied_at >= lo,
                Deduction.applied_at <= hi,
            )
            .values(archived_at=stamp)
            .execution_options(synchronize_session=False)
        )
        total += res.rowcount or 0
    db.session.commit()
    log.info("archived %s leftover discretionary deductions", total)
    return total
