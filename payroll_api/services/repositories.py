# payroll_api/services/repositories.py
"""
Store access for attendance and payroll rows.

Everything that touches the session for AttendanceRecord / PayrollEntry goes
through here: keyed reads, create-if-absent provisioning and guarded status
updates (UPDATE .. WHERE status = :from).
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Set, Tuple
import logging

from sqlalchemy import and_, or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from payroll_api.extensions import db, dialect_name
from payroll_api.models.attendance import AttendanceRecord, Holiday
from payroll_api.models.employee import Employee
from payroll_api.models.leave import LeaveRequest
from payroll_api.models.payroll import PayrollEntry, ENTRY_ARCHIVED
from payroll_api.services.clock import iter_days

log = logging.getLogger(__name__)


# ---------- employees / calendar ----------

def active_employees() -> List[Employee]:
    return Employee.query.filter(Employee.status == "active").order_by(Employee.id.asc()).all()


def get_employee(employee_id: int) -> Optional[Employee]:
    return db.session.get(Employee, employee_id)


def holiday_dates(start: date, end: date) -> Set[date]:
    rows = db.session.query(Holiday.date).filter(Holiday.date >= start, Holiday.date <= end).all()
    return {r[0] for r in rows}


def approved_leaves(employee_id: int, start: date, end: date) -> List[LeaveRequest]:
    return (
        LeaveRequest.query
        .filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status == "approved",
            LeaveRequest.start_date <= end,
            LeaveRequest.end_date >= start,
        )
        .order_by(LeaveRequest.start_date.asc())
        .all()
    )


def leave_days(leaves: Iterable[LeaveRequest], start: date, end: date, paid: Optional[bool] = None) -> Set[date]:
    out: Set[date] = set()
    for lv in leaves:
        if paid is not None and bool(lv.is_paid) != paid:
            continue
        for d in iter_days(max(lv.start_date, start), min(lv.end_date, end)):
            out.add(d)
    return out


# ---------- attendance records ----------

def get_record(employee_id: int, work_date: date, for_update: bool = False) -> Optional[AttendanceRecord]:
    q = AttendanceRecord.query.filter_by(employee_id=employee_id, work_date=work_date)
    if for_update:
        q = q.with_for_update()
    return q.first()


def list_records(employee_id: int, start: date, end: date) -> List[AttendanceRecord]:
    return (
        AttendanceRecord.query
        .filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date <= end,
        )
        .order_by(AttendanceRecord.work_date.asc())
        .all()
    )


def create_record(employee_id: int, work_date: date, **values) -> AttendanceRecord:
    rec = AttendanceRecord(employee_id=employee_id, work_date=work_date, **values)
    db.session.add(rec)
    db.session.flush()
    return rec


def existing_record_keys(employee_ids: Iterable[int], start: date, end: date) -> Set[Tuple[int, date]]:
    ids = list(employee_ids)
    if not ids:
        return set()
    rows = (
        db.session.query(AttendanceRecord.employee_id, AttendanceRecord.work_date)
        .filter(
            AttendanceRecord.employee_id.in_(ids),
            AttendanceRecord.work_date >= start,
            AttendanceRecord.work_date <= end,
        )
        .all()
    )
    return {(r[0], r[1]) for r in rows}


def insert_missing_records(rows: List[dict]) -> int:
    """
    Bulk create-if-absent on (employee_id, work_date). Rows inserted
    concurrently by another request are skipped by the store, not raised.
    Returns the number of rows actually inserted.
    """
    if not rows:
        return 0
    name = dialect_name()
    table = AttendanceRecord.__table__
    if name == "postgresql":
        stmt = pg_insert(table).values(rows).on_conflict_do_nothing(index_elements=["employee_id", "work_date"])
    elif name == "sqlite":
        stmt = sqlite_insert(table).values(rows).on_conflict_do_nothing(index_elements=["employee_id", "work_date"])
    else:
        # other backends: rely on the pre-filter done by the caller
        stmt = table.insert().values(rows)
    result = db.session.execute(stmt)
    return result.rowcount if result.rowcount is not None and result.rowcount >= 0 else len(rows)


# ---------- payroll entries ----------

def get_entry(entry_id: int, for_update: bool = False) -> Optional[PayrollEntry]:
    q = PayrollEntry.query.filter(PayrollEntry.id == entry_id)
    if for_update:
        q = q.with_for_update()
    return q.first()


def find_entry(employee_id: int, start: date, end: date, statuses: Optional[Iterable[str]] = None) -> Optional[PayrollEntry]:
    q = PayrollEntry.query.filter_by(employee_id=employee_id, period_start=start, period_end=end)
    if statuses:
        q = q.filter(PayrollEntry.status.in_(list(statuses)))
    return q.order_by(PayrollEntry.id.desc()).first()


def overlapping_live_entries(employee_id: int, start: date, end: date) -> List[PayrollEntry]:
    """Non-archived entries whose period overlaps [start, end] with different bounds."""
    return (
        PayrollEntry.query
        .filter(
            PayrollEntry.employee_id == employee_id,
            PayrollEntry.status != ENTRY_ARCHIVED,
            PayrollEntry.period_start <= end,
            PayrollEntry.period_end >= start,
            or_(PayrollEntry.period_start != start, PayrollEntry.period_end != end),
        )
        .all()
    )


def entries_for_period(start: date, end: date, statuses: Optional[Iterable[str]] = None) -> List[PayrollEntry]:
    q = PayrollEntry.query.filter(and_(PayrollEntry.period_start == start, PayrollEntry.period_end == end))
    if statuses:
        q = q.filter(PayrollEntry.status.in_(list(statuses)))
    return q.order_by(PayrollEntry.employee_id.asc()).all()


def transition_status(model, row_id: int, from_status, to_status: str, **values) -> bool:
    """
    Atomic guarded status change. `from_status` may be a single status or a
    collection. Returns False when the row was not in the expected state.
    """
    allowed = [from_status] if isinstance(from_status, str) else list(from_status)
    stmt = (
        update(model)
        .where(model.id == row_id, model.status.in_(allowed))
        .values(status=to_status, **values)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1
