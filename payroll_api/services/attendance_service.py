# payroll_api/services/attendance_service.py
"""
Writes to AttendanceRecord: punches, period provisioning, the absent sweep
and leave approval. Status decisions are delegated to attendance_engine.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
import logging

from sqlalchemy import update

from payroll_api.extensions import db
from payroll_api.models.attendance import (
    AttendanceRecord, PENDING, PRESENT, LATE, ABSENT, ON_LEAVE, NON_WORKING,
)
from payroll_api.models.leave import LeaveRequest
from payroll_api.services import repositories as repo
from payroll_api.services.attendance_engine import DayInput, day_input, effective_status, is_late
from payroll_api.services.clock import Clock, iter_days
from payroll_api.services.errors import InvalidTransition, NotFound
from payroll_api.services.period import ResolvedPeriod
from payroll_api.services.settings import SettingsSnapshot

log = logging.getLogger(__name__)

PUNCH_IN = "in"
PUNCH_OUT = "out"


def normalize_kind(kind: str) -> Optional[str]:
    raw = (kind or "").strip().lower().replace("_", "-")
    if raw in ("in", "time-in", "timein"):
        return PUNCH_IN
    if raw in ("out", "time-out", "timeout"):
        return PUNCH_OUT
    return None


# ---------- punches ----------

def record_punch(employee_id: int, kind: str, settings: SettingsSnapshot, clock: Clock,
                 at: Optional[datetime] = None) -> AttendanceRecord:
    """
    Time-in creates/updates today's record (PRESENT, or LATE when the late
    cutoff is enforced and auto-mark-late is on). Time-out closes the day.
    """
    direction = normalize_kind(kind)
    if direction is None:
        raise ValueError("kind must be 'in' or 'out'")
    if repo.get_employee(employee_id) is None:
        raise NotFound(f"employee {employee_id} not found")

    now = clock.localize(at) if at is not None else clock.now()
    today = now.date()

    if repo.leave_days(repo.approved_leaves(employee_id, today, today), today, today):
        raise InvalidTransition("cannot punch during approved leave")

    rec = repo.get_record(employee_id, today, for_update=True)
    if rec is not None and rec.status == ON_LEAVE:
        raise InvalidTransition("cannot punch on a leave day")

    if direction == PUNCH_IN:
        if rec is not None and rec.time_in is not None:
            raise InvalidTransition("already timed in today")
        late = is_late(now, today, settings, clock)
        if rec is None:
            rec = repo.create_record(employee_id, today)
        rec.time_in = clock.to_storage(now)
        if rec.status != NON_WORKING:
            rec.status = LATE if late else PRESENT
    else:
        if rec is None or rec.time_in is None:
            raise InvalidTransition("cannot time out before timing in")
        if rec.time_out is not None:
            raise InvalidTransition("already timed out today")
        rec.time_out = clock.to_storage(now)

    db.session.commit()
    log.info("punch %s employee=%s date=%s status=%s", direction, employee_id, today, rec.status)
    return rec


# ---------- provisioning ----------

def provision_period(period: ResolvedPeriod, clock: Clock, employee_ids: Optional[List[int]] = None) -> dict:
    """
    Create the PENDING rows of a period for every active employee; holidays
    are created as NON_WORKING. Safe to run repeatedly or concurrently:
    existing (employee, date) pairs are skipped.
    """
    ids = employee_ids if employee_ids is not None else [e.id for e in repo.active_employees()]
    start, end = period.period_start, period.period_end
    holidays = repo.holiday_dates(start, end)
    existing = repo.existing_record_keys(ids, start, end)
    leave_by_emp = {
        eid: repo.leave_days(repo.approved_leaves(eid, start, end), start, end)
        for eid in ids
    }

    rows = []
    for eid in ids:
        for d in clock.working_days(start, end):
            if (eid, d) in existing:
                continue
            if d in holidays:
                status = NON_WORKING
            elif d in leave_by_emp[eid]:
                status = ON_LEAVE
            else:
                status = PENDING
            rows.append({"employee_id": eid, "work_date": d, "status": status,
                         "created_at": datetime.utcnow()})

    inserted = repo.insert_missing_records(rows)
    db.session.commit()
    log.info("provisioned %s attendance records for %s..%s (%s employees, %s already present)",
             inserted, start, end, len(ids), len(existing))
    return {"inserted": inserted, "skipped": len(existing), "employees": len(ids)}


# ---------- absent sweep ----------

def auto_mark_absent(settings: SettingsSnapshot, clock: Clock, period: ResolvedPeriod) -> int:
    """
    Persist ABSENT for PENDING rows with no time-in whose time-out cutoff has
    passed. The live engine already reports these as ABSENT; this only makes
    the stored status catch up. Disabled or unset cutoffs mark nothing.
    """
    if not settings.auto_mark_absent or not settings.timeout_enforced:
        log.info("auto-mark-absent skipped (enabled=%s, cutoff=%s)",
                 settings.auto_mark_absent, settings.timeout_enforced)
        return 0

    holidays = repo.holiday_dates(period.period_start, period.capped_end)
    candidates = (
        AttendanceRecord.query
        .filter(
            AttendanceRecord.status == PENDING,
            AttendanceRecord.time_in.is_(None),
            AttendanceRecord.work_date >= period.period_start,
            AttendanceRecord.work_date <= period.capped_end,
        )
        .all()
    )
    ids = [
        r.id for r in candidates
        if effective_status(day_input(r, clock), settings, clock, holidays).status == ABSENT
    ]
    if not ids:
        return 0

    # guarded: a punch that landed after the scan keeps its row out of the update
    res = db.session.execute(
        update(AttendanceRecord)
        .where(
            AttendanceRecord.id.in_(ids),
            AttendanceRecord.status == PENDING,
            AttendanceRecord.time_in.is_(None),
        )
        .values(status=ABSENT, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    log.info("auto-marked %s records ABSENT", res.rowcount)
    return res.rowcount


# ---------- leave ----------

def apply_approved_leave(leave: LeaveRequest) -> int:
    """
    Force ON_LEAVE (punches cleared) for every day of an approved leave span.
    Missing rows are created; running it again changes nothing.
    """
    if leave.status != "approved":
        raise InvalidTransition(f"leave request {leave.id} is {leave.status}, not approved")

    days = list(iter_days(leave.start_date, leave.end_date))
    existing = {
        r.work_date: r
        for r in repo.list_records(leave.employee_id, leave.start_date, leave.end_date)
    }
    touched = 0
    for d in days:
        rec = existing.get(d)
        if rec is None:
            repo.create_record(leave.employee_id, d, status=ON_LEAVE)
            touched += 1
            continue
        if rec.status == ON_LEAVE and rec.time_in is None and rec.time_out is None:
            continue
        rec.status = ON_LEAVE
        rec.time_in = None
        rec.time_out = None
        touched += 1

    db.session.commit()
    log.info("leave %s applied to %s day(s) for employee %s", leave.id, touched, leave.employee_id)
    return touched


# ---------- reads ----------

def live_days(employee_id: int, start: date, end: date, settings: SettingsSnapshot, clock: Clock) -> List[dict]:
    """Stored records with their live effective status."""
    holidays = repo.holiday_dates(start, end)
    out = []
    for r in repo.list_records(employee_id, start, end):
        di: DayInput = day_input(r, clock)
        st = effective_status(di, settings, clock, holidays)
        out.append({
            "id": r.id,
            "employee_id": r.employee_id,
            "work_date": r.work_date.isoformat(),
            "stored_status": r.status,
            "status": st.status,
            "reason": st.reason,
            "warnings": list(st.warnings),
            "time_in": di.time_in.isoformat() if di.time_in else None,
            "time_out": di.time_out.isoformat() if di.time_out else None,
        })
    return out
