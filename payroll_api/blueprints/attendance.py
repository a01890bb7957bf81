# payroll_api/blueprints/attendance.py
from __future__ import annotations

from flask import Blueprint, request

from payroll_api.common.auth import requires_roles, current_employee_id, is_admin
from payroll_api.common.http import ok, fail, json_body, parse_date
from payroll_api.extensions import db
from payroll_api.models.leave import LeaveRequest
from payroll_api.services import attendance_service as svc
from payroll_api.services.clock import get_clock
from payroll_api.services.payroll_lifecycle import active_period, period_between
from payroll_api.services.settings import load_settings

bp = Blueprint("attendance", __name__, url_prefix="/api/v1/attendance")


def _target_employee(raw) -> int | None:
    """Admins may act for anyone; everyone else only for themselves."""
    own = current_employee_id()
    if raw in (None, ""):
        return own
    try:
        eid = int(raw)
    except (TypeError, ValueError):
        return None
    if eid != own and not is_admin():
        return None
    return eid


def _row(rec):
    clock = get_clock()
    ti, to = clock.from_storage(rec.time_in), clock.from_storage(rec.time_out)
    return {
        "id": rec.id,
        "employee_id": rec.employee_id,
        "work_date": rec.work_date.isoformat(),
        "status": rec.status,
        "time_in": ti.isoformat() if ti else None,
        "time_out": to.isoformat() if to else None,
    }


@bp.post("/punch")
@requires_roles("employee", "hr")
def punch():
    j = json_body()
    eid = _target_employee(j.get("employee_id"))
    if eid is None:
        return fail("employee_id missing or not allowed", status=403)
    try:
        rec = svc.record_punch(eid, j.get("kind") or j.get("type") or "", load_settings(), get_clock())
    except ValueError as e:
        return fail(str(e), status=422)
    return ok(_row(rec), status=201)


@bp.get("/records")
@requires_roles("employee", "hr")
def records():
    eid = _target_employee(request.args.get("employee_id"))
    if eid is None:
        return fail("employee_id missing or not allowed", status=403)

    settings, clock = load_settings(), get_clock()
    period = active_period(settings, clock)
    start = parse_date(request.args.get("from")) or period.period_start
    end = parse_date(request.args.get("to")) or period.period_end
    if end < start:
        return fail("to must be >= from", status=422)
    return ok(svc.live_days(eid, start, end, settings, clock), period=period.to_dict())


@bp.post("/provision")
@requires_roles("hr")
def provision():
    j = json_body()
    clock = get_clock()
    start, end = parse_date(j.get("period_start")), parse_date(j.get("period_end"))
    if bool(start) != bool(end):
        return fail("period_start and period_end go together", status=422)
    period = period_between(start, end, clock) if start else active_period(clock=clock)
    return ok(svc.provision_period(period, clock), period=period.to_dict())


@bp.post("/auto-mark-absent")
@requires_roles("hr")
def auto_mark_absent():
    settings, clock = load_settings(), get_clock()
    period = active_period(settings, clock)
    marked = svc.auto_mark_absent(settings, clock, period)
    return ok({"marked": marked}, period=period.to_dict())


@bp.post("/leave/<int:leave_id>/apply")
@requires_roles("hr")
def apply_leave(leave_id: int):
    leave = db.session.get(LeaveRequest, leave_id)
    if leave is None:
        return fail("Leave request not found", status=404)
    return ok({"leave_id": leave.id, "days_updated": svc.apply_approved_leave(leave)})
