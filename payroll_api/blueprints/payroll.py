# payroll_api/blueprints/payroll.py
from __future__ import annotations

from flask import Blueprint, request

from payroll_api.common.auth import requires_roles, current_employee_id, is_admin
from payroll_api.common.http import ok, fail, json_body, parse_date, parse_decimal
from payroll_api.common.paging import paginate, sort_params
from payroll_api.extensions import db
from payroll_api.models.payroll import PayrollEntry, ENTRY_STATUSES, ENTRY_PENDING
from payroll_api.services import payroll_lifecycle as lifecycle
from payroll_api.services.breakdown import PayrollBreakdown
from payroll_api.services.clock import get_clock
from payroll_api.services.errors import InvalidTransition
from payroll_api.services.payroll_aggregator import preview_period, summarize
from payroll_api.services.settings import load_settings

bp = Blueprint("payroll", __name__, url_prefix="/api/v1/payroll")


# ---------- helpers ----------
def _period_from(src: dict, clock, required: bool = False):
    start, end = parse_date(src.get("period_start")), parse_date(src.get("period_end"))
    if not start and not end:
        if required:
            return None, "period_start and period_end are required"
        return lifecycle.active_period(clock=clock), None
    if not (start and end):
        return None, "period_start and period_end go together (YYYY-MM-DD)"
    if end < start:
        return None, "period_end must be >= period_start"
    return lifecycle.period_between(start, end, clock), None


def _iso(dt):
    if dt is None:
        return None
    return get_clock().from_storage(dt).isoformat()


def _row_entry(e: PayrollEntry) -> dict:
    return {
        "id": e.id,
        "employee_id": e.employee_id,
        "employee_name": e.employee.full_name if e.employee else None,
        "period_start": e.period_start.isoformat(),
        "period_end": e.period_end.isoformat(),
        "basic_salary": str(e.basic_salary),
        "overtime": str(e.overtime),
        "deductions": str(e.deductions),
        "net_pay": str(e.net_pay),
        "status": e.status,
        "flags": e.flags or [],
        "processed_at": _iso(e.processed_at),
        "released_at": _iso(e.released_at),
        "archived_at": _iso(e.archived_at),
    }


def _row_breakdown(bd: PayrollBreakdown) -> dict:
    return {**bd.to_dict(), "totals": bd.totals(), "status_counts": bd.status_counts}


# ---------- routes ----------
@bp.get("/preview")
@requires_roles("hr")
def preview():
    settings, clock = load_settings(), get_clock()
    period, err = _period_from(request.args, clock)
    if err:
        return fail(err, status=422)
    items = preview_period(period, settings, clock)
    data = [
        {"employee_id": b.employee_id, "employee_name": b.employee_name,
         "totals": b.totals(), "flags": list(b.flags), "status_counts": b.status_counts}
        for b in items
    ]
    return ok(data, period=period.to_dict(), summary=summarize(items))


@bp.post("/generate")
@requires_roles("hr")
def generate():
    j = json_body()
    settings, clock = load_settings(), get_clock()
    period, err = _period_from(j, clock)
    if err:
        return fail(err, status=422)

    if j.get("employee_id") is not None:
        try:
            employee_id = int(j["employee_id"])
        except (TypeError, ValueError):
            return fail("employee_id must be integer", status=422)
        entry, bd = lifecycle.generate_draft(employee_id, period, settings, clock)
        return ok({"entry": _row_entry(entry), "breakdown": _row_breakdown(bd)}, status=201)

    return ok(lifecycle.generate_period(period, settings, clock), period=period.to_dict())


@bp.get("/entries")
@requires_roles("employee", "hr")
def list_entries():
    q = PayrollEntry.query
    if not is_admin():
        q = q.filter(PayrollEntry.employee_id == current_employee_id())
    elif request.args.get("employee_id"):
        try:
            q = q.filter(PayrollEntry.employee_id == int(request.args["employee_id"]))
        except ValueError:
            return fail("employee_id must be integer", status=422)
    status = request.args.get("status")
    if status:
        if status not in ENTRY_STATUSES:
            return fail(f"status must be one of {', '.join(ENTRY_STATUSES)}", status=422)
        q = q.filter(PayrollEntry.status == status)
    start, end = parse_date(request.args.get("period_start")), parse_date(request.args.get("period_end"))
    if start:
        q = q.filter(PayrollEntry.period_start >= start)
    if end:
        q = q.filter(PayrollEntry.period_end <= end)

    order = sort_params({
        "period_start": PayrollEntry.period_start,
        "net_pay": PayrollEntry.net_pay,
        "employee_id": PayrollEntry.employee_id,
    }) or [PayrollEntry.period_start.desc(), PayrollEntry.employee_id.asc()]
    rows, meta = paginate(q.order_by(*order))
    return ok([_row_entry(e) for e in rows], **meta)


@bp.get("/entries/<int:entry_id>")
@requires_roles("employee", "hr")
def get_entry(entry_id: int):
    e = db.session.get(PayrollEntry, entry_id)
    if e is None or (not is_admin() and e.employee_id != current_employee_id()):
        return fail("Payroll entry not found", status=404)
    bd = lifecycle.read_entry(e, load_settings(), get_clock())
    return ok({"entry": _row_entry(e), "breakdown": _row_breakdown(bd),
               "live": e.status == ENTRY_PENDING})


@bp.patch("/entries/<int:entry_id>")
@requires_roles("hr")
def patch_entry(entry_id: int):
    """Only drafts are editable (overtime)."""
    e = db.session.get(PayrollEntry, entry_id)
    if e is None:
        return fail("Payroll entry not found", status=404)
    if e.status != ENTRY_PENDING:
        raise InvalidTransition(f"payroll entry {entry_id} is {e.status}; only PENDING entries are editable")
    overtime = parse_decimal(json_body().get("overtime"))
    if overtime is None or overtime < 0:
        return fail("overtime must be a non-negative number", status=422)
    e.overtime = overtime
    db.session.commit()
    bd = lifecycle.read_entry(e, load_settings(), get_clock())
    return ok({"entry": _row_entry(e), "breakdown": _row_breakdown(bd)})


@bp.post("/entries/<int:entry_id>/release")
@requires_roles("hr")
def release_entry(entry_id: int):
    entry, bd = lifecycle.release_entry(entry_id, load_settings(), get_clock())
    return ok({"entry": _row_entry(entry), "breakdown": _row_breakdown(bd)})


@bp.post("/release")
@requires_roles("hr")
def release_period():
    settings, clock = load_settings(), get_clock()
    period, err = _period_from(json_body(), clock)
    if err:
        return fail(err, status=422)
    return ok(lifecycle.release_period(period, settings, clock), period=period.to_dict())


@bp.post("/archive")
@requires_roles("hr")
def archive_period():
    clock = get_clock()
    period, err = _period_from(json_body(), clock, required=True)
    if err:
        return fail(err, status=422)
    count = lifecycle.archive_period(period.period_start, period.period_end, clock)
    return ok({"archived": count}, period=period.to_dict())
