# payroll_api/blueprints/deductions.py
from flask import Blueprint

from payroll_api.common.auth import requires_roles
from payroll_api.common.http import ok, fail, json_body, parse_decimal
from payroll_api.services import deductions as svc
from payroll_api.services.clock import get_clock

bp = Blueprint("deductions", __name__, url_prefix="/api/v1/deductions")


def _row(d):
    return {
        "id": d.id,
        "employee_id": d.employee_id,
        "deduction_type_id": d.deduction_type_id,
        "type": d.deduction_type.name if d.deduction_type else None,
        "category": d.deduction_type.category if d.deduction_type else None,
        "amount": str(d.amount),
        "notes": d.notes,
        "applied_at": get_clock().from_storage(d.applied_at).isoformat() if d.applied_at else None,
        "archived_at": d.archived_at.isoformat() if d.archived_at else None,
    }


@bp.post("")
@requires_roles("hr")
def apply_deduction():
    j = json_body()
    try:
        employee_id = int(j.get("employee_id"))
        type_id = int(j.get("deduction_type_id"))
    except (TypeError, ValueError):
        return fail("employee_id and deduction_type_id are required integers", status=422)
    amount = parse_decimal(j.get("amount"))
    if j.get("amount") not in (None, "") and amount is None:
        return fail("amount must be a number", status=422)
    try:
        d = svc.apply_deduction(employee_id, type_id, get_clock(), amount=amount, notes=j.get("notes"))
    except ValueError as e:
        return fail(str(e), status=422)
    return ok(_row(d), status=201)


@bp.post("/sync-mandatory")
@requires_roles("hr")
def sync_mandatory():
    return ok(svc.sync_mandatory_deductions(get_clock()))
