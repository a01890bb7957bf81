# payroll_api/blueprints/health.py
from flask import Blueprint
from sqlalchemy import text

from payroll_api.common.http import ok, fail
from payroll_api.extensions import db
from payroll_api.services.clock import get_clock

bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@bp.get("")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        return fail("database unavailable", status=503, detail=str(e))
    clock = get_clock()
    return ok({"status": "ok", "now": clock.now().isoformat(), "today": clock.today().isoformat()})
