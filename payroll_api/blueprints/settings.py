# payroll_api/blueprints/settings.py
from flask import Blueprint

from payroll_api.common.auth import requires_roles
from payroll_api.common.http import ok, fail, json_body
from payroll_api.services.clock import get_clock
from payroll_api.services.payroll_lifecycle import active_period
from payroll_api.services.period import next_period
from payroll_api.services.settings import load_settings, settings_to_dict, update_settings

bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


def _payload():
    s = load_settings()
    return {
        "settings": settings_to_dict(s),
        "period": active_period(s, get_clock()).to_dict(),
        "warnings": s.config_warnings(),
    }


@bp.get("")
@requires_roles("hr", "employee")
def get_settings():
    return ok(_payload())


@bp.put("")
@requires_roles("hr")
def put_settings():
    try:
        update_settings(json_body())
    except ValueError as e:
        return fail(str(e), status=422)
    return ok(_payload())


@bp.post("/next-period")
@requires_roles("hr")
def advance_period():
    """Move the configured period to the next semi-monthly half."""
    start, end = next_period(load_settings(), get_clock())
    update_settings({"period_start": start, "period_end": end})
    return ok(_payload())
