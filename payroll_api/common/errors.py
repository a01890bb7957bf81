# payroll_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError

from payroll_api.common.http import fail
from payroll_api.extensions import db
from payroll_api.services.errors import PayrollError

bp_errors = Blueprint("errors", __name__)


@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    db.session.rollback()
    return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(PayrollError)
def _payroll_error(e: PayrollError):
    db.session.rollback()
    return fail(message=e.message, status=e.http_status, code=e.code, detail=e.detail)

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    db.session.rollback()
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)


def register_error_handlers(app):
    app.register_blueprint(bp_errors)
