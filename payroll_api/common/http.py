# payroll_api/common/http.py
from datetime import date
from decimal import Decimal
from typing import Optional

from flask import jsonify, request

def ok(data=None, status=200, **meta):
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status

def fail(message="Bad Request", status=400, code=None, detail=None, errors=None):
    err = {"message": message}
    if code: err["code"] = code
    if detail: err["detail"] = detail
    if errors: err["errors"] = errors
    return jsonify({"success": False, "error": err}), status


def json_body() -> dict:
    return request.get_json(silent=True) or {}

def parse_date(s) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(str(s))
    except ValueError:
        return None

def parse_decimal(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    try:
        d = Decimal(str(x))
    except Exception:
        return None
    # NaN / Infinity are not amounts
    return d if d.is_finite() else None
