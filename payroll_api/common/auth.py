# payroll_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Optional

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from payroll_api.common.http import fail


def current_roles() -> set[str]:
    claims = get_jwt() or {}
    return set(claims.get("roles") or [])


def current_employee_id() -> Optional[int]:
    """Employee linked to the token, from the `employee_id` claim."""
    claims = get_jwt() or {}
    raw = claims.get("employee_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def is_admin() -> bool:
    return bool(current_roles() & {"admin", "hr"})


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Roles come from the JWT `roles` claim (accounts are issued elsewhere).
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)

            roles = current_roles()
            if "admin" in roles:
                return fn(*args, **kwargs)

            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
