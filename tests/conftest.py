import os
from datetime import datetime, time
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.employee import Employee, PersonnelType
from payroll_api.models.settings import AttendanceSettings
from payroll_api.services.clock import FixedClock

# Monday 27 Jan 2025, 10:00 Manila time
NOW = datetime(2025, 1, 27, 10, 0)


@pytest.fixture()
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config["TESTING"] = True
    app.extensions["payroll_clock"] = FixedClock(NOW)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def clock(app):
    return app.extensions["payroll_clock"]


@pytest.fixture()
def client(app):
    return app.test_client()


def auth_headers(roles, employee_id=None, identity="1"):
    claims = {"roles": list(roles)}
    if employee_id is not None:
        claims["employee_id"] = employee_id
    token = create_access_token(identity=identity, additional_claims=claims)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(app):
    return auth_headers(["admin"])


@pytest.fixture()
def headers_for(app):
    return auth_headers


@pytest.fixture()
def make_settings(app):
    def _make(**overrides):
        values = dict(
            id=1,
            time_in_start=time(8, 0),
            time_in_end=time(9, 0),
            time_out_start=time(17, 0),
            time_out_end=time(18, 0),
            period_start=datetime(2025, 1, 1).date(),
            period_end=datetime(2025, 1, 25).date(),
        )
        values.update(overrides)
        s = AttendanceSettings(**values)
        db.session.add(s)
        db.session.commit()
        return s
    return _make


@pytest.fixture()
def make_employee(app):
    counter = {"n": 0}

    def _make(salary="22000", personnel=True, status="active"):
        counter["n"] += 1
        n = counter["n"]
        pt = None
        if personnel:
            pt = PersonnelType(name=f"Type {n}", basic_salary=Decimal(salary))
            db.session.add(pt)
            db.session.flush()
        emp = Employee(code=f"E{n:03d}", first_name="Emp", last_name=str(n), status=status,
                       personnel_type_id=pt.id if pt else None)
        db.session.add(emp)
        db.session.commit()
        return emp
    return _make
