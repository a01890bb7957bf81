from datetime import datetime
from decimal import Decimal

import pytest

from payroll_api.extensions import db
from payroll_api.models.deduction import (
    Deduction, DeductionType, ATTENDANCE, MANDATORY, DISCRETIONARY, PERCENTAGE,
)
from payroll_api.models.payroll import PayrollEntry, ENTRY_RELEASED
from payroll_api.services.deductions import (
    apply_deduction, archive_released_deductions, sync_mandatory_deductions,
)
from payroll_api.services.errors import DataInconsistency, InvalidTransition


def _type(**kw):
    t = DeductionType(**kw)
    db.session.add(t)
    db.session.commit()
    return t


def test_percentage_amount_is_snapshotted(app, clock, make_employee):
    emp = make_employee(salary="20000")
    t = _type(name="Pag-IBIG", category=DISCRETIONARY, calculation_type=PERCENTAGE,
              percentage_value=Decimal("2.5"))
    d = apply_deduction(emp.id, t.id, clock)
    assert d.amount == Decimal("500.00")

    emp.personnel_type.basic_salary = Decimal("40000")
    db.session.commit()
    assert db.session.get(Deduction, d.id).amount == Decimal("500.00")


def test_percentage_without_salary_is_refused(app, clock, make_employee):
    emp = make_employee(personnel=False)
    t = _type(name="Tax", category=DISCRETIONARY, calculation_type=PERCENTAGE,
              percentage_value=Decimal("10"))
    with pytest.raises(DataInconsistency):
        apply_deduction(emp.id, t.id, clock)


def test_attendance_types_cannot_be_applied_by_hand(app, clock, make_employee):
    emp = make_employee()
    t = _type(name="Late", category=ATTENDANCE, amount=Decimal("100"))
    with pytest.raises(InvalidTransition):
        apply_deduction(emp.id, t.id, clock)
    assert Deduction.query.count() == 0


def test_sync_mandatory_is_idempotent(app, clock, make_employee):
    make_employee()
    make_employee(personnel=False)
    _type(name="SSS", category=MANDATORY, amount=Decimal("450"))

    first = sync_mandatory_deductions(clock)
    assert first["created"] == 1
    assert first["employees_without_type"] == 1
    assert sync_mandatory_deductions(clock)["created"] == 0


def test_sweep_archives_leftover_discretionary_rows(app, clock, make_employee):
    emp = make_employee()
    adhoc = _type(name="Uniform", category=DISCRETIONARY, amount=Decimal("300"))
    inside = Deduction(employee_id=emp.id, deduction_type_id=adhoc.id, amount=Decimal("300"),
                       applied_at=datetime(2025, 1, 10, 2, 0))
    later = Deduction(employee_id=emp.id, deduction_type_id=adhoc.id, amount=Decimal("300"),
                      applied_at=datetime(2025, 1, 27, 2, 0))
    db.session.add_all([inside, later, PayrollEntry(
        employee_id=emp.id, period_start=datetime(2025, 1, 1).date(),
        period_end=datetime(2025, 1, 25).date(), status=ENTRY_RELEASED,
    )])
    db.session.commit()

    assert archive_released_deductions(clock) == 1
    assert db.session.get(Deduction, inside.id).archived_at is not None
    assert db.session.get(Deduction, later.id).archived_at is None


def test_non_finite_amount_is_rejected(app, clock, make_employee):
    emp = make_employee()
    t = _type(name="Canteen", category=DISCRETIONARY, amount=Decimal("100"))
    with pytest.raises(ValueError):
        apply_deduction(emp.id, t.id, clock, amount=Decimal("NaN"))
    assert Deduction.query.count() == 0


def test_api_rejects_non_finite_amounts(client, admin_headers, make_employee):
    emp = make_employee()
    t = _type(name="Canteen", category=DISCRETIONARY, amount=Decimal("100"))
    for raw in ("NaN", "Infinity", "-inf"):
        r = client.post("/api/v1/deductions", headers=admin_headers,
                        json={"employee_id": emp.id, "deduction_type_id": t.id, "amount": raw})
        assert r.status_code == 422
    assert Deduction.query.count() == 0
