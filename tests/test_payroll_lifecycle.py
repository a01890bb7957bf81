from datetime import date, datetime, time
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from payroll_api.extensions import db
from payroll_api.models.attendance import AttendanceRecord, PRESENT, ABSENT, PENDING, ON_LEAVE
from payroll_api.models.deduction import Deduction, DeductionType, DISCRETIONARY, MANDATORY
from payroll_api.models.leave import LeaveRequest
from payroll_api.models.loan import Loan, LOAN_ACTIVE, LOAN_COMPLETED
from payroll_api.models.payroll import PayrollEntry, ENTRY_PENDING, ENTRY_RELEASED, ENTRY_ARCHIVED
from payroll_api.services import events
from payroll_api.services import repositories
from payroll_api.services.errors import DataInconsistency, DuplicatePeriod, InvalidTransition
from payroll_api.services.payroll_lifecycle import (
    archive_period, generate_draft, period_between, read_entry, release_entry,
)
from payroll_api.services.settings import load_settings

START, END = date(2025, 1, 1), date(2025, 1, 25)


def _attend(clock, employee_id, absent=()):
    for d in clock.working_days(START, END):
        if d in absent:
            db.session.add(AttendanceRecord(employee_id=employee_id, work_date=d, status=ABSENT))
            continue
        db.session.add(AttendanceRecord(
            employee_id=employee_id, work_date=d, status=PRESENT,
            time_in=clock.to_storage(clock.at(d, time(8, 0))),
            time_out=clock.to_storage(clock.at(d, time(17, 0))),
        ))
    db.session.commit()


@pytest.fixture()
def setup(app, clock, make_settings, make_employee):
    make_settings()
    emp = make_employee(salary="22000")
    _attend(clock, emp.id)
    return emp, load_settings(), period_between(START, END, clock)


def test_draft_then_release(setup, clock):
    emp, settings, period = setup
    entry, bd = generate_draft(emp.id, period, settings, clock)
    assert entry.status == ENTRY_PENDING
    assert entry.breakdown is None
    assert entry.net_pay == Decimal("22000.00")

    again, _ = generate_draft(emp.id, period, settings, clock)
    assert again.id == entry.id

    released, bd = release_entry(entry.id, settings, clock)
    assert released.status == ENTRY_RELEASED
    assert released.released_at is not None
    assert released.breakdown["net_pay"] == str(bd.net_pay)


def test_release_twice_is_rejected_and_snapshot_kept(setup, clock):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)
    release_entry(entry.id, settings, clock)
    snapshot = dict(db.session.get(PayrollEntry, entry.id).breakdown)

    with pytest.raises(InvalidTransition):
        release_entry(entry.id, settings, clock)
    db.session.rollback()
    assert db.session.get(PayrollEntry, entry.id).breakdown == snapshot


def test_released_snapshot_ignores_later_attendance_edits(setup, clock):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)
    _, frozen = release_entry(entry.id, settings, clock)

    rec = AttendanceRecord.query.filter_by(employee_id=emp.id, work_date=date(2025, 1, 6)).one()
    rec.status = ABSENT
    rec.time_in = rec.time_out = None
    db.session.commit()

    shown = read_entry(db.session.get(PayrollEntry, entry.id), settings, clock)
    assert shown.net_pay == frozen.net_pay
    assert shown.attendance_deduction == 0


def test_draft_reflects_attendance_edits(setup, clock):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)

    rec = AttendanceRecord.query.filter_by(employee_id=emp.id, work_date=date(2025, 1, 6)).one()
    rec.status = ABSENT
    rec.time_in = rec.time_out = None
    db.session.commit()

    live = read_entry(db.session.get(PayrollEntry, entry.id), settings, clock)
    assert live.attendance_deduction == Decimal("1000")


def test_released_period_cannot_be_generated_again(setup, clock):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)
    release_entry(entry.id, settings, clock)
    with pytest.raises(DuplicatePeriod):
        generate_draft(emp.id, period, settings, clock)


def test_overlapping_periods_are_rejected(setup, clock):
    emp, settings, period = setup
    generate_draft(emp.id, period, settings, clock)
    with pytest.raises(DuplicatePeriod):
        generate_draft(emp.id, period_between(date(2025, 1, 16), date(2025, 1, 31), clock), settings, clock)


def test_archived_overlap_does_not_block(setup, clock):
    emp, settings, _ = setup
    first = period_between(date(2025, 1, 1), date(2025, 1, 15), clock)
    entry, _ = generate_draft(emp.id, first, settings, clock)
    release_entry(entry.id, settings, clock)
    archive_period(first.period_start, first.period_end, clock)

    other, _ = generate_draft(emp.id, period_between(date(2025, 1, 10), date(2025, 1, 25), clock), settings, clock)
    assert other.status == ENTRY_PENDING


def test_archive_period_keeps_snapshot(setup, clock):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)
    release_entry(entry.id, settings, clock)
    snapshot = dict(db.session.get(PayrollEntry, entry.id).breakdown)

    seen = []

    def _record(sender, **facts):
        seen.append(facts)

    events.period_archived.connect(_record)
    try:
        assert archive_period(START, END, clock) == 1
    finally:
        events.period_archived.disconnect(_record)

    row = db.session.get(PayrollEntry, entry.id)
    assert row.status == ENTRY_ARCHIVED
    assert row.archived_at is not None
    assert row.breakdown == snapshot
    assert seen and seen[0]["count"] == 1
    assert archive_period(START, END, clock) == 0


def test_release_side_effects(setup, clock):
    emp, settings, period = setup
    mandatory = DeductionType(name="SSS", category=MANDATORY, amount=Decimal("500"))
    adhoc = DeductionType(name="Cash advance", category=DISCRETIONARY, amount=Decimal("200"))
    db.session.add_all([mandatory, adhoc])
    db.session.flush()
    sss = Deduction(employee_id=emp.id, deduction_type_id=mandatory.id, amount=Decimal("500"),
                    applied_at=datetime(2024, 12, 1))
    cash = Deduction(employee_id=emp.id, deduction_type_id=adhoc.id, amount=Decimal("200"),
                     applied_at=datetime(2025, 1, 10, 2, 0))
    small = Loan(employee_id=emp.id, amount=Decimal("1000"), balance=Decimal("100"),
                 monthly_payment_percent=Decimal("10"), term_months=10, start_date=date(2024, 6, 1))
    big = Loan(employee_id=emp.id, amount=Decimal("10000"), balance=Decimal("5000"),
               monthly_payment_percent=Decimal("10"), term_months=10, start_date=date(2024, 6, 1))
    db.session.add_all([sss, cash, small, big])
    db.session.commit()

    entry, _ = generate_draft(emp.id, period, settings, clock)
    released, bd = release_entry(entry.id, settings, clock)

    # 22000 - 500 - 200 - 100 - 1000
    assert released.net_pay == Decimal("20200.00")
    assert db.session.get(Deduction, cash.id).archived_at is not None
    assert db.session.get(Deduction, sss.id).archived_at is None

    small_row, big_row = db.session.get(Loan, small.id), db.session.get(Loan, big.id)
    assert small_row.balance == Decimal("0.00") and small_row.status == LOAN_COMPLETED
    assert big_row.balance == Decimal("4000.00") and big_row.status == LOAN_ACTIVE


def test_release_without_personnel_type_is_refused(app, clock, make_settings, make_employee):
    make_settings()
    emp = make_employee(personnel=False)
    settings, period = load_settings(), period_between(START, END, clock)

    entry, bd = generate_draft(emp.id, period, settings, clock)
    assert entry.flags == ["missing_personnel_type"]
    assert bd.net_pay == 0

    with pytest.raises(DataInconsistency):
        release_entry(entry.id, settings, clock)
    db.session.rollback()
    assert db.session.get(PayrollEntry, entry.id).status == ENTRY_PENDING


def _leave_over_pending_row(employee_id, d, paid):
    rec = AttendanceRecord.query.filter_by(employee_id=employee_id, work_date=d).one()
    rec.status = PENDING
    rec.time_in = rec.time_out = None
    db.session.add(LeaveRequest(employee_id=employee_id, start_date=d, end_date=d,
                                is_paid=paid, status="approved"))
    db.session.commit()


def test_paid_leave_approved_after_provisioning_costs_nothing(setup, clock):
    emp, settings, period = setup
    _leave_over_pending_row(emp.id, date(2025, 1, 6), paid=True)

    _, bd = generate_draft(emp.id, period, settings, clock)
    day = next(l for l in bd.days if l.work_date == date(2025, 1, 6))
    assert day.status == ON_LEAVE
    assert day.total_deduction == 0
    assert bd.net_pay == Decimal("22000")


def test_unpaid_leave_over_stored_row_is_charged_once(setup, clock):
    emp, settings, period = setup
    _leave_over_pending_row(emp.id, date(2025, 1, 6), paid=False)

    _, bd = generate_draft(emp.id, period, settings, clock)
    assert bd.attendance_deduction == 0
    assert bd.unpaid_leave_deduction == Decimal("1000")
    assert bd.total_deductions == Decimal("1000")


def test_loan_payment_never_exceeds_balance(setup, clock):
    emp, settings, period = setup
    loan = Loan(employee_id=emp.id, amount=Decimal("10000"), balance=Decimal("50"),
                monthly_payment_percent=Decimal("10"), term_months=10, start_date=date(2024, 6, 1))
    db.session.add(loan)
    db.session.commit()

    entry, _ = generate_draft(emp.id, period, settings, clock)
    released, bd = release_entry(entry.id, settings, clock)

    assert bd.loans[0].payment == Decimal("50")
    assert bd.loan_deduction == Decimal("50")
    assert released.net_pay == Decimal("21950.00")
    row = db.session.get(Loan, loan.id)
    assert row.balance == Decimal("0.00") and row.status == LOAN_COMPLETED


def test_concurrent_release_is_rejected_by_guarded_update(setup, clock, monkeypatch):
    emp, settings, period = setup
    entry, _ = generate_draft(emp.id, period, settings, clock)
    other_snapshot = {"version": 1, "released_by": "other worker"}
    locked_read = repositories.get_entry

    def _read_then_lose_race(entry_id, for_update=False):
        row = locked_read(entry_id, for_update=for_update)
        # another worker releases the row after our read
        db.session.execute(
            update(PayrollEntry)
            .where(PayrollEntry.id == entry_id)
            .values(status=ENTRY_RELEASED, breakdown=other_snapshot)
            .execution_options(synchronize_session=False)
        )
        return row

    monkeypatch.setattr(repositories, "get_entry", _read_then_lose_race)
    with pytest.raises(InvalidTransition):
        release_entry(entry.id, settings, clock)

    stored = db.session.execute(
        select(PayrollEntry.status, PayrollEntry.breakdown).where(PayrollEntry.id == entry.id)
    ).one()
    assert stored.status == ENTRY_RELEASED
    assert stored.breakdown == other_snapshot
