from datetime import datetime
from payroll_api.extensions import db

ENTRY_PENDING = "PENDING"
ENTRY_RELEASED = "RELEASED"
ENTRY_ARCHIVED = "ARCHIVED"

ENTRY_STATUSES = (ENTRY_PENDING, ENTRY_RELEASED, ENTRY_ARCHIVED)


class PayrollEntry(db.Model):
    """
    One row per (employee, period).

    `basic_salary` is already period-scoped. `breakdown` holds the frozen
    snapshot written at release; it is never rewritten afterwards.
    """
    __tablename__ = "payroll_entries"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    basic_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    overtime = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    deductions = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    net_pay = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.Enum(*ENTRY_STATUSES, name="payroll_entry_status_enum"),
                       nullable=False, default=ENTRY_PENDING)
    breakdown = db.Column(db.JSON, nullable=True)
    flags = db.Column(db.JSON, nullable=True)

    processed_at = db.Column(db.DateTime, nullable=True)
    released_at = db.Column(db.DateTime, nullable=True)
    archived_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        # at most one live entry per (employee, period); archived rows are history
        db.Index(
            "uq_payroll_entry_live_period",
            "employee_id", "period_start", "period_end",
            unique=True,
            sqlite_where=db.text("status != 'ARCHIVED'"),
            postgresql_where=db.text("status != 'ARCHIVED'"),
        ),
        db.Index("ix_payroll_entry_period", "period_start", "period_end"),
    )

    employee = db.relationship("Employee", lazy="joined")
