from datetime import datetime
from payroll_api.extensions import db

# Attendance day statuses
PENDING = "PENDING"
PRESENT = "PRESENT"
LATE = "LATE"
ABSENT = "ABSENT"
PARTIAL = "PARTIAL"
ON_LEAVE = "ON_LEAVE"
NON_WORKING = "NON_WORKING"

ATTENDANCE_STATUSES = (PENDING, PRESENT, LATE, ABSENT, PARTIAL, ON_LEAVE, NON_WORKING)


class Holiday(db.Model):
    __tablename__ = "holidays"
    id = db.Column(db.Integer, primary_key=True)
    date        = db.Column(db.Date, nullable=False, unique=True)
    name        = db.Column(db.String(120), nullable=False)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class AttendanceRecord(db.Model):
    """
    One row per (employee, calendar day).

    `time_in` / `time_out` are stored as naive UTC; `work_date` is the
    organisation-local calendar day the punches belong to.
    """
    __tablename__ = "attendance_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    work_date   = db.Column(db.Date, nullable=False)
    status      = db.Column(db.Enum(*ATTENDANCE_STATUSES, name="attendance_status_enum"),
                            nullable=False, default=PENDING)
    time_in     = db.Column(db.DateTime, nullable=True)
    time_out    = db.Column(db.DateTime, nullable=True)
    notes       = db.Column(db.String(255))

    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at  = db.Column(db.DateTime, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "work_date", name="uq_attendance_employee_date"),
        db.Index("ix_attendance_work_date", "work_date"),
    )

    employee = db.relationship("Employee", lazy="joined")
