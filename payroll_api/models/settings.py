from datetime import datetime
from payroll_api.extensions import db

class AttendanceSettings(db.Model):
    """
    Admin-configured singleton (id=1).

    Windows are organisation-local wall-clock times. Leaving a window unset
    or raising a `no_*_cutoff` flag disables the matching penalty.
    """
    __tablename__ = "attendance_settings"

    id = db.Column(db.Integer, primary_key=True)
    time_in_start  = db.Column(db.Time, nullable=True)
    time_in_end    = db.Column(db.Time, nullable=True)
    time_out_start = db.Column(db.Time, nullable=True)
    time_out_end   = db.Column(db.Time, nullable=True)

    no_time_in_cutoff  = db.Column(db.Boolean, nullable=False, default=False)
    no_time_out_cutoff = db.Column(db.Boolean, nullable=False, default=False)

    period_start = db.Column(db.Date, nullable=True)
    period_end   = db.Column(db.Date, nullable=True)

    auto_mark_absent = db.Column(db.Boolean, nullable=False, default=True)
    auto_mark_late   = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
