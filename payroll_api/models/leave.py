from datetime import datetime
from payroll_api.extensions import db

class LeaveRequest(db.Model):
    """Approved leave spans are consumed as input; the approval workflow lives elsewhere."""
    __tablename__ = "leave_requests"
    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_paid = db.Column(db.Boolean, nullable=False, default=True)
    reason = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="pending")  # pending|approved|rejected|cancelled
    approved_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_leave_emp_span", "employee_id", "start_date", "end_date"),
    )

    employee = db.relationship("Employee", lazy="joined")
