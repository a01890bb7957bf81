from datetime import datetime
from payroll_api.extensions import db

LOAN_ACTIVE = "ACTIVE"
LOAN_COMPLETED = "COMPLETED"
LOAN_DEFAULTED = "DEFAULTED"


class Loan(db.Model):
    __tablename__ = "loans"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    balance = db.Column(db.Numeric(14, 2), nullable=False)
    monthly_payment_percent = db.Column(db.Numeric(7, 4), nullable=False)
    term_months = db.Column(db.Integer, nullable=False)
    purpose = db.Column(db.String(255))
    status = db.Column(db.Enum(LOAN_ACTIVE, LOAN_COMPLETED, LOAN_DEFAULTED, name="loan_status_enum"),
                       nullable=False, default=LOAN_ACTIVE)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, onupdate=datetime.utcnow)
