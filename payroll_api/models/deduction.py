from datetime import datetime
from payroll_api.extensions import db

# DeductionType.category
ATTENDANCE = "ATTENDANCE"         # late/absence/partial; always computed live, never summed from rows
MANDATORY = "MANDATORY"           # applies every period
DISCRETIONARY = "DISCRETIONARY"   # ad hoc; counted only inside its period, archived on release

DEDUCTION_CATEGORIES = (ATTENDANCE, MANDATORY, DISCRETIONARY)

FIXED = "FIXED"
PERCENTAGE = "PERCENTAGE"


class DeductionType(db.Model):
    __tablename__ = "deduction_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.String(255))
    category = db.Column(db.Enum(*DEDUCTION_CATEGORIES, name="deduction_category_enum"),
                         nullable=False, default=DISCRETIONARY)
    calculation_type = db.Column(db.Enum(FIXED, PERCENTAGE, name="deduction_calc_enum"),
                                 nullable=False, default=FIXED)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    percentage_value = db.Column(db.Numeric(7, 4), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_mandatory(self) -> bool:
        return self.category == MANDATORY


class Deduction(db.Model):
    """A deduction applied to one employee; `amount` is snapshotted at creation."""
    __tablename__ = "deductions"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    deduction_type_id = db.Column(db.Integer, db.ForeignKey("deduction_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    notes = db.Column(db.String(255))
    applied_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)   # naive UTC
    archived_at = db.Column(db.DateTime, nullable=True)

    deduction_type = db.relationship("DeductionType", lazy="joined")

    __table_args__ = (
        db.Index("ix_deduction_emp_applied", "employee_id", "applied_at"),
    )
