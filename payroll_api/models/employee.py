from datetime import datetime
from payroll_api.extensions import db

class PersonnelType(db.Model):
    """Catalog entry; `basic_salary` is the monthly salary used by every rate computation."""
    __tablename__ = "personnel_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    basic_salary = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    personnel_type_id = db.Column(db.Integer, db.ForeignKey("personnel_types.id", ondelete="SET NULL"), nullable=True, index=True)

    code  = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    first_name = db.Column(db.String(80), nullable=False)
    last_name  = db.Column(db.String(80), nullable=True)
    status = db.Column(db.String(16), default="active", nullable=False)   # active/inactive

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    personnel_type = db.relationship("PersonnelType", lazy="joined")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def monthly_salary(self):
        """None when no personnel type is attached (flagged by the aggregator)."""
        if self.personnel_type is None:
            return None
        return self.personnel_type.basic_salary
