from datetime import datetime, date
from payroll_api.extensions import db

COMPENSATION_TYPES = ("SALARIED", "HOURLY")
EMPLOYMENT_STATUSES = ("ACTIVE", "ON_LEAVE", "TERMINATED")


class Employee(db.Model):
    """
    Employee master row as maintained by the HR screens. The payroll core
    reads it and never writes it.

    Pay basis is a discriminated pair of column groups:
      SALARIED -> annual_salary (> 0) + bonus_percentage
      HOURLY   -> hourly_rate (> 0) + overtime_rate_multiplier (default 1.5)
    """
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)

    code = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(80), nullable=False)
    last_name = db.Column(db.String(80), nullable=True)
    hire_date = db.Column(db.Date, nullable=True, default=date.today)

    compensation_type = db.Column(db.Enum(*COMPENSATION_TYPES, name="compensation_type_enum"), nullable=False)
    annual_salary = db.Column(db.Numeric(14, 2), nullable=True)
    bonus_percentage = db.Column(db.Numeric(5, 2), nullable=True)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)
    overtime_rate_multiplier = db.Column(db.Numeric(4, 2), nullable=True)

    employment_status = db.Column(db.Enum(*EMPLOYMENT_STATUSES, name="employment_status_enum"),
                                  default="ACTIVE", nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "(compensation_type = 'SALARIED' AND annual_salary IS NOT NULL AND annual_salary > 0 AND hourly_rate IS NULL)"
            " OR (compensation_type = 'HOURLY' AND hourly_rate IS NOT NULL AND hourly_rate > 0 AND annual_salary IS NULL)",
            name="ck_employee_compensation_basis",
        ),
        db.Index("ix_emp_dept_id", "department_id"),
    )

    department = db.relationship("Department", lazy="joined")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()
