from datetime import datetime, date

from sqlalchemy import event
from sqlalchemy.orm import object_session

from payroll_api.extensions import db


class Payroll(db.Model):
    """
    Canonical pay computation for one employee over one pay period.

    Written once by the payroll engine and never updated or deleted; a wrong
    figure is corrected by a new record, not by editing this one.
    """
    __tablename__ = "payrolls"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False)
    # department of the employee at processing time
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)

    pay_period_start = db.Column(db.Date, nullable=False)
    pay_period_end = db.Column(db.Date, nullable=False)
    compensation_type = db.Column(db.String(16), nullable=False)

    regular_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(8, 2), nullable=False, default=0)

    gross_pay = db.Column(db.Numeric(14, 2), nullable=False)
    bonus_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    income_tax = db.Column(db.Numeric(14, 2), nullable=False)
    professional_tax = db.Column(db.Numeric(14, 2), nullable=False)
    provident_fund = db.Column(db.Numeric(14, 2), nullable=False)
    esi = db.Column(db.Numeric(14, 2), nullable=False)
    health_insurance = db.Column(db.Numeric(14, 2), nullable=False)
    retirement_contribution = db.Column(db.Numeric(14, 2), nullable=False)
    total_deductions = db.Column(db.Numeric(14, 2), nullable=False)

    net_pay = db.Column(db.Numeric(14, 2), nullable=False)

    processing_date = db.Column(db.Date, nullable=False, default=date.today)
    payment_method = db.Column(db.String(40), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    calc_meta = db.Column(db.JSON)  # rates + inputs used
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "pay_period_start", "pay_period_end", name="uq_payroll_employee_period"),
        db.CheckConstraint("pay_period_start <= pay_period_end", name="ck_payroll_period_order"),
        db.CheckConstraint("net_pay >= 0", name="ck_payroll_net_non_negative"),
        db.Index("ix_payroll_dept_period", "department_id", "pay_period_start", "pay_period_end"),
    )

    employee = db.relationship("Employee", lazy="joined")
    department = db.relationship("Department", lazy="joined")

    @property
    def deduction_components(self) -> dict:
        return {
            "income_tax": self.income_tax,
            "professional_tax": self.professional_tax,
            "provident_fund": self.provident_fund,
            "esi": self.esi,
            "health_insurance": self.health_insurance,
            "retirement_contribution": self.retirement_contribution,
        }


class PayrollTimeEntry(db.Model):
    """Time entry consumed by a payroll. Its existence is what locks the entry."""
    __tablename__ = "payroll_time_entries"

    id = db.Column(db.Integer, primary_key=True)
    payroll_id = db.Column(db.Integer, db.ForeignKey("payrolls.id", ondelete="RESTRICT"), nullable=False, index=True)
    time_entry_id = db.Column(db.Integer, db.ForeignKey("time_entries.id", ondelete="RESTRICT"), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("time_entry_id", name="uq_payroll_time_entry_entry"),
    )

    payroll = db.relationship("Payroll")
    time_entry = db.relationship("TimeEntry", lazy="joined")


@event.listens_for(Payroll, "before_update")
def _payroll_is_immutable(mapper, connection, target):
    sess = object_session(target)
    if sess is not None and not sess.is_modified(target, include_collections=False):
        return
    raise ValueError(f"Payroll {target.id} is immutable once processed")


@event.listens_for(Payroll, "before_delete")
def _payroll_is_permanent(mapper, connection, target):
    raise ValueError(f"Payroll {target.id} cannot be deleted")
