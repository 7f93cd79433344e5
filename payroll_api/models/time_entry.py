# payroll_api/models/time_entry.py
from datetime import datetime

from payroll_api.extensions import db

TIME_ENTRY_STATUSES = ("PENDING", "APPROVED", "REJECTED")
TIME_ENTRY_SOURCES = ("MANUAL", "TIMESHEET", "BIOMETRIC", "API")


class TimeEntry(db.Model):
    """
    One day of worked hours for an employee, as captured by a single source
    (manual form, timesheet upload, biometric device, API feed).

    Only the approval columns change after insert. Once a payroll consumes the
    row (see PayrollTimeEntry) it is frozen.
    """
    __tablename__ = "time_entries"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)

    entry_date = db.Column(db.Date, nullable=False)
    clock_in = db.Column(db.DateTime, nullable=True)
    clock_out = db.Column(db.DateTime, nullable=True)
    regular_hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    overtime_hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)

    source = db.Column(db.Enum(*TIME_ENTRY_SOURCES, name="time_entry_source_enum"), nullable=False, default="MANUAL")
    source_reference = db.Column(db.String(100), nullable=True)
    status = db.Column(db.Enum(*TIME_ENTRY_STATUSES, name="time_entry_status_enum"), nullable=False, default="PENDING")

    notes = db.Column(db.String(255), nullable=True)
    approved_by = db.Column(db.String(100), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    imported_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        # one entry per employee per day per source
        db.UniqueConstraint("employee_id", "entry_date", "source", name="uq_time_entry_emp_date_source"),
        db.CheckConstraint("regular_hours >= 0 AND overtime_hours >= 0", name="ck_time_entry_hours_non_negative"),
        db.Index("ix_time_entry_employee_date", "employee_id", "entry_date"),
        db.Index("ix_time_entry_status", "status"),
    )

    employee = db.relationship("Employee", lazy="joined")
