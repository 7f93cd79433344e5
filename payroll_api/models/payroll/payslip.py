from datetime import datetime, date

from sqlalchemy import event
from sqlalchemy.orm import object_session

from payroll_api.extensions import db


class PaySlip(db.Model):
    """Issued payslip. Figures live on the referenced Payroll; nothing is copied."""
    __tablename__ = "payslips"

    id = db.Column(db.Integer, primary_key=True)
    payroll_id = db.Column(db.Integer, db.ForeignKey("payrolls.id", ondelete="RESTRICT"), nullable=False)
    payslip_number = db.Column(db.String(64), nullable=False)

    issue_date = db.Column(db.Date, nullable=False, default=date.today)
    payment_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(40), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="GENERATED")
    generated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("payroll_id", name="uq_payslip_payroll"),
        db.UniqueConstraint("payslip_number", name="uq_payslip_number"),
    )

    payroll = db.relationship("Payroll", lazy="joined")


@event.listens_for(PaySlip, "before_update")
def _payslip_is_immutable(mapper, connection, target):
    sess = object_session(target)
    if sess is not None and not sess.is_modified(target, include_collections=False):
        return
    raise ValueError(f"PaySlip {target.payslip_number} is immutable once issued")


@event.listens_for(PaySlip, "before_delete")
def _payslip_is_permanent(mapper, connection, target):
    raise ValueError(f"PaySlip {target.payslip_number} cannot be deleted")
