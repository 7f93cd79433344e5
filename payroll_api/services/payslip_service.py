from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Dict, Any, Optional, Tuple
import logging
import re

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.models.payroll.payslip import PaySlip
from payroll_api.common.errors import (
    AlreadyIssued, PayrollNotFound, PaySlipNotFound, Unavailable,
)

log = logging.getLogger(__name__)

PAYSLIP_NUMBER_RE = re.compile(r"^PS-(\d{6,})-(\d{8})_(\d{8})-(\d{4,})$")

DEDUCTION_LABELS = (
    ("income_tax", "INCOME_TAX", "Income Tax"),
    ("professional_tax", "PT", "Professional Tax"),
    ("provident_fund", "PF_EMP", "Provident Fund"),
    ("esi", "ESI_EMP", "Employee State Insurance"),
    ("health_insurance", "HEALTH", "Health Insurance"),
    ("retirement_contribution", "RETIREMENT", "Retirement Contribution"),
)


@dataclass
class PayslipComponent:
    code: str
    name: str
    amount: Decimal


@dataclass
class PayslipDTO:
    payslip: Dict[str, Any]
    employee: Dict[str, Any]
    period: Dict[str, Any]
    hours: Dict[str, Any]
    earnings: List[PayslipComponent]
    deductions: List[PayslipComponent]
    totals: Dict[str, Any]


# ---------- numbering ----------

def format_payslip_number(employee_id: int, start: date, end: date, sequence: int) -> str:
    return f"PS-{employee_id:06d}-{start:%Y%m%d}_{end:%Y%m%d}-{sequence:04d}"


def parse_payslip_number(number: str) -> Tuple[int, date, date, int]:
    """Recover (employee_id, period_start, period_end, sequence) from a payslip number."""
    m = PAYSLIP_NUMBER_RE.match(number or "")
    if not m:
        raise ValueError(f"not a payslip number: {number!r}")
    emp, start, end, seq = m.groups()
    return (
        int(emp),
        datetime.strptime(start, "%Y%m%d").date(),
        datetime.strptime(end, "%Y%m%d").date(),
        int(seq),
    )


def add_business_days(d: date, days: int) -> date:
    """Move forward `days` weekdays (Mon-Fri)."""
    out = d
    remaining = max(int(days), 0)
    while remaining:
        out += timedelta(days=1)
        if out.weekday() < 5:
            remaining -= 1
    return out


def _money(x) -> float:
    return float(Decimal(str(x or 0)))


class PayslipService:
    """Issues payslips from processed payrolls and serves them back; never recomputes figures."""

    def next_sequence(self, employee_id: int) -> int:
        issued = (db.session.query(PaySlip.id)
                  .join(Payroll, Payroll.id == PaySlip.payroll_id)
                  .filter(Payroll.employee_id == employee_id)
                  .count())
        return issued + 1

    def generate(self, payroll_id: int, issue_date: Optional[date] = None,
                 payment_date: Optional[date] = None, payment_method: Optional[str] = None) -> PaySlip:
        payroll = db.session.get(Payroll, payroll_id)
        if payroll is None:
            raise PayrollNotFound(payroll_id)

        cfg = current_app.config
        issue_date = issue_date or date.today()
        if payment_date is None:
            payment_date = add_business_days(issue_date, cfg.get("PAYSLIP_PAYMENT_OFFSET_BUSINESS_DAYS", 2))

        slip = PaySlip(
            payroll_id=payroll.id,
            payslip_number=format_payslip_number(
                payroll.employee_id, payroll.pay_period_start, payroll.pay_period_end,
                self.next_sequence(payroll.employee_id),
            ),
            issue_date=issue_date,
            payment_date=payment_date,
            payment_method=payment_method or payroll.payment_method
                           or cfg.get("PAYSLIP_DEFAULT_PAYMENT_METHOD", "Bank Transfer"),
            status="GENERATED",
            generated_at=datetime.utcnow(),
        )

        try:
            db.session.add(slip)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            log.warning("payslip already issued for payroll %s", payroll_id)
            raise AlreadyIssued(f"A payslip was already issued for payroll {payroll_id}",
                                payload={"payroll_id": payroll_id})
        except SQLAlchemyError as e:
            db.session.rollback()
            raise Unavailable("Could not store payslip", payload=str(e))

        log.info("payslip %s issued for payroll %s", slip.payslip_number, payroll_id)
        return slip

    def get(self, payslip_id: int) -> PaySlip:
        slip = db.session.get(PaySlip, payslip_id)
        if slip is None:
            raise PaySlipNotFound("PaySlip", "id", payslip_id)
        return slip

    def for_payroll(self, payroll_id: int) -> Optional[PaySlip]:
        return PaySlip.query.filter(PaySlip.payroll_id == payroll_id).first()

    def latest_for_employee(self, employee_id: int) -> PaySlip:
        """Slip of the payroll with the latest period end; ties go to the latest issue date."""
        slip = (PaySlip.query
                .join(Payroll, Payroll.id == PaySlip.payroll_id)
                .filter(Payroll.employee_id == employee_id)
                .order_by(Payroll.pay_period_end.desc(), PaySlip.issue_date.desc(), PaySlip.id.desc())
                .first())
        if slip is None:
            raise PaySlipNotFound("PaySlip", "employee_id", employee_id)
        return slip

    def list_for_employee(self, employee_id: int):
        return (PaySlip.query
                .join(Payroll, Payroll.id == PaySlip.payroll_id)
                .filter(Payroll.employee_id == employee_id)
                .order_by(PaySlip.issue_date.desc(), PaySlip.id.desc()))

    def list_all(self):
        return PaySlip.query.order_by(PaySlip.issue_date.desc(), PaySlip.id.desc())

    def build_payslip_dto(self, slip: PaySlip) -> dict:
        """
        Display payload for one payslip. Every amount is read from the stored
        payroll row.
        """
        p = slip.payroll
        emp = p.employee
        dept = p.department

        earnings = [PayslipComponent("BASIC" if p.compensation_type == "SALARIED" else "WAGES",
                                     "Salary" if p.compensation_type == "SALARIED" else "Hourly Wages",
                                     Decimal(str(p.gross_pay)) - Decimal(str(p.bonus_amount or 0)))]
        if p.bonus_amount and Decimal(str(p.bonus_amount)) > 0:
            earnings.append(PayslipComponent("BONUS", "Bonus", Decimal(str(p.bonus_amount))))

        deductions = [PayslipComponent(code, name, Decimal(str(getattr(p, field))))
                      for field, code, name in DEDUCTION_LABELS]

        dto = PayslipDTO(
            payslip={
                "id": slip.id,
                "payslipNumber": slip.payslip_number,
                "issueDate": slip.issue_date.isoformat() if slip.issue_date else None,
                "paymentDate": slip.payment_date.isoformat() if slip.payment_date else None,
                "paymentMethod": slip.payment_method,
                "status": slip.status,
                "payrollId": p.id,
            },
            employee={
                "id": emp.id,
                "code": emp.code,
                "name": emp.full_name,
                "email": emp.email,
                "compensationType": p.compensation_type,
                "departmentId": dept.id if dept else None,
                "department": dept.name if dept else None,
                "costCenter": dept.cost_center if dept else None,
            },
            period={
                "payPeriodStart": p.pay_period_start.isoformat(),
                "payPeriodEnd": p.pay_period_end.isoformat(),
                "processingDate": p.processing_date.isoformat() if p.processing_date else None,
            },
            hours={
                "regularHours": _money(p.regular_hours),
                "overtimeHours": _money(p.overtime_hours),
            },
            earnings=earnings,
            deductions=deductions,
            totals={
                "grossPay": _money(p.gross_pay),
                "totalDeductions": _money(p.total_deductions),
                "netPay": _money(p.net_pay),
            },
        )
        out = asdict(dto)
        for key in ("earnings", "deductions"):
            for c in out[key]:
                c["amount"] = _money(c["amount"])
        return out


_default = PayslipService()


def generate_payslip(payroll_id: int, issue_date: Optional[date] = None,
                     payment_date: Optional[date] = None, payment_method: Optional[str] = None) -> PaySlip:
    return _default.generate(payroll_id, issue_date, payment_date, payment_method)


def get_payslip(payslip_id: int) -> PaySlip:
    return _default.get(payslip_id)


def get_latest_payslip_by_employee(employee_id: int) -> PaySlip:
    return _default.latest_for_employee(employee_id)


def list_payslips_by_employee(employee_id: int) -> List[PaySlip]:
    return _default.list_for_employee(employee_id).all()


def list_payslips() -> List[PaySlip]:
    return _default.list_all().all()


def build_payslip_dto(slip: PaySlip) -> dict:
    return _default.build_payslip_dto(slip)
