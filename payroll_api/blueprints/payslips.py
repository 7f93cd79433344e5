# payroll_api/blueprints/payslips.py
from __future__ import annotations

from flask import Blueprint, request

from payroll_api.common.http import ok
from payroll_api.common.paging import paginate, iso_date, arg
from payroll_api.common.errors import InvalidRequest
from payroll_api.models.payroll.payslip import PaySlip
from payroll_api.services.payslip_service import PayslipService

bp = Blueprint("payslips", __name__, url_prefix="/api/v1/payslips")
svc = PayslipService()


# ---------- row shape ----------
def payslip_row(x: PaySlip):
    p = x.payroll
    return {
        "id": x.id,
        "payslipNumber": x.payslip_number,
        "payrollId": x.payroll_id,
        "employeeId": p.employee_id if p else None,
        "payPeriodStart": p.pay_period_start.isoformat() if p else None,
        "payPeriodEnd": p.pay_period_end.isoformat() if p else None,
        "issueDate": x.issue_date.isoformat() if x.issue_date else None,
        "paymentDate": x.payment_date.isoformat() if x.payment_date else None,
        "paymentMethod": x.payment_method,
        "status": x.status,
        "netPay": float(p.net_pay) if p else None,
    }


def _date_field(payload, *names):
    raw = arg(payload, *names)
    if raw is None:
        return None
    d = iso_date(raw)
    if d is None:
        raise InvalidRequest(f"{names[0]} must be YYYY-MM-DD", payload={names[0]: raw})
    return d


# ---------- routes ----------
@bp.post("/generate/<int:payroll_id>")
def generate(payroll_id: int):
    payload = request.get_json(silent=True) or {}
    slip = svc.generate(
        payroll_id,
        issue_date=_date_field(payload, "issueDate", "issue_date"),
        payment_date=_date_field(payload, "paymentDate", "payment_date"),
        payment_method=arg(payload, "paymentMethod", "payment_method"),
    )
    return ok(svc.build_payslip_dto(slip), 201)


@bp.get("")
def list_all():
    rows, meta = paginate(svc.list_all())
    return ok([payslip_row(x) for x in rows], **meta)


@bp.get("/<int:payslip_id>")
def get_one(payslip_id: int):
    return ok(svc.build_payslip_dto(svc.get(payslip_id)))


@bp.get("/employee/<int:employee_id>")
def by_employee(employee_id: int):
    rows, meta = paginate(svc.list_for_employee(employee_id))
    return ok([payslip_row(x) for x in rows], **meta)


@bp.get("/employee/<int:employee_id>/latest")
def latest_for_employee(employee_id: int):
    return ok(svc.build_payslip_dto(svc.latest_for_employee(employee_id)))
