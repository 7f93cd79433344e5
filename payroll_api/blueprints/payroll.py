# payroll_api/blueprints/payroll.py
from __future__ import annotations

from flask import Blueprint, request, jsonify

from payroll_api.common.http import ok
from payroll_api.common.paging import paginate, iso_date, arg
from payroll_api.common.errors import InvalidRequest, InvalidDateRange
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.services import payroll_engine
from payroll_api.services.payslip_service import PayslipService
from payroll_api.blueprints.payslips import payslip_row

bp = Blueprint("payroll", __name__, url_prefix="/api/v1/payroll")
svc = PayslipService()


def _f(x):
    return float(x) if x is not None else None


# ---------- row shape ----------
def payroll_row(x: Payroll):
    return {
        "id": x.id,
        "employeeId": x.employee_id,
        "employeeName": x.employee.full_name if x.employee else None,
        "departmentId": x.department_id,
        "departmentName": x.department.name if x.department else None,
        "payPeriodStart": x.pay_period_start.isoformat(),
        "payPeriodEnd": x.pay_period_end.isoformat(),
        "compensationType": x.compensation_type,
        "regularHours": _f(x.regular_hours),
        "overtimeHours": _f(x.overtime_hours),
        "grossPay": _f(x.gross_pay),
        "bonusAmount": _f(x.bonus_amount),
        "incomeTax": _f(x.income_tax),
        "professionalTax": _f(x.professional_tax),
        "providentFund": _f(x.provident_fund),
        "esi": _f(x.esi),
        "healthInsurance": _f(x.health_insurance),
        "retirementContribution": _f(x.retirement_contribution),
        "totalDeductions": _f(x.total_deductions),
        "netPay": _f(x.net_pay),
        "processingDate": x.processing_date.isoformat() if x.processing_date else None,
        "paymentMethod": x.payment_method,
        "notes": x.notes,
    }


def _as_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() in ("1", "true", "yes", "y", "on")


def _int_field(payload, *names) -> int:
    raw = arg(payload, *names)
    if raw is None:
        raise InvalidRequest(f"{names[0]} is required")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidRequest(f"{names[0]} must be an integer", payload={names[0]: raw})


def _period(payload):
    raw_start = arg(payload, "payPeriodStart", "pay_period_start")
    raw_end = arg(payload, "payPeriodEnd", "pay_period_end")
    start, end = iso_date(raw_start), iso_date(raw_end)
    if start is None or end is None:
        raise InvalidDateRange("payPeriodStart and payPeriodEnd must be YYYY-MM-DD",
                               payload={"payPeriodStart": raw_start, "payPeriodEnd": raw_end})
    return start, end


# ---------- routes ----------
@bp.post("/process")
def process():
    payload = request.get_json(silent=True) or {}
    employee_id = _int_field(payload, "employeeId", "employee_id")
    start, end = _period(payload)

    payroll = payroll_engine.process_payroll(
        employee_id, start, end,
        apply_bonus=_as_bool(arg(payload, "applyBonus", "apply_bonus")),
        notes=arg(payload, "notes"),
    )
    slip = svc.generate(payroll.id)

    return jsonify({
        "success": True,
        "message": f"Payroll processed for employee {employee_id}",
        "payroll": payroll_row(payroll),
        "payslip": payslip_row(slip),
    }), 201


@bp.get("/<int:payroll_id>")
def get_one(payroll_id: int):
    return ok(payroll_row(payroll_engine.get_payroll(payroll_id)))


@bp.get("/lookup")
def lookup():
    """Payroll for ?employeeId&start&end, if one was processed."""
    employee_id = _int_field(request.args, "employeeId", "employee_id")
    start, end = iso_date(arg(request.args, "start")), iso_date(arg(request.args, "end"))
    if start is None or end is None:
        raise InvalidDateRange("start and end must be YYYY-MM-DD")
    found = payroll_engine.find_payroll(employee_id, start, end)
    return ok(payroll_row(found) if found else None)


@bp.get("/employee/<int:employee_id>")
def by_employee(employee_id: int):
    rows, meta = paginate(payroll_engine.list_payrolls_by_employee(employee_id))
    return ok([payroll_row(x) for x in rows], **meta)


@bp.get("/department/<int:department_id>")
def by_department(department_id: int):
    rows, meta = paginate(payroll_engine.list_payrolls_by_department(department_id))
    return ok([payroll_row(x) for x in rows], **meta)
