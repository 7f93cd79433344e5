# payroll_api/services/department_summary.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func

from payroll_api.extensions import db
from payroll_api.models.master import Department
from payroll_api.models.payroll.payroll import Payroll
from payroll_api.common.errors import ResourceNotFound, InvalidDateRange
from payroll_api.services.deductions import money


@dataclass
class DepartmentPayrollSummary:
    department_id: int
    department_name: Optional[str]
    cost_center: Optional[str]
    start_date: date
    end_date: date
    payroll_count: int
    total_gross_pay: Decimal
    total_net_pay: Decimal
    total_deductions: Decimal
    total_regular_hours: Decimal
    total_overtime_hours: Decimal

    def to_dict(self) -> dict:
        return {
            "departmentId": self.department_id,
            "departmentName": self.department_name,
            "costCenter": self.cost_center,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "payrollCount": self.payroll_count,
            "totalGrossPay": float(self.total_gross_pay),
            "totalNetPay": float(self.total_net_pay),
            "totalDeductions": float(self.total_deductions),
            "totalRegularHours": float(self.total_regular_hours),
            "totalOvertimeHours": float(self.total_overtime_hours),
        }


def _check_range(start: date, end: date):
    if start is None or end is None:
        raise InvalidDateRange("startDate and endDate are required")
    if end < start:
        raise InvalidDateRange("endDate must be >= startDate",
                               payload={"start": start.isoformat(), "end": end.isoformat()})


def _totals_query(start: date, end: date):
    return (db.session.query(
                Payroll.department_id,
                func.count(Payroll.id),
                func.coalesce(func.sum(Payroll.gross_pay), 0),
                func.coalesce(func.sum(Payroll.net_pay), 0),
                func.coalesce(func.sum(Payroll.total_deductions), 0),
                func.coalesce(func.sum(Payroll.regular_hours), 0),
                func.coalesce(func.sum(Payroll.overtime_hours), 0),
            )
            .filter(Payroll.pay_period_start >= start)
            .filter(Payroll.pay_period_end <= end))


def _summary(dept: Department, start: date, end: date, row=None) -> DepartmentPayrollSummary:
    count, gross, net, ded, reg, ot = (row[1:] if row is not None else (0, 0, 0, 0, 0, 0))
    return DepartmentPayrollSummary(
        department_id=dept.id,
        department_name=dept.name,
        cost_center=dept.cost_center,
        start_date=start,
        end_date=end,
        payroll_count=int(count or 0),
        total_gross_pay=money(gross),
        total_net_pay=money(net),
        total_deductions=money(ded),
        total_regular_hours=money(reg),
        total_overtime_hours=money(ot),
    )


def get_payroll_summary(department_id: int, start: date, end: date) -> DepartmentPayrollSummary:
    """
    Totals over payrolls whose department snapshot matches and whose pay
    period lies entirely inside [start, end]. No matches gives a zeroed summary.
    """
    _check_range(start, end)
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise ResourceNotFound("Department", "id", department_id)

    row = (_totals_query(start, end)
           .filter(Payroll.department_id == department_id)
           .group_by(Payroll.department_id)
           .first())
    return _summary(dept, start, end, row)


def get_all_payroll_summaries(start: date, end: date) -> List[DepartmentPayrollSummary]:
    _check_range(start, end)
    rows = {r[0]: r for r in _totals_query(start, end)
            .filter(Payroll.department_id.isnot(None))
            .group_by(Payroll.department_id)
            .all()}
    return [_summary(d, start, end, rows.get(d.id))
            for d in Department.query.order_by(Department.name.asc()).all()]
