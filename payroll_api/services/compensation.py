from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from payroll_api.extensions import db
from payroll_api.models.employee import Employee
from payroll_api.common.errors import ResourceNotFound, EmployeeNotEligible

DEFAULT_OVERTIME_MULTIPLIER = Decimal("1.5")


@dataclass(frozen=True)
class SalariedCompensation:
    annual_salary: Decimal
    bonus_percentage: Decimal = Decimal("0")
    type: str = "SALARIED"


@dataclass(frozen=True)
class HourlyCompensation:
    hourly_rate: Decimal
    overtime_rate_multiplier: Decimal = DEFAULT_OVERTIME_MULTIPLIER
    type: str = "HOURLY"


Compensation = Union[SalariedCompensation, HourlyCompensation]


def _dec(x) -> Optional[Decimal]:
    if x is None or x == "":
        return None
    try:
        return Decimal(str(x))
    except (InvalidOperation, ValueError):
        return None


def get_employee(employee_id: int) -> Employee:
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        raise ResourceNotFound("Employee", "id", employee_id)
    return emp


def resolve_compensation(emp: Employee) -> Compensation:
    """
    Read the employee's pay basis once and hand back a typed value.
    Callers branch on the returned type and never look at raw rate columns.
    """
    salary = _dec(emp.annual_salary)
    rate = _dec(emp.hourly_rate)

    if emp.compensation_type == "SALARIED":
        if salary is None or salary <= 0 or rate is not None:
            raise EmployeeNotEligible(
                f"Employee {emp.id} has no valid salaried compensation basis",
                payload={"employee_id": emp.id, "reason": "invalid_compensation"},
            )
        bonus = _dec(emp.bonus_percentage) or Decimal("0")
        if bonus < 0:
            raise EmployeeNotEligible(
                f"Employee {emp.id} has a negative bonus percentage",
                payload={"employee_id": emp.id, "reason": "invalid_compensation"},
            )
        return SalariedCompensation(annual_salary=salary, bonus_percentage=bonus)

    if emp.compensation_type == "HOURLY":
        if rate is None or rate <= 0 or salary is not None:
            raise EmployeeNotEligible(
                f"Employee {emp.id} has no valid hourly compensation basis",
                payload={"employee_id": emp.id, "reason": "invalid_compensation"},
            )
        mult = _dec(emp.overtime_rate_multiplier)
        if mult is None:
            mult = DEFAULT_OVERTIME_MULTIPLIER
        elif mult <= 0:
            raise EmployeeNotEligible(
                f"Employee {emp.id} has a non-positive overtime multiplier",
                payload={"employee_id": emp.id, "reason": "invalid_compensation"},
            )
        return HourlyCompensation(hourly_rate=rate, overtime_rate_multiplier=mult)

    raise EmployeeNotEligible(
        f"Employee {emp.id} has unknown compensation type {emp.compensation_type!r}",
        payload={"employee_id": emp.id, "reason": "invalid_compensation"},
    )


def eligible_employee(employee_id: int) -> tuple[Employee, Compensation]:
    """Employee + resolved compensation, or EmployeeNotEligible."""
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        raise EmployeeNotEligible(
            f"Employee {employee_id} does not exist",
            payload={"employee_id": employee_id, "reason": "not_found"},
        )
    if emp.employment_status == "TERMINATED":
        raise EmployeeNotEligible(
            f"Employee {employee_id} is terminated",
            payload={"employee_id": employee_id, "reason": "terminated"},
        )
    return emp, resolve_compensation(emp)
