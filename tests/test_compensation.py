from decimal import Decimal

import pytest

from payroll_api.common.errors import EmployeeNotEligible, ResourceNotFound
from payroll_api.models.employee import Employee
from payroll_api.services.compensation import (
    HourlyCompensation, SalariedCompensation, eligible_employee, get_employee, resolve_compensation,
)


def test_salaried_resolution(make_employee):
    emp = make_employee(compensation_type="SALARIED", bonus_percentage=None)
    comp = resolve_compensation(emp)
    assert isinstance(comp, SalariedCompensation)
    assert comp.annual_salary == Decimal("720000")
    assert comp.bonus_percentage == Decimal("0")


def test_hourly_default_multiplier(make_employee):
    emp = make_employee(overtime_rate_multiplier=None)
    comp = resolve_compensation(emp)
    assert isinstance(comp, HourlyCompensation)
    assert comp.hourly_rate == Decimal("25.00")
    assert comp.overtime_rate_multiplier == Decimal("1.5")


def test_stored_zero_multiplier_is_not_replaced(make_employee):
    emp = make_employee(overtime_rate_multiplier=Decimal("0"))
    with pytest.raises(EmployeeNotEligible) as ei:
        resolve_compensation(emp)
    assert ei.value.payload == {"employee_id": emp.id, "reason": "invalid_compensation"}


def test_negative_multiplier_is_not_eligible(app):
    emp = Employee(id=97, compensation_type="HOURLY", hourly_rate=Decimal("20"),
                   overtime_rate_multiplier=Decimal("-1.5"))
    with pytest.raises(EmployeeNotEligible) as ei:
        resolve_compensation(emp)
    assert ei.value.payload["reason"] == "invalid_compensation"


def test_mixed_basis_is_not_eligible(app):
    # transient row; the table constraint would refuse to store it
    emp = Employee(id=99, compensation_type="HOURLY", hourly_rate=Decimal("20"), annual_salary=Decimal("1000"))
    with pytest.raises(EmployeeNotEligible) as ei:
        resolve_compensation(emp)
    assert ei.value.payload["reason"] == "invalid_compensation"


def test_missing_rate_is_not_eligible(app):
    emp = Employee(id=98, compensation_type="SALARIED", annual_salary=None)
    with pytest.raises(EmployeeNotEligible):
        resolve_compensation(emp)


def test_terminated_and_unknown_employees(make_employee):
    emp = make_employee(employment_status="TERMINATED")
    with pytest.raises(EmployeeNotEligible) as ei:
        eligible_employee(emp.id)
    assert ei.value.payload["reason"] == "terminated"

    with pytest.raises(EmployeeNotEligible) as ei:
        eligible_employee(123456)
    assert ei.value.payload["reason"] == "not_found"

    with pytest.raises(ResourceNotFound):
        get_employee(123456)


def test_on_leave_is_still_paid(make_employee):
    emp = make_employee(compensation_type="SALARIED", employment_status="ON_LEAVE")
    got, comp = eligible_employee(emp.id)
    assert got.id == emp.id
    assert comp.type == "SALARIED"
