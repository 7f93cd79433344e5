import threading
from datetime import date
from decimal import Decimal

import pytest

from payroll_api.extensions import db
from payroll_api.common.errors import APIError, AlreadyIssued, PayrollNotFound, PaySlipNotFound
from payroll_api.models.payroll.payslip import PaySlip
from payroll_api.services.payroll_engine import process_payroll
from payroll_api.services.payslip_service import (
    add_business_days, build_payslip_dto, generate_payslip, get_latest_payslip_by_employee,
    get_payslip, list_payslips, list_payslips_by_employee, parse_payslip_number,
)


def test_generate_numbers_and_dates(worked_example):
    p = process_payroll(worked_example.id, date(2025, 9, 1), date(2025, 9, 15))
    slip = generate_payslip(p.id, issue_date=date(2025, 9, 19))

    assert slip.payslip_number == f"PS-{worked_example.id:06d}-20250901_20250915-0001"
    assert slip.issue_date == date(2025, 9, 19)
    assert slip.payment_date == date(2025, 9, 23)     # Friday + 2 business days
    assert slip.payment_method == "Bank Transfer"
    assert slip.status == "GENERATED"
    assert parse_payslip_number(slip.payslip_number) == (
        worked_example.id, date(2025, 9, 1), date(2025, 9, 15), 1,
    )


def test_explicit_payment_fields(worked_example):
    p = process_payroll(worked_example.id, date(2025, 9, 1), date(2025, 9, 15))
    slip = generate_payslip(p.id, issue_date=date(2025, 9, 16), payment_date=date(2025, 9, 30),
                            payment_method="Cheque")
    assert slip.payment_date == date(2025, 9, 30)
    assert slip.payment_method == "Cheque"


def test_one_payslip_per_payroll(worked_example):
    p = process_payroll(worked_example.id, date(2025, 9, 1), date(2025, 9, 15))
    generate_payslip(p.id)
    with pytest.raises(AlreadyIssued):
        generate_payslip(p.id)
    assert PaySlip.query.count() == 1


def test_unknown_payroll(app):
    with pytest.raises(PayrollNotFound):
        generate_payslip(31337)


def test_sequence_is_per_employee(make_employee):
    a = make_employee(compensation_type="SALARIED")
    b = make_employee(compensation_type="SALARIED")
    aug = process_payroll(a.id, date(2025, 8, 1), date(2025, 8, 31))
    sep = process_payroll(a.id, date(2025, 9, 1), date(2025, 9, 30))
    other = process_payroll(b.id, date(2025, 9, 1), date(2025, 9, 30))

    assert generate_payslip(aug.id).payslip_number.endswith("-0001")
    assert generate_payslip(sep.id).payslip_number.endswith("-0002")
    assert generate_payslip(other.id).payslip_number.endswith("-0001")
    assert len(list_payslips_by_employee(a.id)) == 2
    assert len(list_payslips()) == 3


def test_latest_follows_pay_period_not_issue_order(make_employee):
    emp = make_employee(compensation_type="SALARIED")
    sep = process_payroll(emp.id, date(2025, 9, 1), date(2025, 9, 30))
    aug = process_payroll(emp.id, date(2025, 8, 1), date(2025, 8, 31))

    sep_slip = generate_payslip(sep.id, issue_date=date(2025, 10, 1))
    generate_payslip(aug.id, issue_date=date(2025, 10, 5))   # late re-issue of an older period

    latest = get_latest_payslip_by_employee(emp.id)
    assert latest.id == sep_slip.id
    assert latest.payroll.net_pay == Decimal("47650.00")


def test_latest_without_payslips(make_employee):
    emp = make_employee()
    with pytest.raises(PaySlipNotFound) as ei:
        get_latest_payslip_by_employee(emp.id)
    assert ei.value.code == "PAYSLIP_NOT_FOUND"
    assert ei.value.status_code == 404


def test_dto_reads_stored_figures(worked_example):
    p = process_payroll(worked_example.id, date(2025, 9, 1), date(2025, 9, 15))
    slip = generate_payslip(p.id, issue_date=date(2025, 9, 19))

    dto = build_payslip_dto(get_payslip(slip.id))
    assert dto["payslip"]["payslipNumber"] == slip.payslip_number
    assert dto["employee"]["department"] == "Operations"
    assert dto["period"] == {"payPeriodStart": "2025-09-01", "payPeriodEnd": "2025-09-15",
                             "processingDate": date.today().isoformat()}
    assert dto["hours"] == {"regularHours": 150.0, "overtimeHours": 10.0}
    assert dto["earnings"] == [{"code": "WAGES", "name": "Hourly Wages", "amount": 4125.0}]
    assert {d["code"]: d["amount"] for d in dto["deductions"]}["ESI_EMP"] == 30.94
    assert round(sum(d["amount"] for d in dto["deductions"]), 2) == 1577.19
    assert dto["totals"] == {"grossPay": 4125.0, "totalDeductions": 1577.19, "netPay": 2547.81}


def test_payslips_are_immutable(worked_example):
    p = process_payroll(worked_example.id, date(2025, 9, 1), date(2025, 9, 15))
    slip = generate_payslip(p.id)
    slip.payment_method = "Cash"
    with pytest.raises(ValueError):
        db.session.commit()
    db.session.rollback()
    assert get_payslip(slip.id).payment_method == "Bank Transfer"


def test_add_business_days():
    assert add_business_days(date(2025, 9, 15), 2) == date(2025, 9, 17)   # Mon -> Wed
    assert add_business_days(date(2025, 9, 20), 1) == date(2025, 9, 22)   # Sat -> Mon
    assert add_business_days(date(2025, 9, 19), 0) == date(2025, 9, 19)


def test_parse_rejects_foreign_numbers():
    with pytest.raises(ValueError):
        parse_payslip_number("INV-2025-0001")


def test_concurrent_generation_issues_one_payslip(file_app, file_worked_example):
    payroll_id = process_payroll(file_worked_example, date(2025, 9, 1), date(2025, 9, 15)).id
    db.session.remove()

    n = 6
    barrier = threading.Barrier(n)
    results, lock = [], threading.Lock()

    def worker():
        with file_app.app_context():
            barrier.wait()
            try:
                outcome = ("ok", generate_payslip(payroll_id).id)
            except Exception as e:  # collected and asserted below
                outcome = ("err", e)
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    wins = [r[1] for r in results if r[0] == "ok"]
    errors = [r[1] for r in results if r[0] == "err"]
    assert len(results) == n
    assert len(wins) == 1
    assert all(isinstance(e, APIError) for e in errors), errors

    db.session.expire_all()
    assert PaySlip.query.count() == 1
    slip = PaySlip.query.one()
    assert slip.id == wins[0]
    assert slip.payroll_id == payroll_id
    assert slip.payslip_number.endswith("-0001")
