import threading
from datetime import date
from decimal import Decimal

import pytest

from payroll_api.extensions import db
from payroll_api.models.payroll.payroll import Payroll, PayrollTimeEntry
from payroll_api.common.errors import (
    APIError, AlreadyProcessed, DeductionsExceedGross, EmployeeNotEligible, EntryLocked,
    InvalidDateRange, NoApprovedHours, PayrollNotFound,
)
from payroll_api.services import time_entries as ledger
from payroll_api.services.payroll_engine import (
    find_payroll, get_payroll, list_payrolls_by_department, list_payrolls_by_employee,
    process_payroll, whole_months,
)

SEPT_1, SEPT_15, SEPT_30 = date(2025, 9, 1), date(2025, 9, 15), date(2025, 9, 30)


def test_hourly_worked_example(worked_example):
    p = process_payroll(worked_example.id, SEPT_1, SEPT_15)

    assert p.compensation_type == "HOURLY"
    assert p.regular_hours == Decimal("150.00")
    assert p.overtime_hours == Decimal("10.00")
    assert p.gross_pay == Decimal("4125.00")
    assert p.income_tax == Decimal("495.00")
    assert p.professional_tax == Decimal("200.00")
    assert p.provident_fund == Decimal("495.00")
    assert p.esi == Decimal("30.94")
    assert p.health_insurance == Decimal("150.00")
    assert p.retirement_contribution == Decimal("206.25")
    assert p.total_deductions == Decimal("1577.19")
    assert p.net_pay == Decimal("2547.81")
    assert p.department_id == worked_example.department_id
    assert p.processing_date == date.today()
    assert p.calc_meta["basis"] == "hourly"
    assert len(p.calc_meta["time_entry_ids"]) == 15
    assert PayrollTimeEntry.query.filter_by(payroll_id=p.id).count() == 15


def test_pending_and_rejected_hours_are_ignored(worked_example):
    pending = ledger.record_entry(worked_example.id, date(2025, 9, 14), "9", source="TIMESHEET")
    rejected = ledger.record_entry(worked_example.id, date(2025, 9, 15), "9", source="TIMESHEET")
    ledger.set_status(rejected.id, "REJECTED")

    p = process_payroll(worked_example.id, SEPT_1, SEPT_15)
    assert p.gross_pay == Decimal("4125.00")
    assert not ledger.is_locked(pending.id)


def test_hourly_without_approved_hours(make_employee):
    emp = make_employee()
    ledger.record_entry(emp.id, SEPT_1, "8")  # still pending
    with pytest.raises(NoApprovedHours):
        process_payroll(emp.id, SEPT_1, SEPT_15)
    assert Payroll.query.count() == 0


def test_second_run_for_same_period_is_rejected(worked_example):
    first = process_payroll(worked_example.id, SEPT_1, SEPT_15)
    with pytest.raises(AlreadyProcessed):
        process_payroll(worked_example.id, SEPT_1, SEPT_15)
    assert Payroll.query.count() == 1
    assert find_payroll(worked_example.id, SEPT_1, SEPT_15).id == first.id


def test_overlapping_period_cannot_reuse_entries(worked_example, approved_hours):
    process_payroll(worked_example.id, SEPT_1, SEPT_15)
    approved_hours(worked_example.id, date(2025, 9, 16), 5)

    with pytest.raises(EntryLocked):
        process_payroll(worked_example.id, date(2025, 9, 10), date(2025, 9, 20))
    assert Payroll.query.count() == 1

    # the untouched days are still payable on their own
    p = process_payroll(worked_example.id, date(2025, 9, 16), date(2025, 9, 20))
    assert p.regular_hours == Decimal("50.00")
    assert p.gross_pay == Decimal("1250.00")


def test_bad_period(worked_example):
    with pytest.raises(InvalidDateRange):
        process_payroll(worked_example.id, SEPT_15, SEPT_1)


def test_ineligible_employees(make_employee):
    with pytest.raises(EmployeeNotEligible):
        process_payroll(99999, SEPT_1, SEPT_30)

    gone = make_employee(compensation_type="SALARIED", employment_status="TERMINATED")
    with pytest.raises(EmployeeNotEligible):
        process_payroll(gone.id, SEPT_1, SEPT_30)
    assert Payroll.query.count() == 0


def test_salaried_whole_month(make_employee):
    emp = make_employee(compensation_type="SALARIED")
    p = process_payroll(emp.id, SEPT_1, SEPT_30)

    assert p.gross_pay == Decimal("60000.00")
    assert p.bonus_amount == Decimal("0.00")
    assert p.provident_fund == Decimal("1800.00")
    assert p.esi == Decimal("0.00")
    assert p.total_deductions == Decimal("12350.00")
    assert p.net_pay == Decimal("47650.00")
    assert p.calc_meta["basis"] == "monthly"


def test_salaried_bonus(make_employee):
    emp = make_employee(compensation_type="SALARIED")
    p = process_payroll(emp.id, SEPT_1, SEPT_30, apply_bonus=True)
    assert p.bonus_amount == Decimal("6000.00")
    assert p.gross_pay == Decimal("66000.00")
    assert p.net_pay == Decimal("52630.00")


def test_salaried_partial_period_is_prorated_by_day(make_employee):
    emp = make_employee(compensation_type="SALARIED")
    p = process_payroll(emp.id, SEPT_1, SEPT_15)
    assert p.gross_pay == Decimal("29589.04")
    assert p.calc_meta["basis"] == "prorated"


def test_salaried_multi_month(make_employee):
    emp = make_employee(compensation_type="SALARIED")
    p = process_payroll(emp.id, date(2025, 7, 1), SEPT_30)
    assert p.gross_pay == Decimal("180000.00")


def test_whole_months():
    assert whole_months(date(2024, 2, 1), date(2024, 2, 29)) == 1
    assert whole_months(date(2025, 1, 1), date(2025, 12, 31)) == 12
    assert whole_months(date(2025, 1, 2), date(2025, 1, 31)) is None
    assert whole_months(date(2025, 1, 1), date(2025, 1, 30)) is None


def test_deductions_over_gross_store_nothing(app, worked_example):
    app.config["PAYROLL_DEDUCTION_POLICY"] = {"health_insurance_flat": "5000"}
    with pytest.raises(DeductionsExceedGross):
        process_payroll(worked_example.id, SEPT_1, SEPT_15)
    assert Payroll.query.count() == 0
    assert PayrollTimeEntry.query.count() == 0


def test_payroll_rows_are_immutable(worked_example):
    p = process_payroll(worked_example.id, SEPT_1, SEPT_15)
    p.net_pay = Decimal("1.00")
    with pytest.raises(ValueError):
        db.session.commit()
    db.session.rollback()

    with pytest.raises(ValueError):
        db.session.delete(get_payroll(p.id))
        db.session.commit()
    db.session.rollback()

    assert get_payroll(p.id).net_pay == Decimal("2547.81")


def test_reads(worked_example, make_employee):
    p = process_payroll(worked_example.id, SEPT_1, SEPT_15)
    other = make_employee(compensation_type="SALARIED")
    process_payroll(other.id, SEPT_1, SEPT_30)

    assert get_payroll(p.id).id == p.id
    with pytest.raises(PayrollNotFound):
        get_payroll(4242)
    assert [x.id for x in list_payrolls_by_employee(worked_example.id)] == [p.id]
    assert [x.id for x in list_payrolls_by_department(worked_example.department_id)] == [p.id]


def test_concurrent_identical_requests_process_once(file_app, file_worked_example):
    emp_id = file_worked_example
    n = 6
    barrier = threading.Barrier(n)
    results, lock = [], threading.Lock()

    def worker():
        with file_app.app_context():
            barrier.wait()
            try:
                p = process_payroll(emp_id, SEPT_1, SEPT_15)
                outcome = ("ok", p.id)
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

    wins = [r for r in results if r[0] == "ok"]
    errors = [r[1] for r in results if r[0] == "err"]
    assert len(results) == n
    assert len(wins) == 1
    # losers see the unique constraint (or a busy database), never a second payroll
    assert all(isinstance(e, APIError) for e in errors), errors

    db.session.expire_all()
    assert Payroll.query.count() == 1
    assert PayrollTimeEntry.query.count() == 15
    assert Payroll.query.one().net_pay == Decimal("2547.81")
