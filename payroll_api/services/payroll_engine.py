# payroll_api/services/payroll_engine.py
"""
Single calculation path for payroll.

process_payroll() resolves the employee's compensation, derives gross pay
(salaried: monthly or day-prorated; hourly: approved time entries only), applies
the configured DeductionPolicy and writes the Payroll row together with the
links that lock consumed time entries, all in one transaction.

Uniqueness per (employee, period) is left to the database constraint; a
concurrent duplicate loses at insert time and surfaces as AlreadyProcessed.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payroll_api.extensions import db
from payroll_api.models.time_entry import TimeEntry
from payroll_api.models.payroll.payroll import Payroll, PayrollTimeEntry
from payroll_api.common.errors import (
    InvalidDateRange, NoApprovedHours, AlreadyProcessed, EntryLocked, PayrollNotFound, Unavailable,
    DeductionsExceedGross,
)
from payroll_api.services.compensation import (
    SalariedCompensation, HourlyCompensation, Compensation, eligible_employee, get_employee,
)
from payroll_api.services.deductions import (
    DeductionPolicy, compute_deductions, money, net_pay, ZERO,
)

log = logging.getLogger(__name__)

DAYS_PER_YEAR = Decimal("365")
MONTHS_PER_YEAR = Decimal("12")


@dataclass(frozen=True)
class GrossPay:
    gross: Decimal
    bonus: Decimal
    regular_hours: Decimal
    overtime_hours: Decimal
    basis: str  # "monthly" | "prorated" | "hourly"


def current_policy() -> DeductionPolicy:
    return DeductionPolicy.from_mapping(current_app.config.get("PAYROLL_DEDUCTION_POLICY"))


# ---------- period helpers ----------

def whole_months(start: date, end: date) -> Optional[int]:
    """Number of calendar months if [start, end] is made of whole months, else None."""
    if start.day != 1:
        return None
    if end.day != calendar.monthrange(end.year, end.month)[1]:
        return None
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def period_days(start: date, end: date) -> int:
    return (end - start).days + 1


# ---------- gross ----------

def salaried_gross(comp: SalariedCompensation, start: date, end: date, apply_bonus: bool = False) -> Tuple[Decimal, Decimal, str]:
    monthly = comp.annual_salary / MONTHS_PER_YEAR
    months = whole_months(start, end)
    if months is not None:
        base = monthly * months
        basis = "monthly"
    else:
        base = comp.annual_salary * Decimal(period_days(start, end)) / DAYS_PER_YEAR
        basis = "prorated"

    bonus = ZERO
    if apply_bonus and comp.bonus_percentage > 0:
        bonus = money(monthly * comp.bonus_percentage / Decimal("100"))

    return money(base + bonus), bonus, basis


def hourly_gross(comp: HourlyCompensation, regular: Decimal, overtime: Decimal) -> Decimal:
    return money(comp.hourly_rate * regular + comp.hourly_rate * comp.overtime_rate_multiplier * overtime)


def approved_entries(employee_id: int, start: date, end: date, for_update: bool = False) -> List[TimeEntry]:
    q = (TimeEntry.query
         .filter(TimeEntry.employee_id == employee_id)
         .filter(TimeEntry.status == "APPROVED")
         .filter(TimeEntry.entry_date >= start)
         .filter(TimeEntry.entry_date <= end)
         .order_by(TimeEntry.entry_date.asc(), TimeEntry.id.asc()))
    if for_update:
        q = q.with_for_update(of=TimeEntry)
    return q.all()


def _sum_hours(entries: List[TimeEntry]) -> Tuple[Decimal, Decimal]:
    regular = sum((Decimal(str(e.regular_hours or 0)) for e in entries), Decimal("0"))
    overtime = sum((Decimal(str(e.overtime_hours or 0)) for e in entries), Decimal("0"))
    return regular, overtime


def calculate_gross(comp: Compensation, entries: List[TimeEntry], start: date, end: date,
                    apply_bonus: bool = False) -> GrossPay:
    regular, overtime = _sum_hours(entries)
    if isinstance(comp, HourlyCompensation):
        return GrossPay(hourly_gross(comp, regular, overtime), ZERO, regular, overtime, "hourly")
    gross, bonus, basis = salaried_gross(comp, start, end, apply_bonus)
    return GrossPay(gross, bonus, regular, overtime, basis)


# ---------- processing ----------

def process_payroll(employee_id: int, pay_period_start: date, pay_period_end: date,
                    apply_bonus: bool = False, notes: Optional[str] = None) -> Payroll:
    if pay_period_start is None or pay_period_end is None:
        raise InvalidDateRange("payPeriodStart and payPeriodEnd are required")
    if pay_period_start > pay_period_end:
        raise InvalidDateRange("payPeriodEnd must be >= payPeriodStart",
                               payload={"start": pay_period_start.isoformat(), "end": pay_period_end.isoformat()})

    emp, comp = eligible_employee(employee_id)
    hourly = isinstance(comp, HourlyCompensation)

    entries = approved_entries(emp.id, pay_period_start, pay_period_end, for_update=hourly)
    if hourly and not entries:
        db.session.rollback()
        raise NoApprovedHours(
            f"No approved time entries for employee {emp.id} between {pay_period_start} and {pay_period_end}",
            payload={"employee_id": emp.id, "start": pay_period_start.isoformat(), "end": pay_period_end.isoformat()},
        )

    policy = current_policy()
    gp = calculate_gross(comp, entries, pay_period_start, pay_period_end, apply_bonus)
    try:
        deductions = compute_deductions(gp.gross, policy)
    except DeductionsExceedGross:
        db.session.rollback()
        raise
    net = net_pay(gp.gross, deductions)

    payroll = Payroll(
        employee_id=emp.id,
        department_id=emp.department_id,
        pay_period_start=pay_period_start,
        pay_period_end=pay_period_end,
        compensation_type=comp.type,
        regular_hours=gp.regular_hours,
        overtime_hours=gp.overtime_hours,
        gross_pay=gp.gross,
        bonus_amount=gp.bonus,
        total_deductions=deductions.total,
        net_pay=net,
        processing_date=date.today(),
        payment_method=current_app.config.get("PAYSLIP_DEFAULT_PAYMENT_METHOD", "Bank Transfer"),
        notes=notes or "Processed by Payroll Management System",
        calc_meta=_calc_meta(comp, gp, policy, entries if hourly else []),
        **deductions.as_dict(),
    )

    try:
        db.session.add(payroll)
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        log.warning("payroll already processed: employee=%s period=%s..%s",
                    employee_id, pay_period_start, pay_period_end)
        raise AlreadyProcessed(
            "Payroll already processed for this employee and pay period",
            payload={"employee_id": employee_id, "start": pay_period_start.isoformat(),
                     "end": pay_period_end.isoformat()},
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        raise Unavailable("Could not store payroll", payload=str(e))

    if hourly:
        _consume_entries(payroll, entries)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AlreadyProcessed("Payroll already processed for this employee and pay period",
                               payload={"employee_id": employee_id})
    except SQLAlchemyError as e:
        db.session.rollback()
        raise Unavailable("Could not commit payroll", payload=str(e))

    log.info("payroll %s processed: employee=%s period=%s..%s gross=%s net=%s",
             payroll.id, emp.id, pay_period_start, pay_period_end, payroll.gross_pay, payroll.net_pay)
    return payroll


def _consume_entries(payroll: Payroll, entries: List[TimeEntry]):
    ids = [e.id for e in entries]
    taken = (db.session.query(PayrollTimeEntry.time_entry_id, PayrollTimeEntry.payroll_id)
             .filter(PayrollTimeEntry.time_entry_id.in_(ids))
             .all())
    if taken:
        db.session.rollback()
        raise EntryLocked(
            "Some approved time entries in this period were already consumed by another payroll",
            payload={"time_entries": {str(t): p for t, p in taken}},
        )
    try:
        db.session.add_all([PayrollTimeEntry(payroll_id=payroll.id, time_entry_id=i) for i in ids])
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise EntryLocked("Time entries were consumed by a concurrent payroll",
                          payload={"time_entry_ids": ids})
    except SQLAlchemyError as e:
        db.session.rollback()
        raise Unavailable("Could not lock time entries", payload=str(e))


def _calc_meta(comp: Compensation, gp: GrossPay, policy: DeductionPolicy, entries: List[TimeEntry]) -> dict:
    meta = {
        "basis": gp.basis,
        "compensation": {k: str(v) for k, v in comp.__dict__.items()},
        "policy": policy.as_meta(),
        "regular_hours": str(gp.regular_hours),
        "overtime_hours": str(gp.overtime_hours),
        "bonus": str(gp.bonus),
    }
    if entries:
        meta["time_entry_ids"] = [e.id for e in entries]
    return meta


# ---------- reads ----------

def get_payroll(payroll_id: int) -> Payroll:
    p = db.session.get(Payroll, payroll_id)
    if p is None:
        raise PayrollNotFound(payroll_id)
    return p


def find_payroll(employee_id: int, start: date, end: date) -> Optional[Payroll]:
    return (Payroll.query
            .filter(Payroll.employee_id == employee_id,
                    Payroll.pay_period_start == start,
                    Payroll.pay_period_end == end)
            .first())


def list_payrolls_by_employee(employee_id: int):
    get_employee(employee_id)
    return (Payroll.query
            .filter(Payroll.employee_id == employee_id)
            .order_by(Payroll.pay_period_start.desc(), Payroll.id.desc()))


def list_payrolls_by_department(department_id: int):
    return (Payroll.query
            .filter(Payroll.department_id == department_id)
            .order_by(Payroll.pay_period_start.desc(), Payroll.id.desc()))

