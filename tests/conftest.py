import itertools
from datetime import date, timedelta
from decimal import Decimal

import pytest

from payroll_api import create_app
from payroll_api.extensions import db
from payroll_api.models.master import Department
from payroll_api.models.employee import Employee
from payroll_api.services import time_entries as ledger

_seq = itertools.count(1)


def _mk_app(monkeypatch, url):
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.delenv("PAYROLL_DEDUCTION_POLICY_JSON", raising=False)
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture(scope="function")
def app(monkeypatch):
    app = _mk_app(monkeypatch, "sqlite:///:memory:")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def file_app(monkeypatch, tmp_path):
    """App on a SQLite file so several threads can open their own connections."""
    app = _mk_app(monkeypatch, f"sqlite:///{tmp_path / 'payroll.db'}")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_department(app):
    def _make(name=None, cost_center=None):
        n = next(_seq)
        d = Department(name=name or f"Dept {n}", cost_center=cost_center or f"CC-{n:03d}")
        db.session.add(d)
        db.session.commit()
        return d
    return _make


def _employee(department=None, compensation_type="HOURLY", **kw):
    n = next(_seq)
    fields = {
        "email": f"emp{n}@example.test",
        "code": f"E{n:04d}",
        "first_name": "Emp",
        "last_name": str(n),
        "compensation_type": compensation_type,
        "department_id": department.id if department else None,
    }
    if compensation_type == "HOURLY":
        fields.update(hourly_rate=Decimal("25.00"), overtime_rate_multiplier=Decimal("1.5"))
    else:
        fields.update(annual_salary=Decimal("720000"), bonus_percentage=Decimal("10"))
    fields.update(kw)
    e = Employee(**fields)
    db.session.add(e)
    db.session.commit()
    return e


@pytest.fixture()
def make_employee(app):
    return _employee


def add_approved_hours(employee_id, start, days, regular="10", overtime_days=0, overtime="1"):
    """One APPROVED entry per day from `start`; the first `overtime_days` also carry overtime."""
    out = []
    for i in range(days):
        e = ledger.record_entry(employee_id, start + timedelta(days=i), regular,
                                overtime if i < overtime_days else "0")
        out.append(ledger.set_status(e.id, "APPROVED", "supervisor"))
    return out


@pytest.fixture()
def approved_hours(app):
    return add_approved_hours


@pytest.fixture()
def worked_example(make_department, make_employee, approved_hours):
    """Hourly employee at 25.00/h with 150 regular + 10 overtime approved hours for Sept 1-15."""
    dept = make_department("Operations", "CC-OPS")
    emp = make_employee(dept)
    approved_hours(emp.id, date(2025, 9, 1), 15, regular="10", overtime_days=10, overtime="1")
    return emp


@pytest.fixture()
def file_worked_example(file_app):
    """Same employee and hours as `worked_example`, stored in the file-backed database."""
    dept = Department(name="Operations", cost_center="CC-OPS")
    db.session.add(dept)
    db.session.commit()
    emp = _employee(dept)
    add_approved_hours(emp.id, date(2025, 9, 1), 15, regular="10", overtime_days=10, overtime="1")
    return emp.id
