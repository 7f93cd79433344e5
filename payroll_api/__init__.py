import json
import os
from datetime import date, datetime
from decimal import Decimal

import click
from flask import Flask
from flask_cors import CORS

from payroll_api.extensions import db, migrate, init_db
from payroll_api.common.errors import register_error_handlers, APIError
from payroll_api.models import load_all
from payroll_api.services.deductions import DEFAULT_DEDUCTION_POLICY, DeductionPolicy


def _deduction_policy_from_env(app: Flask) -> dict:
    policy = dict(DEFAULT_DEDUCTION_POLICY)
    raw = os.getenv("PAYROLL_DEDUCTION_POLICY_JSON")
    if raw:
        try:
            policy.update(json.loads(raw))
        except (ValueError, TypeError) as e:
            app.logger.warning("Ignoring PAYROLL_DEDUCTION_POLICY_JSON: %s", e)
    return policy


def create_app(config_object: str | None = None):
    app = Flask(__name__)

    # Basic inline config (defaults)
    app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["PAYROLL_DEDUCTION_POLICY"] = _deduction_policy_from_env(app)
    app.config["PAYSLIP_PAYMENT_OFFSET_BUSINESS_DAYS"] = int(os.getenv("PAYSLIP_PAYMENT_OFFSET_BUSINESS_DAYS", "2"))
    app.config["PAYSLIP_DEFAULT_PAYMENT_METHOD"] = os.getenv("PAYSLIP_DEFAULT_PAYMENT_METHOD", "Bank Transfer")

    # Optional external config; a missing module only logs
    if config_object:
        try:
            app.config.from_object(config_object)
        except ImportError as e:
            app.logger.warning("Could not import config object %r: %s", config_object, e)

    # fail at startup on a bad policy, not on the first payroll
    DeductionPolicy.from_mapping(app.config["PAYROLL_DEDUCTION_POLICY"])

    # CORS (dev)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Extensions
    init_db(app)
    register_error_handlers(app)
    migrate.init_app(app, db)

    # Ensure models are loaded so metadata is complete
    with app.app_context():
        load_all()

    # Blueprints
    from payroll_api.blueprints.health import bp as health_bp
    from payroll_api.blueprints.payroll import bp as payroll_bp
    from payroll_api.blueprints.payslips import bp as payslips_bp
    from payroll_api.blueprints.time_entries import bp as time_entries_bp
    from payroll_api.blueprints.departments import bp as departments_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(payroll_bp)
    app.register_blueprint(payslips_bp)
    app.register_blueprint(time_entries_bp)
    app.register_blueprint(departments_bp)

    # ----------------- CLI COMMANDS -----------------

    @app.cli.command("seed-demo")
    def seed_demo():
        """Seed two departments, a salaried and an hourly employee, and approved Sept 1-15 hours."""
        from payroll_api.models.master import Department
        from payroll_api.models.employee import Employee
        from payroll_api.models.time_entry import TimeEntry

        def ensure_department(name: str, cost_center: str) -> Department:
            d = Department.query.filter_by(name=name).first()
            if not d:
                d = Department(name=name, cost_center=cost_center)
                db.session.add(d)
                db.session.commit()
            return d

        def ensure_employee(email: str, **fields) -> Employee:
            e = Employee.query.filter_by(email=email).first()
            if not e:
                e = Employee(email=email, **fields)
                db.session.add(e)
                db.session.commit()
            return e

        eng = ensure_department("Engineering", "CC-ENG")
        ops = ensure_department("Operations", "CC-OPS")

        salaried = ensure_employee(
            "asha.rao@demo.local", code="E0001", first_name="Asha", last_name="Rao",
            department_id=eng.id, compensation_type="SALARIED",
            annual_salary=Decimal("720000"), bonus_percentage=Decimal("10"),
        )
        hourly = ensure_employee(
            "ravi.kumar@demo.local", code="E0004", first_name="Ravi", last_name="Kumar",
            department_id=ops.id, compensation_type="HOURLY",
            hourly_rate=Decimal("25.00"), overtime_rate_multiplier=Decimal("1.5"),
        )

        year = date.today().year
        created = 0
        for day in range(1, 16):
            d = date(year, 9, day)
            if TimeEntry.query.filter_by(employee_id=hourly.id, entry_date=d, source="MANUAL").first():
                continue
            db.session.add(TimeEntry(
                employee_id=hourly.id, entry_date=d,
                regular_hours=Decimal("10"), overtime_hours=Decimal("1") if day <= 10 else Decimal("0"),
                source="MANUAL", status="APPROVED", approved_by="seed-demo",
                approved_at=datetime.utcnow(),
            ))
            created += 1
        db.session.commit()

        click.echo(f"Departments: {eng.name} (id={eng.id}), {ops.name} (id={ops.id})")
        click.echo(f"Salaried employee id={salaried.id}; hourly employee id={hourly.id}")
        click.echo(f"Approved time entries created: {created}")

    @app.cli.command("process-payroll")
    @click.option("--employee-id", required=True, type=int)
    @click.option("--start", "start", required=True, type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.option("--end", "end", required=True, type=click.DateTime(formats=["%Y-%m-%d"]))
    @click.option("--bonus", is_flag=True, default=False, help="Apply the salaried bonus percentage.")
    def process_payroll_cmd(employee_id: int, start: datetime, end: datetime, bonus: bool):
        """Process one employee's payroll for a period and issue its payslip."""
        from payroll_api.services.payroll_engine import process_payroll
        from payroll_api.services.payslip_service import generate_payslip

        try:
            payroll = process_payroll(employee_id, start.date(), end.date(), apply_bonus=bonus)
            slip = generate_payslip(payroll.id)
        except APIError as e:
            raise click.ClickException(f"{e.code}: {e.message}")

        click.echo(f"Payroll {payroll.id}: gross={payroll.gross_pay} "
                   f"deductions={payroll.total_deductions} net={payroll.net_pay}")
        click.echo(f"Payslip {slip.payslip_number} payable {slip.payment_date.isoformat()}")

    return app
