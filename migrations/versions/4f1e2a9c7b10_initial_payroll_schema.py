"""initial payroll schema

Revision ID: 4f1e2a9c7b10
Revises:
Create Date: 2025-09-16 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f1e2a9c7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


compensation_type_enum = sa.Enum('SALARIED', 'HOURLY', name='compensation_type_enum')
employment_status_enum = sa.Enum('ACTIVE', 'ON_LEAVE', 'TERMINATED', name='employment_status_enum')
time_entry_source_enum = sa.Enum('MANUAL', 'TIMESHEET', 'BIOMETRIC', 'API', name='time_entry_source_enum')
time_entry_status_enum = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='time_entry_status_enum')


def upgrade() -> None:
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('cost_center', sa.String(length=50), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('name', name='uq_department_name'),
    )

    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=True),
        sa.Column('hire_date', sa.Date(), nullable=True),
        sa.Column('compensation_type', compensation_type_enum, nullable=False),
        sa.Column('annual_salary', sa.Numeric(14, 2), nullable=True),
        sa.Column('bonus_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('hourly_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('overtime_rate_multiplier', sa.Numeric(4, 2), nullable=True),
        sa.Column('employment_status', employment_status_enum, nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "(compensation_type = 'SALARIED' AND annual_salary IS NOT NULL AND annual_salary > 0 AND hourly_rate IS NULL)"
            " OR (compensation_type = 'HOURLY' AND hourly_rate IS NOT NULL AND hourly_rate > 0 AND annual_salary IS NULL)",
            name='ck_employee_compensation_basis',
        ),
    )
    op.create_index('ix_emp_dept_id', 'employees', ['department_id'], unique=False)

    op.create_table(
        'time_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('clock_in', sa.DateTime(), nullable=True),
        sa.Column('clock_out', sa.DateTime(), nullable=True),
        sa.Column('regular_hours', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(6, 2), nullable=False, server_default='0'),
        sa.Column('source', time_entry_source_enum, nullable=False, server_default='MANUAL'),
        sa.Column('source_reference', sa.String(length=100), nullable=True),
        sa.Column('status', time_entry_status_enum, nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('approved_by', sa.String(length=100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('imported_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('employee_id', 'entry_date', 'source', name='uq_time_entry_emp_date_source'),
        sa.CheckConstraint('regular_hours >= 0 AND overtime_hours >= 0', name='ck_time_entry_hours_non_negative'),
    )
    op.create_index('ix_time_entry_employee_date', 'time_entries', ['employee_id', 'entry_date'], unique=False)
    op.create_index('ix_time_entry_status', 'time_entries', ['status'], unique=False)

    op.create_table(
        'payrolls',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('pay_period_start', sa.Date(), nullable=False),
        sa.Column('pay_period_end', sa.Date(), nullable=False),
        sa.Column('compensation_type', sa.String(length=16), nullable=False),
        sa.Column('regular_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('gross_pay', sa.Numeric(14, 2), nullable=False),
        sa.Column('bonus_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('income_tax', sa.Numeric(14, 2), nullable=False),
        sa.Column('professional_tax', sa.Numeric(14, 2), nullable=False),
        sa.Column('provident_fund', sa.Numeric(14, 2), nullable=False),
        sa.Column('esi', sa.Numeric(14, 2), nullable=False),
        sa.Column('health_insurance', sa.Numeric(14, 2), nullable=False),
        sa.Column('retirement_contribution', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_deductions', sa.Numeric(14, 2), nullable=False),
        sa.Column('net_pay', sa.Numeric(14, 2), nullable=False),
        sa.Column('processing_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(length=40), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('calc_meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('employee_id', 'pay_period_start', 'pay_period_end', name='uq_payroll_employee_period'),
        sa.CheckConstraint('pay_period_start <= pay_period_end', name='ck_payroll_period_order'),
        sa.CheckConstraint('net_pay >= 0', name='ck_payroll_net_non_negative'),
    )
    op.create_index('ix_payroll_dept_period', 'payrolls', ['department_id', 'pay_period_start', 'pay_period_end'], unique=False)

    op.create_table(
        'payroll_time_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payroll_id', sa.Integer(), sa.ForeignKey('payrolls.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('time_entry_id', sa.Integer(), sa.ForeignKey('time_entries.id', ondelete='RESTRICT'), nullable=False),
        sa.UniqueConstraint('time_entry_id', name='uq_payroll_time_entry_entry'),
    )
    op.create_index('ix_payroll_time_entries_payroll_id', 'payroll_time_entries', ['payroll_id'], unique=False)

    op.create_table(
        'payslips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payroll_id', sa.Integer(), sa.ForeignKey('payrolls.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('payslip_number', sa.String(length=64), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('payment_method', sa.String(length=40), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='GENERATED'),
        sa.Column('generated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('payroll_id', name='uq_payslip_payroll'),
        sa.UniqueConstraint('payslip_number', name='uq_payslip_number'),
    )


def downgrade() -> None:
    op.drop_table('payslips')
    op.drop_index('ix_payroll_time_entries_payroll_id', table_name='payroll_time_entries')
    op.drop_table('payroll_time_entries')
    op.drop_index('ix_payroll_dept_period', table_name='payrolls')
    op.drop_table('payrolls')
    op.drop_index('ix_time_entry_status', table_name='time_entries')
    op.drop_index('ix_time_entry_employee_date', table_name='time_entries')
    op.drop_table('time_entries')
    op.drop_index('ix_emp_dept_id', table_name='employees')
    op.drop_table('employees')
    op.drop_table('departments')

    bind = op.get_bind()
    for enum in (time_entry_status_enum, time_entry_source_enum, employment_status_enum, compensation_type_enum):
        enum.drop(bind, checkfirst=True)
