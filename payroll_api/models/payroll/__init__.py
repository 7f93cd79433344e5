# payroll_api/models/payroll/__init__.py
# Import order matters: payroll first, then payslip (which references it).
from .payroll import Payroll, PayrollTimeEntry
from .payslip import PaySlip

__all__ = [
    "Payroll", "PayrollTimeEntry", "PaySlip",
]
