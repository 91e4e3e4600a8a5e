"""ORM models for the payroll run engine."""

from mypayroll.models.base import Base, TimestampMixin
from mypayroll.models.company import Company, Department, Outlet
from mypayroll.models.employee import CommissionAssignment, Employee
from mypayroll.models.leave import LeaveBalance, LeaveRecord, LeaveType
from mypayroll.models.payroll import (
    AuditEvent,
    Claim,
    PayrollItem,
    PayrollRun,
    SalaryAdvance,
    SalaryAdvanceDeduction,
)
from mypayroll.models.resignation import Resignation

__all__ = [
    "AuditEvent",
    "Base",
    "Claim",
    "CommissionAssignment",
    "Company",
    "Department",
    "Employee",
    "LeaveBalance",
    "LeaveRecord",
    "LeaveType",
    "Outlet",
    "PayrollItem",
    "PayrollRun",
    "Resignation",
    "SalaryAdvance",
    "SalaryAdvanceDeduction",
    "TimestampMixin",
]
