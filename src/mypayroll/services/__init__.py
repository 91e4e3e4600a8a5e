"""Payroll engine services."""

from mypayroll.services.carry_forward import CarryForwardService
from mypayroll.services.change_set_service import ChangeSetResult, ChangeSetService, FieldChange
from mypayroll.services.contribution_service import ContributionService
from mypayroll.services.employee_selector import EmployeeSelector, RunScope
from mypayroll.services.locking_service import RunLockManager
from mypayroll.services.payroll_run_service import BulkCreation, PayrollRunService, RunCreation
from mypayroll.services.resignation_service import (
    LeaveCancellation,
    ProcessResult,
    ResignationService,
)
from mypayroll.services.state_machine import (
    PayrollRunStateMachine,
    PayrollRunStatus,
    ResignationStateMachine,
    ResignationStatus,
)

__all__ = [
    "BulkCreation",
    "CarryForwardService",
    "ChangeSetResult",
    "ChangeSetService",
    "ContributionService",
    "EmployeeSelector",
    "FieldChange",
    "LeaveCancellation",
    "PayrollRunService",
    "PayrollRunStateMachine",
    "PayrollRunStatus",
    "ProcessResult",
    "ResignationService",
    "ResignationStateMachine",
    "ResignationStatus",
    "RunCreation",
    "RunLockManager",
    "RunScope",
]
