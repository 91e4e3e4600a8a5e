"""Domain errors raised by the payroll run engine."""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for all payroll engine errors."""

    code = "PAYROLL_ERROR"

    def context(self) -> dict[str, Any]:
        """Extra fields exposed to API callers."""
        return {}


class ValidationError(PayrollError):
    """Raised when inputs are malformed (negative money, bad month, ...)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class NotFoundError(PayrollError):
    """Raised when a run, item, employee or resignation does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class DuplicateRunError(PayrollError):
    """Raised when a run already exists for (company, year, month, scope)."""

    code = "DUPLICATE_RUN"

    def __init__(self, year: int, month: int, scope_key: str, existing_run_id: UUID):
        self.year = year
        self.month = month
        self.scope_key = scope_key
        self.existing_run_id = existing_run_id
        super().__init__(
            f"Payroll run for {year}-{month:02d} scope '{scope_key}' already exists"
        )

    def context(self) -> dict[str, Any]:
        return {"existing_run_id": str(self.existing_run_id)}


class AlreadyFinalized(PayrollError):
    """Raised on a write attempt against a finalized run."""

    code = "ALREADY_FINALIZED"

    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Payroll run '{run_id}' is finalized")


class EmployeeAlreadyInPeriod(PayrollError):
    """Raised when employees would appear in two runs of the same period."""

    code = "EMPLOYEE_ALREADY_IN_PERIOD"

    def __init__(self, employee_ids: list[UUID], year: int, month: int):
        self.employee_ids = list(employee_ids)
        self.year = year
        self.month = month
        super().__init__(
            f"{len(self.employee_ids)} employee(s) already included in a "
            f"payroll run for {year}-{month:02d}"
        )

    def context(self) -> dict[str, Any]:
        return {"employee_ids": [str(e) for e in self.employee_ids]}


class LeavesPendingError(PayrollError):
    """Raised when resignation completion needs leave cancellation confirmed."""

    code = "LEAVES_PENDING"

    def __init__(self, leaves: list[dict[str, Any]]):
        self.leaves = leaves
        super().__init__(
            f"{len(leaves)} leave(s) after last working day must be cancelled first"
        )

    def context(self) -> dict[str, Any]:
        return {"leaves": self.leaves}


class StatutoryTableMissing(PayrollError):
    """Raised when no statutory table covers the requested lookup."""

    code = "STATUTORY_TABLE_MISSING"

    def __init__(self, table: str, year: int, month: int, detail: str | None = None):
        self.table = table
        self.year = year
        self.month = month
        msg = f"No {table} table effective for {year}-{month:02d}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ConcurrencyConflict(PayrollError):
    """Raised when a run lock cannot be acquired within the deadline."""

    code = "CONCURRENCY_CONFLICT"

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Could not lock '{key}' within {timeout:g}s")


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ApprovalRequiredError(PayrollError):
    """Raised when finalizing an unapproved run that requires approval."""

    code = "APPROVAL_REQUIRED"

    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Payroll run '{run_id}' must be approved before finalizing")


class RunNotFinalizedError(PayrollError):
    """Raised when exporting from a run that is still a draft."""

    code = "RUN_NOT_FINALIZED"

    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Payroll run '{run_id}' is not finalized")
