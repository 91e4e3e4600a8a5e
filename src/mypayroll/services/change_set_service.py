"""Applies batches of field changes (manual or externally proposed) to a run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.types import ItemInputs, PeriodContext
from mypayroll.errors import NotFoundError, PayrollError, ValidationError
from mypayroll.models import Employee, PayrollItem
from mypayroll.services.audit import record_audit
from mypayroll.services.locking_service import run_key
from mypayroll.services.payroll_run_service import PayrollRunService

logger = logging.getLogger(__name__)

ALLOWED_FIELDS = frozenset(
    {
        "basic_salary",
        "fixed_allowance",
        "ot_hours",
        "ph_days_worked",
        "incentive",
        "commission",
        "trade_commission",
        "outstation",
        "bonus",
        "other_deductions",
        "advance_deduction",
        "unpaid_leave_days",
        "deduction_remarks",
        "ot_override",
        "ot_amount",
        "epf_override",
        "pcb_override",
        "claims_override",
    }
)
TEXT_FIELDS = frozenset({"deduction_remarks"})


@dataclass
class FieldChange:
    """One proposed change to one item field."""

    item_id: UUID
    field: str
    new_value: Any
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldChange:
        try:
            item_id = data["item_id"] if isinstance(data["item_id"], UUID) else UUID(str(data["item_id"]))
            return cls(item_id, data["field"], data.get("new_value"), data.get("reason"))
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed change: {data!r}") from e


@dataclass
class ChangeResult:
    item_id: UUID
    field: str
    success: bool
    error: str | None = None


@dataclass
class ChangeSetResult:
    results: list[ChangeResult] = field(default_factory=list)
    updated_totals: dict[str, Any] = field(default_factory=dict)

    @property
    def applied(self) -> int:
        return sum(1 for r in self.results if r.success)


class ChangeSetService:
    """Applies a change set to a draft run.

    The batch is not atomic across items: a failing row is reported in the
    result and the rest still apply. Each row is atomic at the item level,
    since the item is recalculated in memory before any value is written.
    """

    def __init__(self, session: AsyncSession, company_id: UUID, lock_timeout: float | None = None):
        self.session = session
        self.company_id = company_id
        self.runs = PayrollRunService(session, company_id, lock_timeout=lock_timeout)

    async def apply(
        self,
        run_id: UUID,
        changes: list[FieldChange | dict[str, Any]],
        source: str = "manual",
        actor: str | None = None,
    ) -> ChangeSetResult:
        """Apply ``changes`` to items of ``run_id``, one row at a time."""
        parsed = [c if isinstance(c, FieldChange) else FieldChange.from_dict(c) for c in changes]
        if not parsed:
            raise ValidationError("Change set is empty", "changes")

        outcome = ChangeSetResult()
        async with self.runs.locks.exclusive(run_key(run_id)):
            run = await self.runs.get_run(run_id)
            self.runs.require_draft(run)
            period = await self.runs.period_for(run)

            for change in parsed:
                try:
                    await self._apply_one(run.id, period, change)
                except PayrollError as e:
                    outcome.results.append(ChangeResult(change.item_id, change.field, False, str(e)))
                else:
                    outcome.results.append(ChangeResult(change.item_id, change.field, True))

            await self.runs.refresh_totals(run)
            if outcome.applied:
                self.runs.clear_approval(run)
            outcome.updated_totals = {
                "total_gross": run.total_gross,
                "total_deductions": run.total_deductions,
                "total_net": run.total_net,
                "total_employer_cost": run.total_employer_cost,
                "employee_count": run.employee_count,
            }
            await record_audit(
                self.session, self.company_id, "payroll_run", run.id, "change_set_applied", actor,
                {
                    "source": source,
                    "applied": outcome.applied,
                    "failed": len(outcome.results) - outcome.applied,
                    "changes": [
                        {
                            "item_id": c.item_id,
                            "field": c.field,
                            "new_value": c.new_value,
                            "reason": c.reason,
                        }
                        for c in parsed
                    ],
                },
            )

        logger.info(
            "Applied %d/%d %s change(s) to run %s",
            outcome.applied, len(outcome.results), source, run_id,
        )
        return outcome

    async def _apply_one(self, run_id: UUID, period: PeriodContext, change: FieldChange) -> None:
        if change.field not in ALLOWED_FIELDS:
            raise ValidationError(f"Field '{change.field}' cannot be changed", change.field)

        item = await self.session.get(PayrollItem, change.item_id)
        if item is None:
            raise NotFoundError("Payroll item", change.item_id)
        if item.run_id != run_id:
            raise ValidationError(f"Item '{change.item_id}' belongs to a different run", "item_id")

        if change.field in TEXT_FIELDS:
            item.deduction_remarks = str(change.new_value) if change.new_value else None
            return

        employee = await self.session.get(Employee, item.employee_id)
        if employee is None:
            raise NotFoundError("Employee", item.employee_id)
        inputs = ItemInputs.from_item(item).merged({change.field: change.new_value})
        calc = self.runs.calculate(employee, period, inputs)
        self.runs.note_basic_edit(item, inputs)
        self.runs.apply_calculation(item, calc, prorated=False)
