"""Carry-forward of recurring earnings from last month's finalized items."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.money import ZERO, round2
from mypayroll.calculators.types import ItemInputs
from mypayroll.models import Employee, PayrollItem, PayrollRun
from mypayroll.services.state_machine import PayrollRunStatus

# Earnings that recur month to month; everything else is per-period and resets.
RECURRING_FIELDS = ("fixed_allowance", "commission", "trade_commission", "incentive")


def previous_period(year: int, month: int) -> tuple[int, int]:
    """The (year, month) before the given one."""
    return (year - 1, 12) if month == 1 else (year, month - 1)


class CarryForwardService:
    """Builds default item inputs, inheriting from the prior month when allowed."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def previous_items(
        self,
        company_id: UUID,
        year: int,
        month: int,
        employee_ids: list[UUID],
    ) -> dict[UUID, PayrollItem]:
        """Finalized items from the month before (year, month), by employee."""
        if not employee_ids:
            return {}
        prev_year, prev_month = previous_period(year, month)
        result = await self.session.execute(
            select(PayrollItem)
            .join(PayrollRun, PayrollItem.run_id == PayrollRun.id)
            .where(
                PayrollRun.company_id == company_id,
                PayrollRun.year == prev_year,
                PayrollRun.month == prev_month,
                PayrollRun.status == PayrollRunStatus.FINALIZED.value,
                PayrollItem.employee_id.in_(employee_ids),
            )
        )
        return {item.employee_id: item for item in result.scalars().all()}

    @staticmethod
    def can_carry_forward(employee: Employee, previous: PayrollItem | None) -> bool:
        """True when last month's basic equals the current master-data basic."""
        if previous is None:
            return False
        return round2(Decimal(employee.default_basic_salary or ZERO)) == round2(previous.basic_salary)

    def default_inputs(
        self,
        employee: Employee,
        commission_default: Decimal,
        previous: PayrollItem | None,
        enabled: bool = True,
    ) -> tuple[ItemInputs, bool]:
        """Inputs for a new item and whether they were carried forward.

        Per-period inputs (OT hours, PH days, claims, advances, bonus, other
        deductions, unpaid leave and overrides) always start at zero/empty.
        """
        inputs = ItemInputs(
            basic_salary=Decimal(employee.default_basic_salary or ZERO),
            fixed_allowance=Decimal(employee.default_allowance or ZERO),
            commission=commission_default,
        )
        if enabled and self.can_carry_forward(employee, previous):
            carried = {name: getattr(previous, name) for name in RECURRING_FIELDS}
            return inputs.merged(carried), True
        return inputs, False
