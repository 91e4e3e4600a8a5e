"""Run scopes and eligible-employee selection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.statutory import age_at
from mypayroll.calculators.types import StatutoryParams
from mypayroll.errors import ValidationError
from mypayroll.models import CommissionAssignment, Employee, PayrollItem, PayrollRun

DEFAULT_AGE = 30


@dataclass(frozen=True)
class RunScope:
    """Which employees a run covers: all, one department, or one outlet."""

    kind: str = "all"
    unit_id: UUID | None = None

    @classmethod
    def from_ids(
        cls, department_id: UUID | None = None, outlet_id: UUID | None = None
    ) -> RunScope:
        if department_id and outlet_id:
            raise ValidationError("Specify either department_id or outlet_id, not both")
        if department_id:
            return cls("department", department_id)
        if outlet_id:
            return cls("outlet", outlet_id)
        return cls()

    @classmethod
    def parse(cls, key: str) -> RunScope:
        """Parse a canonical scope key."""
        if key == "all":
            return cls()
        prefix, _, raw_id = key.partition(":")
        kinds = {"dept": "department", "outlet": "outlet"}
        if prefix not in kinds or not raw_id:
            raise ValidationError(f"Invalid scope '{key}'", "scope")
        try:
            return cls(kinds[prefix], UUID(raw_id))
        except ValueError as e:
            raise ValidationError(f"Invalid scope '{key}'", "scope") from e

    @property
    def key(self) -> str:
        """Canonical key: ``all``, ``dept:{id}`` or ``outlet:{id}``."""
        if self.kind == "department":
            return f"dept:{self.unit_id}"
        if self.kind == "outlet":
            return f"outlet:{self.unit_id}"
        return "all"

    @property
    def department_id(self) -> UUID | None:
        return self.unit_id if self.kind == "department" else None

    @property
    def outlet_id(self) -> UUID | None:
        return self.unit_id if self.kind == "outlet" else None


class EmployeeSelector:
    """Selects employees eligible for a run period."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def eligible(
        self,
        company_id: UUID,
        scope: RunScope,
        period_start: date,
        period_end: date,
    ) -> list[Employee]:
        """Employees employed at some point in the period within the scope.

        Resigned employees are included only when their last working day
        falls on or after the first day of the period.
        """
        query = select(Employee).where(
            Employee.company_id == company_id,
            Employee.hire_date <= period_end,
            or_(
                Employee.status == "active",
                and_(
                    Employee.status == "resigned",
                    Employee.last_working_day.is_not(None),
                ),
            ),
            or_(
                Employee.last_working_day.is_(None),
                Employee.last_working_day >= period_start,
            ),
        )
        if scope.kind == "department":
            query = query.where(Employee.department_id == scope.unit_id)
        elif scope.kind == "outlet":
            query = query.where(Employee.outlet_id == scope.unit_id)

        result = await self.session.execute(query.order_by(Employee.emp_code))
        return list(result.scalars().all())

    async def placed_in_period(
        self,
        company_id: UUID,
        year: int,
        month: int,
        exclude_run_id: UUID | None = None,
    ) -> dict[UUID, UUID]:
        """Map employee id → run id for employees already in a run this period."""
        query = (
            select(PayrollItem.employee_id, PayrollRun.id)
            .join(PayrollRun, PayrollItem.run_id == PayrollRun.id)
            .where(
                PayrollRun.company_id == company_id,
                PayrollRun.year == year,
                PayrollRun.month == month,
            )
        )
        if exclude_run_id is not None:
            query = query.where(PayrollRun.id != exclude_run_id)
        result = await self.session.execute(query)
        return {employee_id: run_id for employee_id, run_id in result.all()}

    async def commission_defaults(self, employee_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Sum of active commission assignments per employee."""
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(CommissionAssignment.employee_id, func.sum(CommissionAssignment.amount))
            .where(
                CommissionAssignment.employee_id.in_(employee_ids),
                CommissionAssignment.is_active.is_(True),
            )
            .group_by(CommissionAssignment.employee_id)
        )
        return {emp_id: Decimal(str(total or 0)) for emp_id, total in result.all()}


def statutory_params(employee: Employee, as_of: date) -> StatutoryParams:
    """Build statutory parameters from employee master data."""
    age = age_at(as_of, employee.date_of_birth, employee.ic_number)
    return StatutoryParams(
        age=DEFAULT_AGE if age is None else age,
        residency_status=employee.residency_status,
        socso_category=employee.socso_category,
        marital_status=employee.marital_status,
        spouse_working=employee.spouse_working,
        children_count=employee.children_count,
        epf_voluntary_rate=employee.epf_voluntary_rate,
    )
