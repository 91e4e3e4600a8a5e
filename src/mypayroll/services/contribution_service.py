"""Statutory contribution aggregates, yearly report and exporter row shapes."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.money import ZERO
from mypayroll.errors import NotFoundError, RunNotFinalizedError, ValidationError
from mypayroll.models import Company, Department, Employee, Outlet, PayrollItem, PayrollRun
from mypayroll.services.state_machine import PayrollRunStatus

STATUTORY_FIELDS = (
    "epf_employee",
    "epf_employer",
    "socso_employee",
    "socso_employer",
    "eis_employee",
    "eis_employer",
    "pcb",
)
EXPORT_KINDS = ("epf", "socso", "eis", "pcb", "bank")
GROUPINGS = ("department", "outlet")


def _sum(items: list[PayrollItem], name: str) -> Decimal:
    return sum((getattr(i, name) for i in items), ZERO)


def _period_totals(items: list[PayrollItem]) -> dict[str, Any]:
    return {
        "employee_count": len({i.employee_id for i in items}),
        "gross_salary": _sum(items, "gross_salary"),
        **contribution_totals(items),
    }


def contribution_totals(items: list[PayrollItem]) -> dict[str, Any]:
    """Per-body employee/employer totals and the grand total owed."""
    epf_ee, epf_er = _sum(items, "epf_employee"), _sum(items, "epf_employer")
    socso_ee, socso_er = _sum(items, "socso_employee"), _sum(items, "socso_employer")
    eis_ee, eis_er = _sum(items, "eis_employee"), _sum(items, "eis_employer")
    pcb = _sum(items, "pcb")
    return {
        "epf": {"employee": epf_ee, "employer": epf_er, "total": epf_ee + epf_er},
        "socso": {"employee": socso_ee, "employer": socso_er, "total": socso_ee + socso_er},
        "eis": {"employee": eis_ee, "employer": eis_er, "total": eis_ee + eis_er},
        "pcb": {"total": pcb},
        "grand_total": epf_ee + epf_er + socso_ee + socso_er + eis_ee + eis_er + pcb,
    }


class ContributionService:
    """Aggregates statutory contributions over payroll items."""

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id

    async def _run(self, run_id: UUID) -> PayrollRun:
        run = await self.session.get(PayrollRun, run_id)
        if run is None or run.company_id != self.company_id:
            raise NotFoundError("Payroll run", run_id)
        return run

    async def _rows(self, run_id: UUID) -> list[tuple[PayrollItem, Employee, str | None]]:
        result = await self.session.execute(
            select(PayrollItem, Employee, Department.name)
            .join(Employee, PayrollItem.employee_id == Employee.id)
            .outerjoin(Department, Employee.department_id == Department.id)
            .where(PayrollItem.run_id == run_id)
            .order_by(Employee.emp_code)
        )
        return [(item, employee, dept) for item, employee, dept in result.all()]

    async def summary(self, run_id: UUID) -> dict[str, Any]:
        """Contribution totals for one run."""
        run = await self._run(run_id)
        items = [item for item, _, _ in await self._rows(run_id)]
        return {
            "run_id": run.id,
            "year": run.year,
            "month": run.month,
            "status": run.status,
            "employee_count": len(items),
            **contribution_totals(items),
        }

    async def details(self, run_id: UUID) -> list[dict[str, Any]]:
        """Per-employee contribution breakdown for one run."""
        await self._run(run_id)
        return [
            {
                "employee_id": employee.id,
                "emp_code": employee.emp_code,
                "name": employee.name,
                "ic_number": employee.ic_number,
                "epf_number": employee.epf_number,
                "socso_number": employee.socso_number,
                "tax_number": employee.tax_number,
                "department": department,
                "gross_salary": item.gross_salary,
                "statutory_base": item.statutory_base,
                **{name: getattr(item, name) for name in STATUTORY_FIELDS},
            }
            for item, employee, department in await self._rows(run_id)
        ]

    async def yearly_report(
        self,
        year: int,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
        group_by: str | None = None,
    ) -> dict[str, Any]:
        """Contribution totals over the finalized runs of ``year``.

        ``rows`` has one entry per month and department (or outlet) of the
        employees; employees without one share a row with no unit. ``months``
        rolls the rows up per month and ``totals`` over the year.

        The partition filter applies to the employees' department or outlet,
        so items from company-wide runs are included too. Rows are grouped by
        ``group_by``, else by the filter's kind, else by the company's
        grouping type.
        """
        if department_id and outlet_id:
            raise ValidationError("Specify either department_id or outlet_id, not both")
        if group_by is not None and group_by not in GROUPINGS:
            raise ValidationError(f"Unknown grouping '{group_by}'", "group_by")

        partition: dict[str, Any] | None = None
        if department_id:
            unit = await self.session.get(Department, department_id)
            if unit is None or unit.company_id != self.company_id:
                raise NotFoundError("Department", department_id)
            partition = {"type": "department", "id": unit.id, "name": unit.name}
        elif outlet_id:
            unit = await self.session.get(Outlet, outlet_id)
            if unit is None or unit.company_id != self.company_id:
                raise NotFoundError("Outlet", outlet_id)
            partition = {"type": "outlet", "id": unit.id, "name": unit.name}
        if group_by is None:
            if partition is not None:
                group_by = partition["type"]
            else:
                company = await self.session.get(Company, self.company_id)
                if company is None:
                    raise NotFoundError("Company", self.company_id)
                group_by = company.grouping_type

        unit_model = Department if group_by == "department" else Outlet
        unit_column = Employee.department_id if group_by == "department" else Employee.outlet_id
        query = (
            select(PayrollRun.month, PayrollItem, unit_model.id, unit_model.name)
            .join(PayrollItem, PayrollItem.run_id == PayrollRun.id)
            .join(Employee, PayrollItem.employee_id == Employee.id)
            .outerjoin(unit_model, unit_column == unit_model.id)
            .where(
                PayrollRun.company_id == self.company_id,
                PayrollRun.year == year,
                PayrollRun.status == PayrollRunStatus.FINALIZED.value,
            )
        )
        if department_id:
            query = query.where(Employee.department_id == department_id)
        elif outlet_id:
            query = query.where(Employee.outlet_id == outlet_id)

        cells: dict[tuple[int, UUID | None], list[PayrollItem]] = {}
        names: dict[UUID | None, str | None] = {}
        for month, item, unit_id, unit_name in (await self.session.execute(query)).all():
            cells.setdefault((month, unit_id), []).append(item)
            names[unit_id] = unit_name

        def order(key: tuple[int, UUID | None]) -> tuple[int, bool, str]:
            # Units by name within a month, the unassigned row last
            name = names[key[1]]
            return key[0], name is None, name or ""

        rows = []
        for month, unit_id in sorted(cells, key=order):
            items = cells[(month, unit_id)]
            rows.append(
                {
                    "month": month,
                    "unit_type": group_by,
                    "unit_id": unit_id,
                    "unit_name": names[unit_id],
                    **_period_totals(items),
                }
            )

        by_month: dict[int, list[PayrollItem]] = {}
        for (month, _), items in cells.items():
            by_month.setdefault(month, []).extend(items)
        months = [{"month": month, **_period_totals(by_month[month])} for month in sorted(by_month)]

        all_items = [i for items in cells.values() for i in items]
        return {
            "year": year,
            "partition": partition,
            "group_by": group_by,
            "rows": rows,
            "months": months,
            "totals": {"gross_salary": _sum(all_items, "gross_salary"), **contribution_totals(all_items)},
        }

    async def export_rows(self, run_id: UUID, kind: str) -> list[dict[str, Any]]:
        """Rows an exporter turns into an EPF, SOCSO, EIS, PCB or bank file."""
        if kind not in EXPORT_KINDS:
            raise ValidationError(f"Unknown export '{kind}'", "kind")
        run = await self._run(run_id)
        if run.status != PayrollRunStatus.FINALIZED:
            raise RunNotFinalizedError(run.id)

        rows = []
        for item, employee, _ in await self._rows(run_id):
            base = {"emp_code": employee.emp_code, "name": employee.name, "ic_number": employee.ic_number}
            if kind == "epf" and (item.epf_employee or item.epf_employer):
                rows.append({
                    **base,
                    "epf_number": employee.epf_number,
                    "wages": item.statutory_base,
                    "employee": item.epf_employee,
                    "employer": item.epf_employer,
                })
            elif kind == "socso" and (item.socso_employee or item.socso_employer):
                rows.append({
                    **base,
                    "socso_number": employee.socso_number,
                    "wages": item.statutory_base,
                    "employee": item.socso_employee,
                    "employer": item.socso_employer,
                })
            elif kind == "eis" and (item.eis_employee or item.eis_employer):
                rows.append({
                    **base,
                    "socso_number": employee.socso_number,
                    "wages": item.statutory_base,
                    "employee": item.eis_employee,
                    "employer": item.eis_employer,
                })
            elif kind == "pcb" and item.pcb > 0:
                rows.append({**base, "tax_number": employee.tax_number, "pcb": item.pcb})
            elif kind == "bank" and item.net_pay > 0:
                rows.append({
                    **base,
                    "bank_name": employee.bank_name,
                    "bank_account_no": employee.bank_account_no,
                    "net_pay": item.net_pay,
                })
        return rows
