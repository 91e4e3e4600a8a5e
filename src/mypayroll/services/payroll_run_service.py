"""Payroll run service - main orchestrator for payroll runs.

Every write happens under a per-run lock (per company period while a run is
being created) and commits as a single transaction that also rewrites the
run's cached totals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.item_calculator import LineItemCalculator
from mypayroll.calculators.money import ZERO, round2
from mypayroll.calculators.statutory import StatutoryEngine
from mypayroll.calculators.types import ItemCalculation, ItemInputs, PeriodContext, validate_period
from mypayroll.errors import (
    AlreadyFinalized,
    ApprovalRequiredError,
    DuplicateRunError,
    EmployeeAlreadyInPeriod,
    NotFoundError,
    ValidationError,
)
from mypayroll.models import (
    Claim,
    Company,
    Department,
    Employee,
    Outlet,
    PayrollItem,
    PayrollRun,
    SalaryAdvance,
    SalaryAdvanceDeduction,
)
from mypayroll.services.audit import record_audit
from mypayroll.services.carry_forward import CarryForwardService
from mypayroll.services.employee_selector import EmployeeSelector, RunScope, statutory_params
from mypayroll.services.locking_service import RunLockManager, period_key, run_key
from mypayroll.services.period_inputs import PeriodInputCollector
from mypayroll.services.state_machine import PayrollRunStateMachine, PayrollRunStatus

logger = logging.getLogger(__name__)

# Item fields callers may change directly, besides the calculator inputs.
ITEM_TEXT_FIELDS = ("deduction_remarks", "notes")


@dataclass
class RunCreation:
    """Result of creating one run."""

    run: PayrollRun
    employee_count: int
    carried_forward_count: int
    warning: str | None = None
    skipped_employee_ids: list[UUID] = field(default_factory=list)


@dataclass
class BulkCreation:
    """Result of creating one run per department or outlet."""

    created_runs: list[RunCreation] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)

    @property
    def totals(self) -> dict[str, Any]:
        runs = [c.run for c in self.created_runs]
        return {
            "runs_created": len(runs),
            "employees": sum(c.employee_count for c in self.created_runs),
            "carried_forward": sum(c.carried_forward_count for c in self.created_runs),
            "total_gross": sum((r.total_gross for r in runs), ZERO),
            "total_net": sum((r.total_net for r in runs), ZERO),
        }


class PayrollRunService:
    """Service for the payroll run lifecycle within one company.

    Operations:
    - create_run / create_all_departments / create_all_outlets
    - recalculate_all / recalculate_item
    - update_item / delete_item
    - approve_run / finalize_run / delete_run
    - list_runs / get_run / get_item / get_payslip
    """

    def __init__(
        self,
        session: AsyncSession,
        company_id: UUID,
        statutory: StatutoryEngine | None = None,
        lock_timeout: float | None = None,
    ):
        self.session = session
        self.company_id = company_id
        self.calculator = LineItemCalculator(statutory)
        self.locks = RunLockManager(session, lock_timeout)
        self.selector = EmployeeSelector(session)
        self.carry_forward = CarryForwardService(session)
        self.period_inputs = PeriodInputCollector(session)

    async def get_company(self) -> Company:
        company = await self.session.get(Company, self.company_id)
        if company is None:
            raise NotFoundError("Company", self.company_id)
        return company

    async def get_run(self, run_id: UUID) -> PayrollRun:
        """Load a run belonging to this company."""
        run = await self.session.get(PayrollRun, run_id)
        if run is None or run.company_id != self.company_id:
            raise NotFoundError("Payroll run", run_id)
        return run

    async def get_item(self, item_id: UUID) -> PayrollItem:
        """Load an item whose run belongs to this company."""
        item = await self.session.get(PayrollItem, item_id)
        if item is None:
            raise NotFoundError("Payroll item", item_id)
        await self.get_run(item.run_id)
        return item

    async def list_items(self, run_id: UUID) -> list[tuple[PayrollItem, Employee]]:
        """Items of a run with their employees, ordered by employee code."""
        result = await self.session.execute(
            select(PayrollItem, Employee)
            .join(Employee, PayrollItem.employee_id == Employee.id)
            .where(PayrollItem.run_id == run_id)
            .order_by(Employee.emp_code)
        )
        return [(item, employee) for item, employee in result.all()]

    async def list_runs(
        self,
        year: int | None = None,
        month: int | None = None,
        scope_key: str | None = None,
        status: str | None = None,
    ) -> list[tuple[PayrollRun, int]]:
        """Runs with their item counts, newest period first."""
        item_count = (
            select(func.count(PayrollItem.id))
            .where(PayrollItem.run_id == PayrollRun.id)
            .correlate(PayrollRun)
            .scalar_subquery()
        )
        query = select(PayrollRun, item_count).where(PayrollRun.company_id == self.company_id)
        if year is not None:
            query = query.where(PayrollRun.year == year)
        if month is not None:
            query = query.where(PayrollRun.month == month)
        if scope_key is not None:
            query = query.where(PayrollRun.scope_key == RunScope.parse(scope_key).key)
        if status is not None:
            query = query.where(PayrollRun.status == status)
        query = query.order_by(
            PayrollRun.year.desc(), PayrollRun.month.desc(), PayrollRun.scope_key
        )
        result = await self.session.execute(query)
        return [(run, count or 0) for run, count in result.all()]

    async def _validate_scope(self, scope: RunScope) -> None:
        if scope.kind == "department":
            unit = await self.session.get(Department, scope.unit_id)
            if unit is None or unit.company_id != self.company_id:
                raise NotFoundError("Department", scope.unit_id)
        elif scope.kind == "outlet":
            unit = await self.session.get(Outlet, scope.unit_id)
            if unit is None or unit.company_id != self.company_id:
                raise NotFoundError("Outlet", scope.unit_id)

    async def create_run(
        self,
        year: int,
        month: int,
        department_id: UUID | None = None,
        outlet_id: UUID | None = None,
        inputs: dict[UUID, dict[str, Any]] | None = None,
        notes: str | None = None,
        actor: str | None = None,
    ) -> RunCreation:
        """Create a draft run for the scope and calculate an item per employee.

        Raises DuplicateRunError when a run already exists for the scope, and
        EmployeeAlreadyInPeriod when any selected employee is already in
        another run for the same month.
        """
        validate_period(year, month)
        scope = RunScope.from_ids(department_id, outlet_id)
        await self._validate_scope(scope)
        async with self.locks.exclusive(period_key(self.company_id, year, month)):
            return await self._create_run(year, month, scope, inputs or {}, notes, actor)

    async def _create_run(
        self,
        year: int,
        month: int,
        scope: RunScope,
        inputs: dict[UUID, dict[str, Any]],
        notes: str | None,
        actor: str | None,
        skip_placed: bool = False,
    ) -> RunCreation:
        company = await self.get_company()
        settings = company.settings
        period = PeriodContext.for_company(year, month, settings)

        existing = await self.session.scalar(
            select(PayrollRun.id).where(
                PayrollRun.company_id == self.company_id,
                PayrollRun.year == year,
                PayrollRun.month == month,
                PayrollRun.scope_key == scope.key,
            )
        )
        if existing is not None:
            raise DuplicateRunError(year, month, scope.key, existing)

        employees = await self.selector.eligible(
            self.company_id, scope, period.period_start, period.period_end
        )
        placed = await self.selector.placed_in_period(self.company_id, year, month)
        conflicts = [e.id for e in employees if e.id in placed]
        if conflicts and not skip_placed:
            raise EmployeeAlreadyInPeriod(conflicts, year, month)
        employees = [e for e in employees if e.id not in placed]

        run = PayrollRun(
            company_id=self.company_id,
            year=year,
            month=month,
            scope_key=scope.key,
            department_id=scope.department_id,
            outlet_id=scope.outlet_id,
            status=PayrollRunStatus.DRAFT.value,
            period_start=period.period_start,
            period_end=period.period_end,
            working_days=period.working_days,
            notes=notes,
        )
        self.session.add(run)
        await self.session.flush()

        employee_ids = [e.id for e in employees]
        commissions = await self.selector.commission_defaults(employee_ids)
        previous = await self.carry_forward.previous_items(
            self.company_id, year, month, employee_ids
        )
        unpaid_days: dict[UUID, Decimal] = {}
        if settings.features.unpaid_leave_deduction:
            unpaid_days = await self.period_inputs.unpaid_leave_days(
                employee_ids, period.period_start, period.period_end
            )
        claims: dict[UUID, list[Claim]] = {}
        if settings.features.auto_claims_linking:
            claims = await self.period_inputs.approved_claims(
                employee_ids, period.period_start, period.period_end
            )
        advances: dict[UUID, Decimal] = {}
        if settings.features.auto_advance_deduction:
            advances = await self.period_inputs.advance_deductions(employee_ids, year, month)

        carried_count = 0
        missing_basic: list[str] = []
        items: list[PayrollItem] = []
        for employee in employees:
            prior = previous.get(employee.id)
            item_inputs, carried = self.carry_forward.default_inputs(
                employee,
                commissions.get(employee.id, ZERO),
                prior,
                enabled=settings.features.salary_carry_forward,
            )
            derived: dict[str, Any] = {}
            if employee.id in unpaid_days:
                derived["unpaid_leave_days"] = unpaid_days[employee.id]
            if employee.id in claims:
                derived["claims_amount"] = sum((c.amount for c in claims[employee.id]), ZERO)
            if employee.id in advances:
                derived["advance_deduction"] = advances[employee.id]
            supplied = inputs.get(employee.id, {})
            derived.update(supplied)
            item_inputs = item_inputs.merged(derived)

            if carried:
                carried_count += 1
            elif item_inputs.basic_salary <= 0:
                missing_basic.append(employee.name)

            item = PayrollItem(
                run_id=run.id,
                employee_id=employee.id,
                carried_forward=carried,
                basic_salary_edited="basic_salary" in supplied,
            )
            self.calculate_into(item, employee, period, item_inputs, prorate=True)
            self._apply_variance(item, employee, prior, settings.features.variance_threshold_percent)
            self.session.add(item)
            items.append(item)

        self._seal_totals(run, items)
        await record_audit(
            self.session,
            self.company_id,
            "payroll_run",
            run.id,
            "created",
            actor,
            {"scope": scope.key, "employees": len(items), "carried_forward": carried_count},
        )

        warning = None
        if missing_basic:
            warning = (
                f"{len(missing_basic)} employee(s) have no prior payroll and no basic "
                f"salary: {', '.join(missing_basic)}"
            )
            logger.warning("Run %s: %s", run.id, warning)

        logger.info(
            "Created payroll run %s for %d-%02d scope %s with %d item(s)",
            run.id, year, month, scope.key, len(items),
        )
        return RunCreation(
            run=run,
            employee_count=len(items),
            carried_forward_count=carried_count,
            warning=warning,
            skipped_employee_ids=conflicts,
        )

    async def create_all_departments(
        self, year: int, month: int, actor: str | None = None
    ) -> BulkCreation:
        """Create one run per department, skipping employees already placed."""
        return await self._create_all("department", year, month, actor)

    async def create_all_outlets(
        self, year: int, month: int, actor: str | None = None
    ) -> BulkCreation:
        """Create one run per outlet, skipping employees already placed."""
        return await self._create_all("outlet", year, month, actor)

    async def _create_all(self, kind: str, year: int, month: int, actor: str | None) -> BulkCreation:
        validate_period(year, month)
        unit_model = Department if kind == "department" else Outlet
        result = await self.session.execute(
            select(unit_model)
            .where(unit_model.company_id == self.company_id)
            .order_by(unit_model.name)
        )
        units = list(result.scalars().all())

        bulk = BulkCreation()
        async with self.locks.exclusive(period_key(self.company_id, year, month)):
            for unit in units:
                scope = RunScope(kind, unit.id)
                existing = await self.session.scalar(
                    select(PayrollRun.id).where(
                        PayrollRun.company_id == self.company_id,
                        PayrollRun.year == year,
                        PayrollRun.month == month,
                        PayrollRun.scope_key == scope.key,
                    )
                )
                if existing is not None:
                    bulk.skipped.append(
                        {"id": unit.id, "name": unit.name, "reason": "already_exists"}
                    )
                    continue

                period = PeriodContext(year=year, month=month)
                candidates = await self.selector.eligible(
                    self.company_id, scope, period.period_start, period.period_end
                )
                placed = await self.selector.placed_in_period(self.company_id, year, month)
                if not [e for e in candidates if e.id not in placed]:
                    bulk.skipped.append(
                        {"id": unit.id, "name": unit.name, "reason": "no_employees"}
                    )
                    continue

                creation = await self._create_run(
                    year, month, scope, {}, None, actor, skip_placed=True
                )
                await self.session.flush()
                bulk.created_runs.append(creation)

        logger.info(
            "Bulk %s generation for %d-%02d: %d created, %d skipped",
            kind, year, month, len(bulk.created_runs), len(bulk.skipped),
        )
        return bulk

    def calculate(
        self,
        employee: Employee,
        period: PeriodContext,
        inputs: ItemInputs,
        prorate: bool = False,
    ) -> ItemCalculation:
        """Run the line-item calculator for one employee."""
        return self.calculator.calculate(
            inputs,
            statutory_params(employee, period.period_start),
            period,
            hire_date=employee.hire_date,
            last_working_day=employee.last_working_day,
            prorate=prorate,
            ot_eligible=employee.ot_eligible,
        )

    def calculate_into(
        self,
        item: PayrollItem,
        employee: Employee,
        period: PeriodContext,
        inputs: ItemInputs,
        prorate: bool = False,
    ) -> ItemCalculation:
        """Calculate and write every computed value onto ``item``."""
        calc = self.calculate(employee, period, inputs, prorate)
        self.apply_calculation(item, calc, prorate)
        for warning in calc.warnings:
            logger.warning("Employee %s: %s", employee.emp_code, warning)
        return calc

    @staticmethod
    def apply_calculation(item: PayrollItem, calc: ItemCalculation, prorated: bool) -> None:
        values = calc.item_values()
        if not prorated:
            # A stored basic is already pro-rated; keep its record.
            values.pop("days_in_period")
        for name, value in values.items():
            setattr(item, name, value)
        if item.prev_month_net is not None:
            item.variance_amount = item.net_pay - item.prev_month_net
            if item.prev_month_net > 0:
                item.variance_percent = round2(item.variance_amount / item.prev_month_net * 100)

    @staticmethod
    def note_basic_edit(item: PayrollItem, inputs: ItemInputs) -> None:
        """Flag ``item`` when ``inputs`` carry a basic other than the stored one."""
        if round2(inputs.basic_salary) != item.basic_salary:
            item.basic_salary_edited = True

    @staticmethod
    def recalculation_inputs(item: PayrollItem, employee: Employee) -> tuple[ItemInputs, bool]:
        """Inputs for recalculating ``item`` and whether to pro-rate them.

        An unedited basic is rebuilt from the employee's master data and
        pro-rated from the current hire and last working dates. A basic
        entered by hand is kept as stored.
        """
        inputs = ItemInputs.from_item(item)
        if item.basic_salary_edited:
            return inputs, False
        master_basic = Decimal(employee.default_basic_salary or ZERO)
        return replace(inputs, basic_salary=master_basic), True

    def _apply_variance(
        self,
        item: PayrollItem,
        employee: Employee,
        previous: PayrollItem | None,
        threshold: Decimal,
    ) -> None:
        if previous is None:
            return
        item.prev_month_net = previous.net_pay
        item.variance_amount = item.net_pay - previous.net_pay
        if previous.net_pay > 0:
            item.variance_percent = round2(item.variance_amount / previous.net_pay * 100)
            if abs(item.variance_percent) > threshold:
                logger.warning(
                    "Employee %s net pay changed %s%% from last month",
                    employee.emp_code, item.variance_percent,
                )

    async def period_for(self, run: PayrollRun) -> PeriodContext:
        company = await self.get_company()
        return PeriodContext.for_company(run.year, run.month, company.settings)

    def require_draft(self, run: PayrollRun) -> None:
        if not PayrollRunStateMachine.can_modify_items(run.status):
            raise AlreadyFinalized(run.id)

    async def recalculate_all(self, run_id: UUID, actor: str | None = None) -> dict[str, int]:
        """Recalculate every item of a draft run from current master data."""
        async with self.locks.exclusive(run_key(run_id)):
            run = await self.get_run(run_id)
            self.require_draft(run)
            period = await self.period_for(run)
            rows = await self.list_items(run_id)
            for item, employee in rows:
                inputs, prorate = self.recalculation_inputs(item, employee)
                self.calculate_into(item, employee, period, inputs, prorate)
            run.working_days = period.working_days
            self._seal_totals(run, [item for item, _ in rows])
            self.clear_approval(run)
            await record_audit(
                self.session, self.company_id, "payroll_run", run.id, "recalculated", actor,
                {"items": len(rows)},
            )
        logger.info("Recalculated %d item(s) in run %s", len(rows), run_id)
        return {"recalculated": len(rows), "total": len(rows)}

    async def recalculate_item(self, item_id: UUID) -> dict[str, int]:
        """Recalculate one item of a draft run from current master data."""
        item = await self.get_item(item_id)
        async with self.locks.exclusive(run_key(item.run_id)):
            await self.session.refresh(item)
            run = await self.get_run(item.run_id)
            self.require_draft(run)
            employee = await self._employee(item.employee_id)
            period = await self.period_for(run)
            inputs, prorate = self.recalculation_inputs(item, employee)
            self.calculate_into(item, employee, period, inputs, prorate)
            await self.refresh_totals(run)
            self.clear_approval(run)
        return {"recalculated": 1, "total": 1}

    async def update_item(
        self, item_id: UUID, partial: dict[str, Any], actor: str | None = None
    ) -> PayrollItem:
        """Merge ``partial`` into a draft item and recalculate it.

        ``ot_amount`` sets the OT override. Keys that are neither calculator
        inputs nor remarks (such as derived totals echoed back by a client)
        are ignored. A basic that differs from the stored one is kept on
        later recalculation.
        """
        self.validate_partial(partial)
        item = await self.get_item(item_id)
        async with self.locks.exclusive(run_key(item.run_id)):
            await self.session.refresh(item)
            run = await self.get_run(item.run_id)
            self.require_draft(run)
            employee = await self._employee(item.employee_id)
            period = await self.period_for(run)

            inputs = ItemInputs.from_item(item).merged(partial)
            calc = self.calculate(employee, period, inputs)
            self.note_basic_edit(item, inputs)
            self.apply_calculation(item, calc, prorated=False)
            for name in ITEM_TEXT_FIELDS:
                if name in partial:
                    setattr(item, name, partial[name] or None)

            await self.refresh_totals(run)
            self.clear_approval(run)
            editable = ItemInputs.accepted_names() + ITEM_TEXT_FIELDS
            changed = sorted(k for k in partial if k in editable)
            await record_audit(
                self.session, self.company_id, "payroll_item", item.id, "updated", actor,
                {"fields": changed},
            )
        return item

    async def delete_item(self, item_id: UUID, actor: str | None = None) -> None:
        """Remove an item from a draft run."""
        item = await self.get_item(item_id)
        async with self.locks.exclusive(run_key(item.run_id)):
            run = await self.get_run(item.run_id)
            self.require_draft(run)
            await self.session.execute(
                update(Claim).where(Claim.linked_item_id == item.id).values(linked_item_id=None)
            )
            await self.session.delete(item)
            await self.session.flush()
            await self.refresh_totals(run)
            self.clear_approval(run)
            await record_audit(
                self.session, self.company_id, "payroll_item", item_id, "deleted", actor,
                {"employee_id": item.employee_id},
            )

    async def approve_run(self, run_id: UUID, actor: str | None = None) -> PayrollRun:
        """Record approval of a draft run."""
        async with self.locks.exclusive(run_key(run_id)):
            run = await self.get_run(run_id)
            self.require_draft(run)
            run.approved_at = datetime.now(timezone.utc)
            run.approved_by = actor
            await record_audit(self.session, self.company_id, "payroll_run", run.id, "approved", actor)
        return run

    async def finalize_run(self, run_id: UUID, actor: str | None = None) -> PayrollRun:
        """Seal a draft run: draft → finalized.

        Totals are recomputed in the same transaction. Approved claims paid by
        the run are linked to their items and advance deductions reduce the
        balances of the advances they recover.
        """
        async with self.locks.exclusive(run_key(run_id)):
            run = await self.get_run(run_id)
            if run.status == PayrollRunStatus.FINALIZED:
                raise AlreadyFinalized(run.id)
            PayrollRunStateMachine.validate_transition(run.status, PayrollRunStatus.FINALIZED)

            company = await self.get_company()
            features = company.settings.features
            if features.require_approval and run.approved_at is None:
                raise ApprovalRequiredError(run.id)

            rows = await self.list_items(run_id)
            items = [item for item, _ in rows]
            linked = 0
            if features.auto_claims_linking:
                linked = await self._link_claims(run, items)
            recovered = 0
            if features.auto_advance_deduction:
                recovered = await self._recover_advances(run, items)

            self._seal_totals(run, items)
            run.status = PayrollRunStatus.FINALIZED.value
            run.finalized_at = datetime.now(timezone.utc)
            run.finalized_by = actor
            await record_audit(
                self.session, self.company_id, "payroll_run", run.id, "finalized", actor,
                {
                    "total_net": run.total_net,
                    "claims_linked": linked,
                    "advances_recovered": recovered,
                },
            )
        logger.info("Finalized payroll run %s (%d items)", run_id, len(items))
        return run

    async def _link_claims(self, run: PayrollRun, items: list[PayrollItem]) -> int:
        payable = {
            item.employee_id: item
            for item in items
            if item.claims_override is None and item.claims_amount > 0
        }
        claims = await self.period_inputs.approved_claims(
            list(payable), run.period_start, run.period_end
        )
        linked = 0
        for employee_id, employee_claims in claims.items():
            for claim in employee_claims:
                claim.linked_item_id = payable[employee_id].id
                claim.status = "paid"
                linked += 1
        return linked

    async def _recover_advances(self, run: PayrollRun, items: list[PayrollItem]) -> int:
        """Apply each item's advance deduction to the employee's due advances.

        Oldest advances are recovered first. An advance whose balance reaches
        0 is completed and linked to the item.
        """
        deducting = {item.employee_id: item for item in items if item.advance_deduction > 0}
        due = await self.period_inputs.due_advances(list(deducting), run.year, run.month)
        recovered = 0
        for employee_id, advances in due.items():
            item = deducting[employee_id]
            left = item.advance_deduction
            for advance in advances:
                if left <= 0:
                    break
                amount = min(advance.remaining_balance, left)
                advance.total_deducted += amount
                advance.remaining_balance -= amount
                if advance.remaining_balance == 0:
                    advance.status = "completed"
                    advance.linked_item_id = item.id
                self.session.add(
                    SalaryAdvanceDeduction(
                        advance_id=advance.id,
                        item_id=item.id,
                        amount=amount,
                        year=run.year,
                        month=run.month,
                    )
                )
                left -= amount
                recovered += 1
        return recovered

    async def _restore_advances(self, item_ids: Any) -> None:
        """Give back what the items recovered from salary advances."""
        result = await self.session.execute(
            select(SalaryAdvanceDeduction, SalaryAdvance)
            .join(SalaryAdvance, SalaryAdvanceDeduction.advance_id == SalaryAdvance.id)
            .where(SalaryAdvanceDeduction.item_id.in_(item_ids))
        )
        for deduction, advance in result.all():
            advance.total_deducted -= deduction.amount
            advance.remaining_balance += deduction.amount
            if advance.status == "completed":
                advance.status = "active"
            advance.linked_item_id = None
        await self.session.flush()
        await self.session.execute(
            delete(SalaryAdvanceDeduction).where(SalaryAdvanceDeduction.item_id.in_(item_ids))
        )

    async def delete_run(
        self, run_id: UUID, force: bool = False, actor: str | None = None
    ) -> None:
        """Delete a run and its items.

        A finalized run is deleted only with ``force=True``; its claims go
        back to approved-and-unpaid and its advance recoveries are reversed.
        """
        async with self.locks.exclusive(run_key(run_id)):
            run = await self.get_run(run_id)
            if run.status == PayrollRunStatus.FINALIZED and not force:
                raise AlreadyFinalized(run.id)

            item_ids = select(PayrollItem.id).where(PayrollItem.run_id == run.id)
            await self.session.execute(
                update(Claim)
                .where(Claim.linked_item_id.in_(item_ids))
                .values(linked_item_id=None, status="approved")
            )
            await self._restore_advances(item_ids)
            await self.session.execute(delete(PayrollItem).where(PayrollItem.run_id == run.id))
            await self.session.delete(run)
            await record_audit(
                self.session, self.company_id, "payroll_run", run_id, "deleted", actor,
                {"status": run.status, "year": run.year, "month": run.month, "force": force},
            )
        logger.info("Deleted payroll run %s (status was %s)", run_id, run.status)

    @staticmethod
    def _seal_totals(run: PayrollRun, items: list[PayrollItem]) -> None:
        run.total_gross = sum((i.gross_salary for i in items), ZERO)
        run.total_deductions = sum((i.total_deductions for i in items), ZERO)
        run.total_net = sum((i.net_pay for i in items), ZERO)
        run.total_employer_cost = sum((i.employer_total_cost for i in items), ZERO)
        run.employee_count = len(items)

    async def refresh_totals(self, run: PayrollRun) -> None:
        """Recompute the run's cached totals from its items."""
        await self.session.flush()
        result = await self.session.execute(
            select(PayrollItem).where(PayrollItem.run_id == run.id)
        )
        self._seal_totals(run, list(result.scalars().all()))

    @staticmethod
    def clear_approval(run: PayrollRun) -> None:
        run.approved_at = None
        run.approved_by = None

    async def _employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def get_payslip(self, item_id: UUID) -> dict[str, Any]:
        """Everything needed to render one employee's payslip."""
        item = await self.get_item(item_id)
        run = await self.get_run(item.run_id)
        employee = await self._employee(item.employee_id)
        company = await self.get_company()
        department = (
            await self.session.get(Department, employee.department_id)
            if employee.department_id
            else None
        )
        return {
            "company": {"name": company.name, "registration_no": company.registration_no},
            "employee": {
                "emp_code": employee.emp_code,
                "name": employee.name,
                "ic_number": employee.ic_number,
                "department": department.name if department else None,
                "epf_number": employee.epf_number,
                "socso_number": employee.socso_number,
                "tax_number": employee.tax_number,
                "bank_name": employee.bank_name,
                "bank_account_no": employee.bank_account_no,
            },
            "period": {
                "year": run.year,
                "month": run.month,
                "start": run.period_start,
                "end": run.period_end,
                "status": run.status,
            },
            "earnings": {
                "basic_salary": item.basic_salary,
                "fixed_allowance": item.fixed_allowance,
                "ot_hours": item.ot_hours,
                "ot_amount": item.ot_amount,
                "ph_days_worked": item.ph_days_worked,
                "ph_pay": item.ph_pay,
                "incentive": item.incentive,
                "commission": item.commission,
                "trade_commission": item.trade_commission,
                "outstation": item.outstation,
                "bonus": item.bonus,
                "claims_amount": item.claims_amount,
            },
            "deductions": {
                "epf_employee": item.epf_employee,
                "socso_employee": item.socso_employee,
                "eis_employee": item.eis_employee,
                "pcb": item.pcb,
                "unpaid_leave_days": item.unpaid_leave_days,
                "unpaid_leave_deduction": item.unpaid_leave_deduction,
                "advance_deduction": item.advance_deduction,
                "other_deductions": item.other_deductions,
                "deduction_remarks": item.deduction_remarks,
            },
            "employer_contributions": {
                "epf_employer": item.epf_employer,
                "socso_employer": item.socso_employer,
                "eis_employer": item.eis_employer,
            },
            "totals": {
                "gross_salary": item.gross_salary,
                "total_deductions": item.total_deductions,
                "net_pay": item.net_pay,
                "employer_total_cost": item.employer_total_cost,
            },
        }

    @staticmethod
    def validate_partial(partial: dict[str, Any]) -> None:
        """Reject partial updates that carry nothing editable."""
        editable = set(ItemInputs.accepted_names()) | set(ITEM_TEXT_FIELDS)
        if not editable.intersection(partial):
            raise ValidationError("No editable fields in update")
