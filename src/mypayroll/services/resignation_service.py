"""Resignation lifecycle and final settlement.

A resignation moves pending → clearing → completed. Completion records the
settlement, marks the employee resigned and cancels leave booked after the
last working day, all in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.item_calculator import LineItemCalculator
from mypayroll.calculators.money import ZERO, round2
from mypayroll.calculators.settlement import (
    Settlement,
    SettlementInputs,
    calculate_settlement,
    required_notice_days,
)
from mypayroll.calculators.types import PeriodContext
from mypayroll.errors import (
    InvalidTransitionError,
    LeavesPendingError,
    NotFoundError,
    ValidationError,
)
from mypayroll.models import (
    Claim,
    Company,
    Employee,
    LeaveBalance,
    LeaveRecord,
    LeaveType,
    PayrollItem,
    PayrollRun,
    Resignation,
)
from mypayroll.services.audit import record_audit
from mypayroll.services.locking_service import RunLockManager, employee_key
from mypayroll.services.state_machine import (
    PayrollRunStatus,
    ResignationStateMachine,
    ResignationStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class LeaveCancellation:
    """Leave cancelled because it starts after the last working day."""

    pending: int = 0
    approved: int = 0
    restored_days: Decimal = ZERO

    @property
    def total(self) -> int:
        return self.pending + self.approved


@dataclass
class ProcessResult:
    """Outcome of completing a resignation."""

    resignation: Resignation
    settlement: Settlement
    leaves_cancelled: LeaveCancellation = field(default_factory=LeaveCancellation)
    claims_settled: int = 0


class ResignationService:
    """Service for resignations within one company.

    Operations:
    - create / get / list_resignations / delete
    - approve / reject / withdraw / cancel / waive_notice
    - calculate_settlement / check_leaves / process / cleanup_leaves
    """

    def __init__(self, session: AsyncSession, company_id: UUID, lock_timeout: float | None = None):
        self.session = session
        self.company_id = company_id
        self.locks = RunLockManager(session, lock_timeout)

    async def get(self, resignation_id: UUID) -> Resignation:
        resignation = await self.session.get(Resignation, resignation_id)
        if resignation is None or resignation.company_id != self.company_id:
            raise NotFoundError("Resignation", resignation_id)
        return resignation

    async def list_resignations(
        self,
        status: str | None = None,
        employee_id: UUID | None = None,
    ) -> list[tuple[Resignation, Employee]]:
        """Resignations with their employees, latest last working day first."""
        query = (
            select(Resignation, Employee)
            .join(Employee, Resignation.employee_id == Employee.id)
            .where(Resignation.company_id == self.company_id)
        )
        if status is not None:
            query = query.where(Resignation.status == status)
        if employee_id is not None:
            query = query.where(Resignation.employee_id == employee_id)
        query = query.order_by(Resignation.last_working_day.desc(), Employee.emp_code)
        result = await self.session.execute(query)
        return [(resignation, employee) for resignation, employee in result.all()]

    async def _employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None or employee.company_id != self.company_id:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _company(self) -> Company:
        company = await self.session.get(Company, self.company_id)
        if company is None:
            raise NotFoundError("Company", self.company_id)
        return company

    async def create(
        self,
        employee_id: UUID,
        notice_date: date,
        last_working_day: date,
        reason: str | None = None,
        remarks: str | None = None,
        actor: str | None = None,
    ) -> Resignation:
        """Record a resignation notice.

        An employee may have only one pending or clearing resignation.
        """
        if last_working_day < notice_date:
            raise ValidationError(
                "last_working_day cannot be before notice_date", "last_working_day"
            )
        async with self.locks.exclusive(employee_key(employee_id)):
            employee = await self._employee(employee_id)
            if employee.status != "active":
                raise ValidationError(f"Employee {employee.emp_code} is not active", "employee_id")

            active = await self.session.scalar(
                select(Resignation.id).where(
                    Resignation.employee_id == employee_id,
                    Resignation.status.in_([s.value for s in ResignationStateMachine.ACTIVE]),
                )
            )
            if active is not None:
                raise ValidationError(
                    f"Employee {employee.emp_code} already has an active resignation",
                    "employee_id",
                )

            resignation = Resignation(
                company_id=self.company_id,
                employee_id=employee_id,
                notice_date=notice_date,
                last_working_day=last_working_day,
                reason=reason,
                remarks=remarks,
                status=ResignationStatus.PENDING.value,
                required_notice_days=required_notice_days(employee.hire_date, notice_date),
                actual_notice_days=(last_working_day - notice_date).days,
            )
            self.session.add(resignation)
            await self.session.flush()
            await record_audit(
                self.session, self.company_id, "resignation", resignation.id, "created", actor,
                {"employee_id": employee_id, "last_working_day": last_working_day},
            )

        if resignation.actual_notice_days < resignation.required_notice_days:
            logger.warning(
                "Resignation %s gives %d day(s) notice, %d required",
                resignation.id, resignation.actual_notice_days, resignation.required_notice_days,
            )
        logger.info("Created resignation %s for employee %s", resignation.id, employee.emp_code)
        return resignation

    async def _transition(
        self,
        resignation_id: UUID,
        to_status: ResignationStatus,
        actor: str | None,
        details: dict[str, Any] | None = None,
    ) -> tuple[Resignation, Employee]:
        resignation = await self.get(resignation_id)
        ResignationStateMachine.validate_transition(resignation.status, to_status)
        employee = await self._employee(resignation.employee_id)
        resignation.status = to_status.value
        await record_audit(
            self.session, self.company_id, "resignation", resignation.id, to_status.value,
            actor, details,
        )
        return resignation, employee

    async def approve(self, resignation_id: UUID, actor: str | None = None) -> Resignation:
        """pending → clearing; the employee's last working day is set."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation, employee = await self._transition(
                resignation_id, ResignationStatus.CLEARING, actor
            )
            resignation.approved_at = datetime.now(timezone.utc)
            resignation.approved_by = actor
            employee.last_working_day = resignation.last_working_day
        logger.info("Approved resignation %s", resignation_id)
        return resignation

    async def reject(
        self, resignation_id: UUID, reason: str | None = None, actor: str | None = None
    ) -> Resignation:
        """pending → rejected."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation, _ = await self._transition(
                resignation_id, ResignationStatus.REJECTED, actor, {"reason": reason}
            )
            resignation.cancel_reason = reason
        return resignation

    async def withdraw(self, resignation_id: UUID, actor: str | None = None) -> Resignation:
        """pending → withdrawn, at the employee's request."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation, _ = await self._transition(
                resignation_id, ResignationStatus.WITHDRAWN, actor
            )
        return resignation

    async def cancel(
        self, resignation_id: UUID, reason: str | None = None, actor: str | None = None
    ) -> Resignation:
        """pending or clearing → cancelled; the employee stays active."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation, employee = await self._transition(
                resignation_id, ResignationStatus.CANCELLED, actor, {"reason": reason}
            )
            resignation.cancelled_at = datetime.now(timezone.utc)
            resignation.cancel_reason = reason
            if employee.status == "active":
                employee.last_working_day = None
        logger.info("Cancelled resignation %s", resignation_id)
        return resignation

    async def waive_notice(
        self, resignation_id: UUID, waived: bool = True, actor: str | None = None
    ) -> Resignation:
        """Waive (or reinstate) the notice period of an active resignation."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation = await self.get(resignation_id)
            if not ResignationStateMachine.is_active(resignation.status):
                raise InvalidTransitionError(
                    resignation.status, resignation.status, "resignation is closed"
                )
            resignation.notice_waived = waived
            await record_audit(
                self.session, self.company_id, "resignation", resignation.id,
                "notice_waived" if waived else "notice_reinstated", actor,
            )
        return resignation

    async def delete(self, resignation_id: UUID, actor: str | None = None) -> None:
        """Delete a pending resignation."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation = await self.get(resignation_id)
            if resignation.status != ResignationStatus.PENDING:
                raise InvalidTransitionError(
                    resignation.status, "deleted", "only pending resignations can be deleted"
                )
            await self.session.delete(resignation)
            await record_audit(
                self.session, self.company_id, "resignation", resignation_id, "deleted", actor,
                {"employee_id": resignation.employee_id},
            )
        logger.info("Deleted resignation %s", resignation_id)

    async def _month_items(
        self, employee_id: UUID, year: int, month: int
    ) -> list[tuple[PayrollItem, PayrollRun]]:
        """The employee's items in any run for (year, month)."""
        result = await self.session.execute(
            select(PayrollItem, PayrollRun)
            .join(PayrollRun, PayrollItem.run_id == PayrollRun.id)
            .where(
                PayrollItem.employee_id == employee_id,
                PayrollRun.year == year,
                PayrollRun.month == month,
            )
        )
        return [(item, run) for item, run in result.all()]

    async def _pending_claims(self, employee_id: UUID, through: date) -> list[Claim]:
        """Approved, unlinked claims up to ``through`` that no draft run will pay.

        A draft item that includes claims links every approved claim of its
        month when the run is finalized, so those months are left to payroll.
        """
        result = await self.session.execute(
            select(PayrollRun.year, PayrollRun.month)
            .join(PayrollItem, PayrollItem.run_id == PayrollRun.id)
            .where(
                PayrollItem.employee_id == employee_id,
                PayrollRun.status == PayrollRunStatus.DRAFT.value,
                PayrollItem.claims_override.is_(None),
                PayrollItem.claims_amount > 0,
            )
        )
        left_to_payroll = {(year, month) for year, month in result.all()}
        result = await self.session.execute(
            select(Claim).where(
                Claim.employee_id == employee_id,
                Claim.status == "approved",
                Claim.linked_item_id.is_(None),
                Claim.claim_date <= through,
            )
        )
        return [
            claim
            for claim in result.scalars().all()
            if (claim.claim_date.year, claim.claim_date.month) not in left_to_payroll
        ]

    async def _unused_leave_days(self, employee_id: UUID, year: int) -> Decimal:
        result = await self.session.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
                LeaveType.is_encashable.is_(True),
            )
        )
        return sum((b.available_days for b in result.scalars().all()), ZERO)

    async def _salary_paid_for(self, employee_id: UUID, day: date) -> bool:
        """Whether a run, draft or finalized, pays the month containing ``day``."""
        return bool(await self._month_items(employee_id, day.year, day.month))

    async def _require_prorated_drafts(self, resignation: Resignation, employee: Employee) -> None:
        """Reject completion while a draft still pays a full month past the last day."""
        lwd = resignation.last_working_day
        expected, _ = LineItemCalculator.prorate(
            round2(Decimal(employee.default_basic_salary or ZERO)),
            PeriodContext(year=lwd.year, month=lwd.month),
            employee.hire_date,
            lwd,
        )
        for item, run in await self._month_items(employee.id, lwd.year, lwd.month):
            if run.status != PayrollRunStatus.DRAFT or item.basic_salary_edited:
                continue
            if item.basic_salary != expected:
                raise ValidationError(
                    f"Draft run {run.id} pays basic {item.basic_salary} for "
                    f"{lwd.year}-{lwd.month:02d}; recalculate it before processing",
                    "last_working_day",
                )

    async def _settle(self, resignation: Resignation, employee: Employee) -> tuple[Settlement, list[Claim]]:
        company = await self._company()
        settings = company.settings
        lwd = resignation.last_working_day
        claims = await self._pending_claims(employee.id, lwd)
        settlement = calculate_settlement(
            SettlementInputs(
                basic_salary=employee.default_basic_salary,
                last_working_day=lwd,
                working_days=settings.working_days_for(lwd.year),
                unused_leave_days=await self._unused_leave_days(employee.id, lwd.year),
                pending_claims=sum((c.amount for c in claims), ZERO),
                encashment_rate=settings.settlement.leave_encashment_rate,
                hire_date=employee.hire_date,
                salary_already_paid=await self._salary_paid_for(employee.id, lwd),
            )
        )
        return settlement, claims

    async def calculate_settlement(self, resignation_id: UUID) -> Settlement:
        """Preview the final settlement without saving it."""
        resignation = await self.get(resignation_id)
        employee = await self._employee(resignation.employee_id)
        settlement, _ = await self._settle(resignation, employee)
        return settlement

    async def _leaves_after(
        self, resignation: Resignation
    ) -> list[tuple[LeaveRecord, LeaveType]]:
        result = await self.session.execute(
            select(LeaveRecord, LeaveType)
            .join(LeaveType, LeaveRecord.leave_type_id == LeaveType.id)
            .where(
                LeaveRecord.employee_id == resignation.employee_id,
                LeaveRecord.status.in_(["pending", "approved"]),
                LeaveRecord.start_date > resignation.last_working_day,
            )
            .order_by(LeaveRecord.start_date)
        )
        return [(leave, leave_type) for leave, leave_type in result.all()]

    @staticmethod
    def _describe(leave: LeaveRecord, leave_type: LeaveType) -> dict[str, Any]:
        return {
            "id": str(leave.id),
            "leave_type": leave_type.name,
            "status": leave.status,
            "start_date": leave.start_date.isoformat(),
            "end_date": leave.end_date.isoformat(),
            "total_days": str(leave.total_days),
        }

    async def check_leaves(self, resignation_id: UUID) -> dict[str, Any]:
        """Approved and pending leaves that start after the last working day."""
        resignation = await self.get(resignation_id)
        leaves = await self._leaves_after(resignation)
        approved = [self._describe(leave, kind) for leave, kind in leaves if leave.status == "approved"]
        pending = [self._describe(leave, kind) for leave, kind in leaves if leave.status == "pending"]
        return {
            "last_working_day": resignation.last_working_day,
            "approved_leaves": approved,
            "pending_leaves": pending,
            "total_approved_days": sum(
                (Decimal(leave.total_days) for leave, _ in leaves if leave.status == "approved"), ZERO
            ),
            "total_pending_days": sum(
                (Decimal(leave.total_days) for leave, _ in leaves if leave.status == "pending"), ZERO
            ),
            "has_leaves_to_cancel": bool(leaves),
        }

    async def _cancel_leaves(
        self, leaves: list[tuple[LeaveRecord, LeaveType]], reason: str
    ) -> LeaveCancellation:
        """Cancel leaves, giving approved paid days back to their balances."""
        outcome = LeaveCancellation()
        for leave, leave_type in leaves:
            if leave.status == "approved":
                outcome.approved += 1
                if leave_type.is_paid:
                    balance = await self.session.scalar(
                        select(LeaveBalance).where(
                            LeaveBalance.employee_id == leave.employee_id,
                            LeaveBalance.leave_type_id == leave.leave_type_id,
                            LeaveBalance.year == leave.start_date.year,
                        )
                    )
                    if balance is not None:
                        days = Decimal(leave.total_days)
                        balance.used_days = max(ZERO, balance.used_days - days)
                        outcome.restored_days += days
            else:
                outcome.pending += 1
            leave.status = "cancelled"
            leave.cancel_reason = reason
        return outcome

    async def process(
        self,
        resignation_id: UUID,
        confirm_leave_cancellation: bool = False,
        settlement_date: date | None = None,
        actor: str | None = None,
    ) -> ProcessResult:
        """Complete a resignation.

        Raises LeavesPendingError, listing the leaves, when leave starting
        after the last working day exists and the caller has not confirmed
        its cancellation. Otherwise the leaves are cancelled, the settlement
        is recorded, approved claims it pays are marked paid and the employee
        becomes resigned, in one transaction.
        """
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation = await self.get(resignation_id)
            ResignationStateMachine.validate_transition(
                resignation.status, ResignationStatus.COMPLETED
            )
            employee = await self._employee(resignation.employee_id)
            await self._require_prorated_drafts(resignation, employee)

            leaves = await self._leaves_after(resignation)
            if leaves and not confirm_leave_cancellation:
                raise LeavesPendingError([self._describe(leave, kind) for leave, kind in leaves])
            cancelled = await self._cancel_leaves(leaves, "Cancelled on resignation")
            await self.session.flush()

            settlement, claims = await self._settle(resignation, employee)
            for claim in claims:
                claim.status = "paid"

            resignation.days_worked = settlement.days_worked
            resignation.pro_rated_salary = settlement.pro_rated_salary
            resignation.leave_encashment_days = settlement.leave_encashment_days
            resignation.leave_encashment_amount = settlement.leave_encashment_amount
            resignation.pending_claims_amount = settlement.pending_claims
            resignation.total_final_settlement = settlement.total_final_settlement
            resignation.settlement_date = settlement_date or resignation.last_working_day
            resignation.processed_at = datetime.now(timezone.utc)
            resignation.status = ResignationStatus.COMPLETED.value

            employee.status = "resigned"
            employee.last_working_day = resignation.last_working_day

            await record_audit(
                self.session, self.company_id, "resignation", resignation.id, "completed", actor,
                {
                    "total_final_settlement": settlement.total_final_settlement,
                    "leaves_cancelled": cancelled.total,
                    "claims_settled": len(claims),
                },
            )

        logger.info(
            "Completed resignation %s for %s: settlement %s, %d leave(s) cancelled",
            resignation.id, employee.emp_code, settlement.total_final_settlement, cancelled.total,
        )
        return ProcessResult(
            resignation=resignation,
            settlement=settlement,
            leaves_cancelled=cancelled,
            claims_settled=len(claims),
        )

    async def cleanup_leaves(
        self, resignation_id: UUID, actor: str | None = None
    ) -> LeaveCancellation:
        """Cancel leave booked after the last working day of a completed resignation."""
        resignation = await self.get(resignation_id)
        async with self.locks.exclusive(employee_key(resignation.employee_id)):
            resignation = await self.get(resignation_id)
            if resignation.status != ResignationStatus.COMPLETED:
                raise ValidationError("Leave cleanup applies to completed resignations", "status")
            leaves = await self._leaves_after(resignation)
            cancelled = await self._cancel_leaves(leaves, "Cancelled on resignation (cleanup)")
            if cancelled.total:
                await record_audit(
                    self.session, self.company_id, "resignation", resignation.id,
                    "leaves_cleaned_up", actor,
                    {"pending": cancelled.pending, "approved": cancelled.approved},
                )
        logger.info("Cleaned up %d leave(s) for resignation %s", cancelled.total, resignation_id)
        return cancelled
