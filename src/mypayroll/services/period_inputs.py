"""Per-period inputs derived from leave records, claims and salary advances."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mypayroll.calculators.money import ZERO
from mypayroll.models import Claim, LeaveRecord, LeaveType, SalaryAdvance


def weekdays_between(start: date, end: date) -> int:
    """Monday-to-Friday days in [start, end]."""
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


class PeriodInputCollector:
    """Collects unpaid leave days, approved claims and advance recoveries for a month."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def unpaid_leave_days(
        self, employee_ids: list[UUID], period_start: date, period_end: date
    ) -> dict[UUID, Decimal]:
        """Approved unpaid leave days falling inside the period.

        A leave entirely inside the period counts its recorded days (so half
        days survive); one that spans the period boundary counts weekdays in
        the overlap.
        """
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(LeaveRecord)
            .join(LeaveType, LeaveRecord.leave_type_id == LeaveType.id)
            .where(
                LeaveRecord.employee_id.in_(employee_ids),
                LeaveRecord.status == "approved",
                LeaveType.is_paid.is_(False),
                LeaveRecord.start_date <= period_end,
                LeaveRecord.end_date >= period_start,
            )
        )
        totals: dict[UUID, Decimal] = defaultdict(Decimal)
        for leave in result.scalars().all():
            if leave.start_date >= period_start and leave.end_date <= period_end:
                totals[leave.employee_id] += Decimal(leave.total_days)
            else:
                overlap = weekdays_between(
                    max(leave.start_date, period_start), min(leave.end_date, period_end)
                )
                totals[leave.employee_id] += Decimal(overlap)
        return dict(totals)

    async def approved_claims(
        self, employee_ids: list[UUID], period_start: date, period_end: date
    ) -> dict[UUID, list[Claim]]:
        """Approved claims dated in the period and not yet paid by any item."""
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(Claim).where(
                Claim.employee_id.in_(employee_ids),
                Claim.status == "approved",
                Claim.linked_item_id.is_(None),
                Claim.claim_date >= period_start,
                Claim.claim_date <= period_end,
            )
        )
        claims: dict[UUID, list[Claim]] = defaultdict(list)
        for claim in result.scalars().all():
            claims[claim.employee_id].append(claim)
        return dict(claims)

    async def due_advances(
        self, employee_ids: list[UUID], year: int, month: int
    ) -> dict[UUID, list[SalaryAdvance]]:
        """Active advances with something to recover in (year, month), oldest first."""
        if not employee_ids:
            return {}
        result = await self.session.execute(
            select(SalaryAdvance)
            .where(
                SalaryAdvance.employee_id.in_(employee_ids),
                SalaryAdvance.status == "active",
                SalaryAdvance.remaining_balance > 0,
            )
            .order_by(SalaryAdvance.advance_date, SalaryAdvance.created_at)
        )
        advances: dict[UUID, list[SalaryAdvance]] = defaultdict(list)
        for advance in result.scalars().all():
            if advance.due_for(year, month) > 0:
                advances[advance.employee_id].append(advance)
        return dict(advances)

    async def advance_deductions(
        self, employee_ids: list[UUID], year: int, month: int
    ) -> dict[UUID, Decimal]:
        """Total advance recovery due per employee in (year, month)."""
        due = await self.due_advances(employee_ids, year, month)
        return {
            employee_id: sum((a.due_for(year, month) for a in advances), ZERO)
            for employee_id, advances in due.items()
        }
