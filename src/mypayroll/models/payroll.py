"""Payroll run, payroll item, claim, salary advance and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mypayroll.models.base import Base, TimestampMixin, utcnow

ZERO = Decimal("0")


class PayrollRun(Base, TimestampMixin):
    """A monthly payroll computation scoped to a partition of employees.

    ``scope_key`` is the canonical scope: ``all``, ``dept:{id}`` or
    ``outlet:{id}``.
    """

    __tablename__ = "payroll_run"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    scope_key: Mapped[str] = mapped_column(String, nullable=False, default="all")
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("department.id", ondelete="SET NULL"),
        nullable=True,
    )
    outlet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("outlet.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=22)

    # Cached totals, rewritten in the same transaction as any item write
    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_employer_cost: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "company_id", "year", "month", "scope_key",
            name="payroll_run_period_scope_unique",
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        CheckConstraint("status IN ('draft', 'finalized')", name="payroll_run_status_check"),
    )

    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="run",
        order_by="PayrollItem.created_at",
        passive_deletes=True,
    )


class PayrollItem(Base, TimestampMixin):
    """One employee's payslip contents within a run."""

    __tablename__ = "payroll_item"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    fixed_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ot_hours: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ot_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ph_days_worked: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ph_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    incentive: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    commission: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    trade_commission: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    outstation: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    bonus: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    claims_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Deductions
    unpaid_leave_days: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    unpaid_leave_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    epf_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    socso_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    eis_employer: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    advance_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    deduction_remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Overrides (NULL means use the computed value)
    ot_override: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    epf_override: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    pcb_override: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    claims_override: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    # Derived and traceability fields
    statutory_base: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    employer_total_cost: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    days_in_period: Mapped[int | None] = mapped_column(Integer, nullable=True)
    carried_forward: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set once basic_salary is entered by hand; recalculation then keeps it
    basic_salary_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    prev_month_net: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    variance_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    variance_percent: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("run_id", "employee_id", name="payroll_item_run_employee_unique"),
    )

    run: Mapped[PayrollRun] = relationship(back_populates="items")


class Claim(Base, TimestampMixin):
    """Expense claim; approved claims are reimbursed through payroll."""

    __tablename__ = "claim"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="general")
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    linked_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_item.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="claim_amount_nonneg"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'paid')",
            name="claim_status_check",
        ),
    )


def _initial_balance(context: Any) -> Decimal:
    return context.get_current_parameters()["amount"]


class SalaryAdvance(Base, TimestampMixin):
    """Salary paid out early and recovered through later payroll runs.

    ``full`` recovers the whole remaining balance in the first month due;
    ``installment`` recovers up to ``installment_amount`` a month. Recovery
    starts in the expected deduction month, or the advance's own month when
    none is set.
    """

    __tablename__ = "salary_advance"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    advance_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deduction_method: Mapped[str] = mapped_column(String, nullable=False, default="full")
    installment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_deducted: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False, default=_initial_balance)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    expected_deduction_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expected_deduction_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # The item whose deduction cleared the balance
    linked_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_item.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="salary_advance_amount_positive"),
        CheckConstraint("remaining_balance >= 0", name="salary_advance_balance_nonneg"),
        CheckConstraint(
            "deduction_method IN ('full', 'installment')",
            name="salary_advance_method_check",
        ),
        CheckConstraint(
            "deduction_method = 'full' OR installment_amount > 0",
            name="salary_advance_installment_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')",
            name="salary_advance_status_check",
        ),
    )

    @property
    def first_deduction_period(self) -> tuple[int, int]:
        if self.expected_deduction_year is not None and self.expected_deduction_month is not None:
            return self.expected_deduction_year, self.expected_deduction_month
        return self.advance_date.year, self.advance_date.month

    def due_for(self, year: int, month: int) -> Decimal:
        """Amount to recover in (year, month); 0 when nothing is due."""
        if self.status != "active" or self.remaining_balance <= 0:
            return ZERO
        if self.first_deduction_period > (year, month):
            return ZERO
        if self.deduction_method == "installment" and self.installment_amount is not None:
            return min(self.installment_amount, self.remaining_balance)
        return self.remaining_balance


class SalaryAdvanceDeduction(Base):
    """One recovery of a salary advance by a finalized payroll item."""

    __tablename__ = "salary_advance_deduction"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    advance_id: Mapped[UUID] = mapped_column(
        ForeignKey("salary_advance.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_item.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class AuditEvent(Base):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    actor: Mapped[str | None] = mapped_column(String, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
