"""Employee master data models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from mypayroll.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee identity, employment, pay and statutory parameters."""

    __tablename__ = "employee"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("department.id", ondelete="SET NULL"),
        nullable=True,
    )
    outlet_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("outlet.id", ondelete="SET NULL"),
        nullable=True,
    )
    emp_code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Bank
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String, nullable=True)

    # Employment
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    last_working_day: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Pay parameters
    default_basic_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    default_allowance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    ot_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Statutory parameters
    residency_status: Mapped[str] = mapped_column(String, nullable=False, default="malaysian")
    socso_category: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_voluntary_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4), nullable=True)
    marital_status: Mapped[str] = mapped_column(String, nullable=False, default="single")
    spouse_working: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    children_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    epf_number: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "emp_code", name="employee_company_code_unique"),
        CheckConstraint("status IN ('active', 'resigned')", name="employee_status_check"),
        CheckConstraint(
            "residency_status IN ('malaysian', 'pr', 'foreign')",
            name="employee_residency_check",
        ),
        CheckConstraint(
            "socso_category IS NULL OR socso_category IN ('first', 'second', 'none')",
            name="employee_socso_category_check",
        ),
        CheckConstraint(
            "marital_status IN ('single', 'married', 'divorced', 'widowed')",
            name="employee_marital_status_check",
        ),
        CheckConstraint("children_count >= 0", name="employee_children_nonneg"),
    )


class CommissionAssignment(Base, TimestampMixin):
    """Recurring commission amount assigned to an employee."""

    __tablename__ = "commission_assignment"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="commission_assignment_amount_nonneg"),
    )
