"""Resignation and final settlement model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mypayroll.models.base import Base, TimestampMixin


class Resignation(Base, TimestampMixin):
    """Employee resignation with its settlement figures."""

    __tablename__ = "resignation"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    notice_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_working_day: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    required_notice_days: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_notice_days: Mapped[int] = mapped_column(Integer, nullable=False)
    notice_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Settlement, recorded on completion
    days_worked: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pro_rated_salary: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    leave_encashment_days: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    leave_encashment_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    pending_claims_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    total_final_settlement: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    settlement_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'clearing', 'completed', 'cancelled', 'withdrawn', 'rejected')",
            name="resignation_status_check",
        ),
        CheckConstraint("last_working_day >= notice_date", name="resignation_dates_check"),
    )
