"""Company and organizational unit models."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from mypayroll.company_config import PayrollSettings
from mypayroll.models.base import Base, TimestampMixin


class Company(Base, TimestampMixin):
    """Employer company."""

    __tablename__ = "company"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    registration_no: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_employer_no: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_employer_no: Mapped[str | None] = mapped_column(String, nullable=True)
    grouping_type: Mapped[str] = mapped_column(String, nullable=False, default="department")
    payroll_settings: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "grouping_type IN ('department', 'outlet')",
            name="company_grouping_type_check",
        ),
    )

    @property
    def settings(self) -> PayrollSettings:
        """Parsed payroll settings."""
        return PayrollSettings.from_dict(self.payroll_settings)


class Department(Base, TimestampMixin):
    """Department within a company."""

    __tablename__ = "department"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="department_company_name_unique"),
    )


class Outlet(Base, TimestampMixin):
    """Outlet (branch) within a company."""

    __tablename__ = "outlet"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="outlet_company_name_unique"),
    )
