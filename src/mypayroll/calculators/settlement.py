"""Final settlement for resigning employees."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from mypayroll.calculators.money import ZERO, require_non_negative, round2
from mypayroll.errors import ValidationError

# Employment Act 1955 s.12(2) notice by length of service
NOTICE_DAYS = ((24, 28), (60, 42))
NOTICE_DAYS_LONG_SERVICE = 56


def service_months(hire_date: date, as_of: date) -> int:
    """Whole calendar months between hire and ``as_of``."""
    return (as_of.year - hire_date.year) * 12 + (as_of.month - hire_date.month)


def required_notice_days(hire_date: date | None, notice_date: date) -> int:
    """Notice the employee owes: 4, 6 or 8 weeks by length of service."""
    if hire_date is None:
        return NOTICE_DAYS[0][1]
    months = service_months(hire_date, notice_date)
    for below, days in NOTICE_DAYS:
        if months < below:
            return days
    return NOTICE_DAYS_LONG_SERVICE


@dataclass
class SettlementInputs:
    """Figures the settlement is computed from."""

    basic_salary: Decimal
    last_working_day: date
    working_days: int = 22
    unused_leave_days: Decimal = ZERO
    pending_claims: Decimal = ZERO
    encashment_rate: Decimal = Decimal("1.0")
    hire_date: date | None = None
    salary_already_paid: bool = False


@dataclass
class Settlement:
    """Breakdown of a final settlement."""

    days_worked: int
    days_in_month: int
    pro_rated_salary: Decimal
    daily_rate: Decimal
    leave_encashment_days: Decimal
    leave_encashment_amount: Decimal
    pending_claims: Decimal
    total_final_settlement: Decimal
    salary_already_paid: bool = False


def calculate_settlement(inputs: SettlementInputs) -> Settlement:
    """Compute the final settlement.

    days_worked counts calendar days from the start of the last month (or the
    hire date, if later) through the last working day. When the last month's
    salary was already paid by a finalized payroll run, the pro-rated salary
    is reported as 0.
    """
    require_non_negative(inputs.basic_salary, "basic_salary")
    require_non_negative(inputs.unused_leave_days, "unused_leave_days")
    require_non_negative(inputs.pending_claims, "pending_claims")
    if inputs.working_days < 1:
        raise ValidationError("working_days must be positive", "working_days")

    lwd = inputs.last_working_day
    days_in_month = calendar.monthrange(lwd.year, lwd.month)[1]
    start = date(lwd.year, lwd.month, 1)
    if inputs.hire_date and inputs.hire_date > start:
        start = inputs.hire_date
    days_worked = min(max(0, (lwd - start).days + 1), days_in_month)

    pro_rated = ZERO
    if not inputs.salary_already_paid:
        pro_rated = round2(inputs.basic_salary * days_worked / days_in_month)

    daily_rate = inputs.basic_salary / inputs.working_days
    encashment = round2(inputs.unused_leave_days * daily_rate * inputs.encashment_rate)
    claims = round2(inputs.pending_claims)

    return Settlement(
        days_worked=days_worked,
        days_in_month=days_in_month,
        pro_rated_salary=pro_rated,
        daily_rate=round2(daily_rate),
        leave_encashment_days=inputs.unused_leave_days,
        leave_encashment_amount=encashment,
        pending_claims=claims,
        total_final_settlement=pro_rated + encashment + claims,
        salary_already_paid=inputs.salary_already_paid,
    )
