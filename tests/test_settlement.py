"""Unit tests for final settlement and notice period rules."""

from datetime import date
from decimal import Decimal

import pytest

from mypayroll.calculators.settlement import (
    SettlementInputs,
    calculate_settlement,
    required_notice_days,
)
from mypayroll.errors import ValidationError


class TestSettlement:
    """Pro-rated salary, leave encashment and pending claims."""

    def test_mid_month_resignation(self):
        """4400 basic, last day 20 June, 3 unused leave days, RM120 claims."""
        result = calculate_settlement(
            SettlementInputs(
                basic_salary=Decimal("4400"),
                last_working_day=date(2025, 6, 20),
                unused_leave_days=Decimal("3"),
                pending_claims=Decimal("120"),
            )
        )
        assert result.days_worked == 20
        assert result.days_in_month == 30
        assert result.pro_rated_salary == Decimal("2933.33")
        assert result.daily_rate == Decimal("200.00")
        assert result.leave_encashment_amount == Decimal("600.00")
        assert result.pending_claims == Decimal("120.00")
        assert result.total_final_settlement == Decimal("3653.33")

    def test_salary_already_paid(self):
        result = calculate_settlement(
            SettlementInputs(
                basic_salary=Decimal("4400"),
                last_working_day=date(2025, 6, 20),
                unused_leave_days=Decimal("3"),
                salary_already_paid=True,
            )
        )
        assert result.pro_rated_salary == 0
        assert result.total_final_settlement == Decimal("600.00")

    def test_hired_in_last_month(self):
        result = calculate_settlement(
            SettlementInputs(
                basic_salary=Decimal("3000"),
                last_working_day=date(2025, 6, 20),
                hire_date=date(2025, 6, 11),
            )
        )
        assert result.days_worked == 10
        assert result.pro_rated_salary == Decimal("1000.00")

    def test_encashment_rate(self):
        result = calculate_settlement(
            SettlementInputs(
                basic_salary=Decimal("4400"),
                last_working_day=date(2025, 6, 30),
                unused_leave_days=Decimal("2"),
                encashment_rate=Decimal("0.5"),
            )
        )
        assert result.leave_encashment_amount == Decimal("200.00")
        assert result.pro_rated_salary == Decimal("4400.00")

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            calculate_settlement(
                SettlementInputs(
                    basic_salary=Decimal("3000"),
                    last_working_day=date(2025, 6, 20),
                    pending_claims=Decimal("-1"),
                )
            )


class TestNoticeDays:
    """Notice owed by length of service."""

    def test_under_two_years(self):
        assert required_notice_days(date(2024, 1, 1), date(2025, 6, 1)) == 28

    def test_two_to_five_years(self):
        assert required_notice_days(date(2022, 1, 1), date(2025, 6, 1)) == 42

    def test_five_years_or_more(self):
        assert required_notice_days(date(2015, 1, 1), date(2025, 6, 1)) == 56

    def test_unknown_hire_date(self):
        assert required_notice_days(None, date(2025, 6, 1)) == 28
