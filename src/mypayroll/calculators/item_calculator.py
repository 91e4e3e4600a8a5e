"""Line-item calculator: earnings, OT, pro-ration, statutory and net pay."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from mypayroll.calculators.money import ZERO, round2
from mypayroll.calculators.statutory import StatutoryEngine
from mypayroll.calculators.types import (
    ItemCalculation,
    ItemInputs,
    PeriodContext,
    StatutoryParams,
)


def days_in_period(
    period: PeriodContext,
    hire_date: date | None = None,
    last_working_day: date | None = None,
) -> int:
    """Calendar days of the month the employee was employed, clamped at 0."""
    start = max(period.period_start, hire_date) if hire_date else period.period_start
    end = min(period.period_end, last_working_day) if last_working_day else period.period_end
    return max(0, (end - start).days + 1)


class LineItemCalculator:
    """Computes one payroll item from its inputs.

    Steps, in order:
    1. Pro-rate a full monthly basic for mid-month joiners and leavers
    2. OT amount = basic / working_days / hours_per_day x ot_hours x multiplier
    3. PH pay = basic / working_days x ph_days_worked x multiplier
    4. Unpaid leave deduction = basic / working_days x unpaid_leave_days
    5. Gross = sum of all earnings (claims included)
    6. Statutory base = basic + commission + trade_commission + bonus
    7. Statutory contributions, with overrides replacing computed values
    8. Net = gross - total deductions

    Money is rounded to cents half away from zero.
    """

    def __init__(self, statutory: StatutoryEngine | None = None):
        self.statutory = statutory or StatutoryEngine()

    @staticmethod
    def prorate(
        basic_salary: Decimal,
        period: PeriodContext,
        hire_date: date | None,
        last_working_day: date | None,
    ) -> tuple[Decimal, int | None]:
        """Return the pro-rated basic and the days worked, or (basic, None)."""
        worked = days_in_period(period, hire_date, last_working_day)
        if worked >= period.days_in_month:
            return basic_salary, None
        return round2(basic_salary * worked / period.days_in_month), worked

    def calculate(
        self,
        inputs: ItemInputs,
        params: StatutoryParams,
        period: PeriodContext,
        *,
        hire_date: date | None = None,
        last_working_day: date | None = None,
        prorate: bool = False,
        ot_eligible: bool = True,
    ) -> ItemCalculation:
        """Calculate an item.

        ``prorate`` applies only when the basic salary is the full monthly
        figure: at run creation, and when an unedited basic is rebuilt from
        master data. A stored basic is used as is.
        """
        inputs.validate()
        warnings: list[str] = []

        basic = round2(inputs.basic_salary)
        prorated_days = None
        if prorate:
            basic, prorated_days = self.prorate(basic, period, hire_date, last_working_day)

        working_days = Decimal(period.working_days)
        daily_rate = basic / working_days

        if not ot_eligible:
            ot_amount = ZERO
        elif inputs.ot_override is not None:
            ot_amount = round2(inputs.ot_override)
        else:
            hourly_rate = daily_rate / period.hours_per_day
            ot_amount = round2(hourly_rate * inputs.ot_hours * period.ot_multiplier)

        ph_pay = round2(daily_rate * inputs.ph_days_worked * period.ph_multiplier)
        unpaid_leave_deduction = round2(daily_rate * inputs.unpaid_leave_days)

        claims_amount = round2(
            inputs.claims_override if inputs.claims_override is not None else inputs.claims_amount
        )
        fixed_allowance = round2(inputs.fixed_allowance)
        incentive = round2(inputs.incentive)
        commission = round2(inputs.commission)
        trade_commission = round2(inputs.trade_commission)
        outstation = round2(inputs.outstation)
        bonus = round2(inputs.bonus)

        gross = round2(
            basic
            + fixed_allowance
            + ot_amount
            + ph_pay
            + incentive
            + commission
            + trade_commission
            + outstation
            + bonus
            + claims_amount
        )

        toggles = period.toggles
        statutory_base = basic + commission + trade_commission + bonus
        if toggles.statutory_on_ot:
            statutory_base += ot_amount
        if toggles.statutory_on_allowance:
            statutory_base += fixed_allowance
        if toggles.statutory_on_incentive:
            statutory_base += incentive

        contributions = self.statutory.compute(
            statutory_base,
            params,
            period.year,
            period.month,
            epf_override=inputs.epf_override,
            toggles=toggles,
        )
        pcb = round2(inputs.pcb_override) if inputs.pcb_override is not None else contributions.pcb

        advance_deduction = round2(inputs.advance_deduction)
        other_deductions = round2(inputs.other_deductions)
        total_deductions = round2(
            contributions.epf_employee
            + contributions.socso_employee
            + contributions.eis_employee
            + pcb
            + advance_deduction
            + other_deductions
            + unpaid_leave_deduction
        )
        net_pay = gross - total_deductions
        if net_pay < 0:
            warnings.append(f"Net pay is negative ({net_pay}); check deductions")

        return ItemCalculation(
            basic_salary=basic,
            fixed_allowance=fixed_allowance,
            ot_hours=inputs.ot_hours,
            ot_amount=ot_amount,
            ph_days_worked=inputs.ph_days_worked,
            ph_pay=ph_pay,
            incentive=incentive,
            commission=commission,
            trade_commission=trade_commission,
            outstation=outstation,
            bonus=bonus,
            claims_amount=claims_amount,
            gross_salary=gross,
            unpaid_leave_days=inputs.unpaid_leave_days,
            unpaid_leave_deduction=unpaid_leave_deduction,
            epf_employee=contributions.epf_employee,
            epf_employer=contributions.epf_employer,
            socso_employee=contributions.socso_employee,
            socso_employer=contributions.socso_employer,
            eis_employee=contributions.eis_employee,
            eis_employer=contributions.eis_employer,
            pcb=pcb,
            advance_deduction=advance_deduction,
            other_deductions=other_deductions,
            total_deductions=total_deductions,
            net_pay=net_pay,
            statutory_base=round2(statutory_base),
            employer_total_cost=round2(gross + contributions.employer_total),
            ot_override=inputs.ot_override,
            epf_override=inputs.epf_override,
            pcb_override=inputs.pcb_override,
            claims_override=inputs.claims_override,
            days_in_period=prorated_days,
            table_version=contributions.table_version,
            warnings=warnings,
        )
