"""Payroll calculators."""

from mypayroll.calculators.item_calculator import LineItemCalculator, days_in_period
from mypayroll.calculators.money import round2
from mypayroll.calculators.settlement import (
    Settlement,
    SettlementInputs,
    calculate_settlement,
    required_notice_days,
)
from mypayroll.calculators.statutory import (
    StatutoryEngine,
    StatutoryTables,
    age_at,
    statutory,
)
from mypayroll.calculators.types import (
    ItemCalculation,
    ItemInputs,
    PeriodContext,
    StatutoryParams,
    StatutoryResult,
)

__all__ = [
    "ItemCalculation",
    "ItemInputs",
    "LineItemCalculator",
    "PeriodContext",
    "Settlement",
    "SettlementInputs",
    "StatutoryEngine",
    "StatutoryParams",
    "StatutoryResult",
    "StatutoryTables",
    "age_at",
    "calculate_settlement",
    "days_in_period",
    "required_notice_days",
    "round2",
    "statutory",
]
