"""Type definitions for the calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any

from mypayroll.calculators.money import (
    ZERO,
    require_non_negative,
    to_decimal,
    to_optional_decimal,
)
from mypayroll.company_config import PayrollSettings, StatutoryToggles
from mypayroll.errors import ValidationError


@dataclass
class StatutoryParams:
    """Employee parameters that drive EPF, SOCSO, EIS and PCB."""

    age: int = 30
    residency_status: str = "malaysian"
    socso_category: str | None = None
    marital_status: str = "single"
    spouse_working: bool = False
    children_count: int = 0
    epf_voluntary_rate: Decimal | None = None

    @property
    def married_non_working_spouse(self) -> bool:
        """PCB category 2: married with a spouse who has no income."""
        return self.marital_status == "married" and not self.spouse_working


@dataclass
class StatutoryResult:
    """Statutory contributions for one month."""

    epf_employee: Decimal = ZERO
    epf_employer: Decimal = ZERO
    socso_employee: Decimal = ZERO
    socso_employer: Decimal = ZERO
    eis_employee: Decimal = ZERO
    eis_employer: Decimal = ZERO
    pcb: Decimal = ZERO
    table_version: str = ""

    @property
    def employer_total(self) -> Decimal:
        return self.epf_employer + self.socso_employer + self.eis_employer


@dataclass
class ItemInputs:
    """Every input the line-item calculator reads for one employee.

    Override fields are ``None`` when the computed value should be used;
    any number, including 0, replaces the computed value.
    """

    basic_salary: Decimal = ZERO
    fixed_allowance: Decimal = ZERO
    ot_hours: Decimal = ZERO
    ph_days_worked: Decimal = ZERO
    incentive: Decimal = ZERO
    commission: Decimal = ZERO
    trade_commission: Decimal = ZERO
    outstation: Decimal = ZERO
    bonus: Decimal = ZERO
    claims_amount: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    advance_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO
    ot_override: Decimal | None = None
    epf_override: Decimal | None = None
    pcb_override: Decimal | None = None
    claims_override: Decimal | None = None

    AMOUNT_FIELDS = (
        "basic_salary",
        "fixed_allowance",
        "ot_hours",
        "ph_days_worked",
        "incentive",
        "commission",
        "trade_commission",
        "outstation",
        "bonus",
        "claims_amount",
        "unpaid_leave_days",
        "advance_deduction",
        "other_deductions",
    )
    OVERRIDE_FIELDS = ("ot_override", "epf_override", "pcb_override", "claims_override")
    # Upstream sources send a fixed OT amount as ``ot_amount``
    OVERRIDE_ALIASES = {"ot_amount": "ot_override"}

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return cls.AMOUNT_FIELDS + cls.OVERRIDE_FIELDS

    @classmethod
    def accepted_names(cls) -> tuple[str, ...]:
        """Field names plus the aliases accepted on input."""
        return cls.field_names() + tuple(cls.OVERRIDE_ALIASES)

    @classmethod
    def canonical(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Rename aliased keys; an explicit canonical key wins over its alias."""
        result = {k: v for k, v in data.items() if k not in cls.OVERRIDE_ALIASES}
        for alias, name in cls.OVERRIDE_ALIASES.items():
            if alias in data and name not in data:
                result[name] = data[alias]
        return result

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ItemInputs:
        """Build inputs from a loose mapping (wire payload or ORM row values)."""
        data = cls.canonical(data)
        kwargs: dict[str, Any] = {}
        for name in cls.AMOUNT_FIELDS:
            if name in data:
                kwargs[name] = to_decimal(data[name], name)
        for name in cls.OVERRIDE_FIELDS:
            if name in data:
                kwargs[name] = to_optional_decimal(data[name], name)
        return cls(**kwargs)

    @classmethod
    def from_item(cls, item: Any) -> ItemInputs:
        """Read the input fields off a persisted payroll item."""
        return cls.from_mapping({name: getattr(item, name) for name in cls.field_names()})

    def merged(self, partial: dict[str, Any]) -> ItemInputs:
        """Return a copy with ``partial`` applied; unknown keys are ignored.

        Overrides accept null to go back to the computed value. Amounts do
        not: null there is rejected rather than read as 0.
        """
        known = {k: v for k, v in self.canonical(partial).items() if k in self.field_names()}
        for name in self.AMOUNT_FIELDS:
            if name in known and known[name] is None:
                raise ValidationError(f"{name} cannot be null", name)
        parsed = ItemInputs.from_mapping(known)
        return replace(self, **{k: getattr(parsed, k) for k in known})

    def validate(self) -> None:
        """Reject negative amounts and overrides."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                require_non_negative(value, f.name)


@dataclass
class PeriodContext:
    """The month being paid and the company rates that apply to it."""

    year: int
    month: int
    working_days: int = 22
    hours_per_day: int = 8
    ot_multiplier: Decimal = Decimal("1.0")
    ph_multiplier: Decimal = Decimal("1.0")
    toggles: StatutoryToggles = field(default_factory=StatutoryToggles)

    def __post_init__(self) -> None:
        validate_period(self.year, self.month)
        if self.working_days < 1:
            raise ValidationError("working_days must be positive", "working_days")

    @classmethod
    def for_company(cls, year: int, month: int, settings: PayrollSettings) -> PeriodContext:
        """Build the context from a company's payroll settings."""
        return cls(
            year=year,
            month=month,
            working_days=settings.working_days_for(year),
            hours_per_day=settings.rates.hours_per_day,
            ot_multiplier=settings.rates.ot_multiplier,
            ph_multiplier=settings.rates.ph_multiplier,
            toggles=settings.statutory,
        )

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def period_start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def period_end(self) -> date:
        return date(self.year, self.month, self.days_in_month)


@dataclass
class ItemCalculation:
    """Result of calculating one payroll item."""

    basic_salary: Decimal
    fixed_allowance: Decimal
    ot_hours: Decimal
    ot_amount: Decimal
    ph_days_worked: Decimal
    ph_pay: Decimal
    incentive: Decimal
    commission: Decimal
    trade_commission: Decimal
    outstation: Decimal
    bonus: Decimal
    claims_amount: Decimal
    gross_salary: Decimal
    unpaid_leave_days: Decimal
    unpaid_leave_deduction: Decimal
    epf_employee: Decimal
    epf_employer: Decimal
    socso_employee: Decimal
    socso_employer: Decimal
    eis_employee: Decimal
    eis_employer: Decimal
    pcb: Decimal
    advance_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    statutory_base: Decimal
    employer_total_cost: Decimal
    ot_override: Decimal | None = None
    epf_override: Decimal | None = None
    pcb_override: Decimal | None = None
    claims_override: Decimal | None = None
    days_in_period: int | None = None
    table_version: str = ""
    warnings: list[str] = field(default_factory=list)

    def item_values(self) -> dict[str, Any]:
        """Column values to write onto a PayrollItem."""
        values = asdict(self)
        values.pop("table_version")
        values.pop("warnings")
        return values


def validate_period(year: int, month: int) -> None:
    """Reject months outside 1..12 and implausible years."""
    if not isinstance(month, int) or month < 1 or month > 12:
        raise ValidationError("month must be between 1 and 12", "month")
    if not isinstance(year, int) or year < 2000 or year > 2100:
        raise ValidationError("year must be between 2000 and 2100", "year")
