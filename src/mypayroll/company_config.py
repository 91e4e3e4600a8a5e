"""Per-company payroll configuration.

Stored as JSON on the company row and merged over the defaults below, so a
company only needs to persist the keys it changes:

    {
        "features": {"require_approval": true},
        "rates": {"working_days": 26, "working_days_by_year": {"2025": 24}},
        "statutory": {"statutory_on_ot": true},
        "settlement": {"leave_encashment_rate": 1.0}
    }

All objects are immutable after creation (frozen dataclasses).
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any

from mypayroll.errors import ValidationError


@dataclass(frozen=True)
class FeatureFlags:
    """
    Optional run behaviors.

    Attributes:
        salary_carry_forward: Inherit recurring earnings from last month's
            finalized item when the basic salary is unchanged. Default True.
        unpaid_leave_deduction: Derive unpaid leave days from approved unpaid
            leave records when no explicit input is given. Default True.
        auto_claims_linking: Pull approved claims into the item and link them
            to it on finalization. Default True.
        auto_advance_deduction: Deduct salary advances that fall due in the
            month and reduce their balances on finalization. Default True.
        require_approval: A run must be approved before it can be finalized.
            Default False.
        variance_threshold_percent: Net-pay change versus last month that is
            logged as a warning. Default 10.
    """

    salary_carry_forward: bool = True
    unpaid_leave_deduction: bool = True
    auto_claims_linking: bool = True
    auto_advance_deduction: bool = True
    require_approval: bool = False
    variance_threshold_percent: Decimal = Decimal("10")


@dataclass(frozen=True)
class RateConfig:
    """
    Rates used by the line-item calculator.

    Attributes:
        working_days: Working days per month used for daily rates. Default 22.
        working_days_by_year: Per-year replacement for ``working_days``.
        hours_per_day: Standard hours per working day. Default 8.
        ot_multiplier: Multiplier applied to the hourly rate for OT. Default 1.0.
        ph_multiplier: Multiplier applied to the daily rate for public
            holidays worked. Default 1.0.
    """

    working_days: int = 22
    working_days_by_year: dict[int, int] = field(default_factory=dict)
    hours_per_day: int = 8
    ot_multiplier: Decimal = Decimal("1.0")
    ph_multiplier: Decimal = Decimal("1.0")

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.working_days < 1 or self.working_days > 31:
            raise ValidationError("working_days must be between 1 and 31", "working_days")
        for year, days in self.working_days_by_year.items():
            if days < 1 or days > 31:
                raise ValidationError(
                    f"working_days for {year} must be between 1 and 31",
                    "working_days_by_year",
                )
        if self.hours_per_day < 1 or self.hours_per_day > 24:
            raise ValidationError("hours_per_day must be between 1 and 24", "hours_per_day")
        if self.ot_multiplier < 0 or self.ph_multiplier < 0:
            raise ValidationError("rate multipliers cannot be negative")


@dataclass(frozen=True)
class StatutoryToggles:
    """Which statutory deductions apply and what joins the statutory base."""

    epf_enabled: bool = True
    socso_enabled: bool = True
    eis_enabled: bool = True
    pcb_enabled: bool = True
    statutory_on_ot: bool = False
    statutory_on_allowance: bool = False
    statutory_on_incentive: bool = False


@dataclass(frozen=True)
class SettlementConfig:
    """Final settlement options for resignations."""

    leave_encashment_rate: Decimal = Decimal("1.0")


@dataclass(frozen=True)
class PayrollSettings:
    """Complete payroll configuration for one company."""

    features: FeatureFlags = field(default_factory=FeatureFlags)
    rates: RateConfig = field(default_factory=RateConfig)
    statutory: StatutoryToggles = field(default_factory=StatutoryToggles)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)

    def working_days_for(self, year: int) -> int:
        """Working days per month applicable to ``year``."""
        return self.rates.working_days_by_year.get(year, self.rates.working_days)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PayrollSettings:
        """Merge a stored JSON document over the defaults."""
        data = data or {}
        rates = dict(data.get("rates") or {})
        if "working_days_by_year" in rates:
            rates["working_days_by_year"] = {
                int(year): int(days)
                for year, days in rates["working_days_by_year"].items()
            }
        return cls(
            features=_build(FeatureFlags, data.get("features")),
            rates=_build(RateConfig, rates),
            statutory=_build(StatutoryToggles, data.get("statutory")),
            settlement=_build(SettlementConfig, data.get("settlement")),
        )


def _build(config_cls: type, values: dict[str, Any] | None) -> Any:
    """Instantiate a config dataclass from known keys, coercing decimals."""
    values = values or {}
    kwargs: dict[str, Any] = {}
    for f in fields(config_cls):
        if f.name not in values:
            continue
        value = values[f.name]
        if f.type == "Decimal":
            value = Decimal(str(value))
        elif f.type == "int":
            value = int(value)
        kwargs[f.name] = value
    return config_cls(**kwargs)
