"""Tests for per-company payroll settings."""

from decimal import Decimal

import pytest

from mypayroll.company_config import PayrollSettings, RateConfig
from mypayroll.errors import ValidationError


class TestPayrollSettings:
    def test_defaults(self):
        settings = PayrollSettings.from_dict(None)
        assert settings.features.salary_carry_forward is True
        assert settings.features.require_approval is False
        assert settings.rates.working_days == 22
        assert settings.statutory.epf_enabled is True

    def test_stored_keys_merge_over_defaults(self):
        settings = PayrollSettings.from_dict(
            {
                "features": {"require_approval": True},
                "rates": {"ot_multiplier": "1.5"},
                "statutory": {"statutory_on_ot": True},
                "settlement": {"leave_encashment_rate": 0.5},
            }
        )
        assert settings.features.require_approval is True
        assert settings.features.auto_claims_linking is True
        assert settings.features.auto_advance_deduction is True
        assert settings.rates.ot_multiplier == Decimal("1.5")
        assert settings.rates.hours_per_day == 8
        assert settings.statutory.statutory_on_ot is True
        assert settings.settlement.leave_encashment_rate == Decimal("0.5")

    def test_unknown_keys_ignored(self):
        settings = PayrollSettings.from_dict({"features": {"no_such_flag": True}})
        assert settings.features.require_approval is False

    def test_working_days_by_year(self):
        settings = PayrollSettings.from_dict(
            {"rates": {"working_days": 26, "working_days_by_year": {"2025": 24}}}
        )
        assert settings.working_days_for(2025) == 24
        assert settings.working_days_for(2026) == 26


class TestRateConfig:
    def test_working_days_range(self):
        with pytest.raises(ValidationError):
            RateConfig(working_days=0)
        with pytest.raises(ValidationError):
            RateConfig(working_days_by_year={2025: 40})

    def test_negative_multiplier(self):
        with pytest.raises(ValidationError):
            RateConfig(ot_multiplier=Decimal("-1"))
