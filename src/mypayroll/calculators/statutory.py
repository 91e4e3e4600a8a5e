"""Malaysian statutory contributions: EPF, SOCSO, EIS and PCB.

Every rate, band and coefficient comes from a versioned JSON document
(``mypayroll/data/statutory_tables.json`` by default) with structure:

{
    "versions": [
        {
            "effective_from": "2024-01",
            "epf": {"minimum_wage": 10, "bands": [...], "schedules": {...}, ...},
            "socso": {"first_category": [[max_wage, employee, employer], ...], ...},
            "eis": {"exempt_from_age": 60, "bands": [[max_wage, amount], ...]},
            "pcb": {"reliefs": {...}, "brackets": [[M, R, B_single, B_married], ...]}
        },
        ...
    ]
}

The version applied to a run is the latest one effective on or before the
run's (year, month). A version may omit sections; omitted sections are taken
from the version before it.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_HALF_UP, Decimal
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

from mypayroll.calculators.money import CENTS, RINGGIT, ZERO, round2
from mypayroll.calculators.types import StatutoryParams, StatutoryResult
from mypayroll.company_config import StatutoryToggles
from mypayroll.config import get_settings
from mypayroll.errors import StatutoryTableMissing

logger = logging.getLogger(__name__)

SECTIONS = ("epf", "socso", "eis", "pcb")


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


class StatutoryTables:
    """Versioned statutory tables, resolved per (year, month)."""

    def __init__(self, versions: list[dict[str, Any]]):
        ordered = sorted(versions, key=lambda v: self._parse_effective(v["effective_from"]))
        self._versions: list[tuple[tuple[int, int], dict[str, Any]]] = []
        inherited: dict[str, Any] = {}
        for version in ordered:
            merged = dict(inherited)
            merged.update({k: version[k] for k in SECTIONS if k in version})
            merged["effective_from"] = version["effective_from"]
            inherited = merged
            self._versions.append((self._parse_effective(version["effective_from"]), merged))

    @staticmethod
    def _parse_effective(value: str) -> tuple[int, int]:
        year, month = value.split("-")
        return int(year), int(month)

    @classmethod
    def from_file(cls, path: str | Path) -> StatutoryTables:
        """Load tables from a JSON file on disk."""
        with open(path, encoding="utf-8") as f:
            return cls(json.load(f)["versions"])

    @classmethod
    def bundled(cls) -> StatutoryTables:
        """Load the tables shipped with the package."""
        source = resources.files("mypayroll").joinpath("data/statutory_tables.json")
        return cls(json.loads(source.read_text(encoding="utf-8"))["versions"])

    @property
    def versions(self) -> list[str]:
        """Effective-from labels, oldest first."""
        return [v["effective_from"] for _, v in self._versions]

    def version_for(self, year: int, month: int) -> dict[str, Any]:
        """Return the merged version effective for (year, month)."""
        applicable = [v for key, v in self._versions if key <= (year, month)]
        if not applicable:
            raise StatutoryTableMissing("statutory", year, month)
        return applicable[-1]

    def section(self, name: str, year: int, month: int) -> dict[str, Any]:
        """Return one table section, raising if the version lacks it."""
        version = self.version_for(year, month)
        table = version.get(name)
        if not table:
            raise StatutoryTableMissing(name.upper(), year, month)
        return table


@lru_cache(maxsize=1)
def default_tables() -> StatutoryTables:
    """Tables from STATUTORY_TABLES_PATH, or the bundled file."""
    path = get_settings().statutory_tables_path
    if path:
        logger.info("Loading statutory tables from %s", path)
        return StatutoryTables.from_file(path)
    return StatutoryTables.bundled()


def age_at(as_of: date, date_of_birth: date | None = None, ic_number: str | None = None) -> int | None:
    """Age in whole years on ``as_of``.

    Falls back to the YYMMDD prefix of a Malaysian IC number when no date of
    birth is recorded. Returns None when neither is usable.
    """
    dob = date_of_birth
    if dob is None and ic_number:
        digits = "".join(ch for ch in ic_number if ch.isdigit())
        if len(digits) >= 6:
            yy, mm, dd = int(digits[0:2]), int(digits[2:4]), int(digits[4:6])
            century = 1900 if yy > as_of.year % 100 else 2000
            try:
                dob = date(century + yy, mm, dd)
            except ValueError:
                dob = None
    if dob is None:
        return None
    return as_of.year - dob.year - ((as_of.month, as_of.day) < (dob.month, dob.day))


class StatutoryEngine:
    """Computes monthly statutory contributions from the versioned tables."""

    def __init__(self, tables: StatutoryTables | None = None):
        self.tables = tables or default_tables()

    def compute(
        self,
        base: Decimal,
        params: StatutoryParams,
        year: int,
        month: int,
        *,
        epf_override: Decimal | None = None,
        toggles: StatutoryToggles | None = None,
    ) -> StatutoryResult:
        """Compute EPF, SOCSO, EIS and PCB on ``base`` for (year, month).

        ``epf_override`` replaces the employee EPF figure (the employer side is
        still computed) and feeds the PCB EPF relief.
        """
        toggles = toggles or StatutoryToggles()
        version = self.tables.version_for(year, month)
        result = StatutoryResult(table_version=version["effective_from"])

        if toggles.epf_enabled:
            ee, er = self.epf(base, params, self.tables.section("epf", year, month), year, month)
            result.epf_employee = ee
            result.epf_employer = er
        if epf_override is not None:
            result.epf_employee = round2(epf_override)

        if toggles.socso_enabled:
            ee, er = self.socso(base, params, self.tables.section("socso", year, month))
            result.socso_employee = ee
            result.socso_employer = er

        if toggles.eis_enabled:
            ee, er = self.eis(base, params, self.tables.section("eis", year, month))
            result.eis_employee = ee
            result.eis_employer = er

        if toggles.pcb_enabled:
            result.pcb = self.pcb(
                base, result.epf_employee, params, self.tables.section("pcb", year, month)
            )

        return result

    @staticmethod
    def epf_schedule_key(params: StatutoryParams) -> str:
        """Schedule key such as ``malaysian_below_60`` or ``pr_60_above``."""
        band = "60_above" if params.age >= 60 else "below_60"
        return f"{params.residency_status}_{band}"

    @staticmethod
    def epf_wage_band(wage: Decimal, bands: list[dict[str, Any]]) -> Decimal:
        """Lift ``wage`` to the upper bound of its KWSP wage band."""
        lower = ZERO
        for band in bands:
            up_to = band.get("up_to")
            width = _dec(band["width"])
            if up_to is None or wage <= _dec(up_to):
                steps = ((wage - lower) / width).to_integral_value(rounding=ROUND_CEILING)
                return lower + steps * width
            lower = _dec(up_to)
        return wage

    def epf(
        self,
        base: Decimal,
        params: StatutoryParams,
        table: dict[str, Any],
        year: int,
        month: int,
    ) -> tuple[Decimal, Decimal]:
        """Employee and employer EPF, each rounded up to the next ringgit."""
        wage = base.quantize(RINGGIT, rounding=ROUND_HALF_UP)
        if wage <= _dec(table.get("minimum_wage", 0)):
            return ZERO, ZERO

        key = self.epf_schedule_key(params)
        schedule = table["schedules"].get(key)
        if schedule is None:
            raise StatutoryTableMissing("EPF", year, month, f"no schedule '{key}'")

        employee_rate = _dec(schedule["employee"])
        if params.epf_voluntary_rate is not None and params.epf_voluntary_rate > employee_rate:
            employee_rate = params.epf_voluntary_rate
        if wage <= _dec(table["employer_threshold"]):
            employer_rate = _dec(schedule["employer_low"])
        else:
            employer_rate = _dec(schedule["employer_high"])

        band_wage = self.epf_wage_band(wage, table["bands"])
        employee = (band_wage * employee_rate).to_integral_value(rounding=ROUND_CEILING)
        employer = (band_wage * employer_rate).to_integral_value(rounding=ROUND_CEILING)
        return employee.quantize(CENTS), employer.quantize(CENTS)

    @staticmethod
    def lookup_band(base: Decimal, bands: list[list[Any]]) -> list[Any]:
        """First band whose max wage covers ``base`` (null max is open-ended)."""
        for band in bands:
            if band[0] is None or base <= _dec(band[0]):
                return band
        return bands[-1]

    @staticmethod
    def socso_category(params: StatutoryParams, table: dict[str, Any]) -> str:
        """Explicit category, otherwise second category from the age cut-off."""
        if params.socso_category:
            return params.socso_category
        if params.age >= int(table["second_category_from_age"]):
            return "second"
        return "first"

    def socso(
        self, base: Decimal, params: StatutoryParams, table: dict[str, Any]
    ) -> tuple[Decimal, Decimal]:
        category = self.socso_category(params, table)
        if base <= 0 or category == "none":
            return ZERO, ZERO
        band = self.lookup_band(base, table[f"{category}_category"])
        return round2(_dec(band[1])), round2(_dec(band[2]))

    def eis(
        self, base: Decimal, params: StatutoryParams, table: dict[str, Any]
    ) -> tuple[Decimal, Decimal]:
        if base <= 0 or params.age >= int(table["exempt_from_age"]):
            return ZERO, ZERO
        amount = round2(_dec(self.lookup_band(base, table["bands"])[1]))
        return amount, amount

    @staticmethod
    def pcb_bracket(chargeable: Decimal, brackets: list[list[Any]]) -> list[Any]:
        """Highest bracket whose threshold M is below the chargeable income."""
        selected = brackets[0]
        for bracket in brackets:
            if chargeable > _dec(bracket[0]):
                selected = bracket
        return selected

    def pcb(
        self,
        base: Decimal,
        epf_employee: Decimal,
        params: StatutoryParams,
        table: dict[str, Any],
    ) -> Decimal:
        """Monthly tax deduction, projected from this month's base only.

        annual tax = (P - M) x R + B, where P is the projected annual
        chargeable income after reliefs; the monthly figure is truncated to
        cents, then rounded up to the next 0.05.
        """
        if base <= 0:
            return ZERO

        reliefs = table["reliefs"]
        annual_income = base * 12
        total_relief = (
            _dec(reliefs["self"])
            + min(epf_employee * 12, _dec(reliefs["epf_max"]))
            + _dec(reliefs["socso"])
            + _dec(reliefs["eis"])
            + _dec(reliefs["child"]) * params.children_count
        )
        if params.married_non_working_spouse:
            total_relief += _dec(reliefs["spouse"])

        chargeable = max(ZERO, annual_income - total_relief)
        threshold, rate, b_single, b_married = self.pcb_bracket(chargeable, table["brackets"])
        b = _dec(b_married if params.married_non_working_spouse else b_single)
        annual_tax = max(ZERO, (chargeable - _dec(threshold)) * _dec(rate) + b)

        monthly = (annual_tax / 12).quantize(CENTS, rounding=ROUND_DOWN)
        step = _dec(table["rounding_step"])
        monthly = (monthly / step).to_integral_value(rounding=ROUND_CEILING) * step
        if monthly < _dec(table["minimum_deduction"]):
            return ZERO
        return monthly.quantize(CENTS)


def statutory(
    base: Decimal,
    params: StatutoryParams,
    year: int,
    month: int,
    *,
    epf_override: Decimal | None = None,
) -> StatutoryResult:
    """Compute statutory contributions with the default tables."""
    return StatutoryEngine().compute(base, params, year, month, epf_override=epf_override)
