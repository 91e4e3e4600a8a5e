"""Tests for contribution summaries, exporter rows and the yearly report."""

from decimal import Decimal

import pytest

from mypayroll.errors import RunNotFinalizedError, ValidationError
from mypayroll.services.contribution_service import ContributionService
from mypayroll.services.payroll_run_service import PayrollRunService


@pytest.fixture
def runs(session, company):
    return PayrollRunService(session, company.id)


@pytest.fixture
def service(session, company):
    return ContributionService(session, company.id)


@pytest.fixture
async def staff(make_employee, department):
    """One 3000 earner in Operations and one 5000 earner with no department."""
    operations = await make_employee(department_id=department.id, epf_number="EPF001")
    manager = await make_employee(default_basic_salary=Decimal("5000"), tax_number="SG123")
    return operations, manager


class TestRunContributions:
    async def test_summary(self, runs, service, staff):
        creation = await runs.create_run(2025, 3)

        summary = await service.summary(creation.run.id)

        assert summary["employee_count"] == 2
        assert summary["status"] == "draft"
        assert summary["epf"] == {
            "employee": Decimal("880.00"),
            "employer": Decimal("1040.00"),
            "total": Decimal("1920.00"),
        }
        assert summary["socso"]["employee"] == Decimal("39.50")
        assert summary["socso"]["employer"] == Decimal("118.70")
        assert summary["eis"]["total"] == Decimal("31.60")
        assert summary["pcb"] == {"total": Decimal("73.20")}
        assert summary["grand_total"] == Decimal("2183.00")

    async def test_details(self, runs, service, staff):
        creation = await runs.create_run(2025, 3)

        details = await service.details(creation.run.id)

        assert [d["emp_code"] for d in details] == ["E001", "E002"]
        assert details[0]["department"] == "Operations"
        assert details[0]["epf_number"] == "EPF001"
        assert details[0]["statutory_base"] == Decimal("3000.00")
        assert details[1]["department"] is None
        assert details[1]["pcb"] == Decimal("73.20")


class TestExports:
    async def test_draft_run_cannot_be_exported(self, runs, service, staff):
        creation = await runs.create_run(2025, 3)
        with pytest.raises(RunNotFinalizedError):
            await service.export_rows(creation.run.id, "epf")

    async def test_unknown_kind(self, runs, service, staff):
        creation = await runs.create_run(2025, 3)
        await runs.finalize_run(creation.run.id)
        with pytest.raises(ValidationError):
            await service.export_rows(creation.run.id, "hrdf")

    async def test_rows_per_kind(self, runs, service, staff):
        creation = await runs.create_run(2025, 3)
        await runs.finalize_run(creation.run.id)
        run_id = creation.run.id

        epf = await service.export_rows(run_id, "epf")
        assert [(r["emp_code"], r["employee"], r["employer"]) for r in epf] == [
            ("E001", Decimal("330.00"), Decimal("390.00")),
            ("E002", Decimal("550.00"), Decimal("650.00")),
        ]

        pcb = await service.export_rows(run_id, "pcb")
        assert [(r["emp_code"], r["tax_number"], r["pcb"]) for r in pcb] == [
            ("E002", "SG123", Decimal("73.20"))
        ]

        bank = await service.export_rows(run_id, "bank")
        assert len(bank) == 2
        assert bank[0]["net_pay"] == Decimal("2649.35")

    async def test_exempt_employees_left_out(self, runs, service, make_employee):
        await make_employee(residency_status="foreign")
        creation = await runs.create_run(2025, 3)
        await runs.finalize_run(creation.run.id)

        assert await service.export_rows(creation.run.id, "epf") == []
        assert len(await service.export_rows(creation.run.id, "socso")) == 1


class TestYearlyReport:
    async def test_finalized_runs_only(self, runs, service, staff):
        feb = await runs.create_run(2025, 2)
        await runs.finalize_run(feb.run.id)
        await runs.create_run(2025, 3)

        report = await service.yearly_report(2025)

        assert [m["month"] for m in report["months"]] == [2]
        assert report["months"][0]["employee_count"] == 2
        assert report["months"][0]["gross_salary"] == Decimal("8000.00")
        assert report["totals"]["grand_total"] == Decimal("2183.00")
        assert report["partition"] is None

    async def test_department_partition(self, runs, service, staff, department):
        department_id = department.id
        for month in (1, 2):
            creation = await runs.create_run(2025, month)
            await runs.finalize_run(creation.run.id)

        report = await service.yearly_report(2025, department_id=department_id)

        assert report["partition"]["name"] == "Operations"
        assert [m["employee_count"] for m in report["months"]] == [1, 1]
        assert report["totals"]["epf"]["employee"] == Decimal("660.00")
        assert report["totals"]["gross_salary"] == Decimal("6000.00")

    async def test_both_partitions_rejected(self, service, department, outlet):
        with pytest.raises(ValidationError):
            await service.yearly_report(2025, department_id=department.id, outlet_id=outlet.id)

    async def test_rows_per_month_and_department(
        self, runs, service, staff, make_employee, other_department
    ):
        await make_employee(department_id=other_department.id)
        for month in (1, 2):
            creation = await runs.create_run(2025, month)
            await runs.finalize_run(creation.run.id)

        report = await service.yearly_report(2025)

        assert report["group_by"] == "department"
        assert [(r["month"], r["unit_name"]) for r in report["rows"]] == [
            (1, "Operations"),
            (1, "Sales"),
            (1, None),
            (2, "Operations"),
            (2, "Sales"),
            (2, None),
        ]
        assert [r["gross_salary"] for r in report["rows"][:3]] == [
            Decimal("3000.00"),
            Decimal("3000.00"),
            Decimal("5000.00"),
        ]
        for month in report["months"]:
            cells = [r for r in report["rows"] if r["month"] == month["month"]]
            assert sum(r["grand_total"] for r in cells) == month["grand_total"]
            assert sum(r["employee_count"] for r in cells) == month["employee_count"]
        assert report["totals"]["grand_total"] == sum(m["grand_total"] for m in report["months"])

    async def test_outlet_grouping(self, runs, service, make_employee, outlet):
        outlet_id = outlet.id
        await make_employee(outlet_id=outlet_id)
        await make_employee()
        creation = await runs.create_run(2025, 3)
        await runs.finalize_run(creation.run.id)

        report = await service.yearly_report(2025, group_by="outlet")

        assert [(r["unit_type"], r["unit_id"]) for r in report["rows"]] == [
            ("outlet", outlet_id),
            ("outlet", None),
        ]

        filtered = await service.yearly_report(2025, outlet_id=outlet_id)
        assert filtered["group_by"] == "outlet"
        assert [r["unit_name"] for r in filtered["rows"]] == ["Outlet Bangsar"]
        assert filtered["totals"]["gross_salary"] == Decimal("3000.00")

    async def test_unknown_grouping_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.yearly_report(2025, group_by="region")
