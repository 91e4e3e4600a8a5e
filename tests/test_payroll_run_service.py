"""Tests for PayrollRunService against an in-memory database.

Ids are captured before any call expected to fail: a failed unit of work
rolls the session back and expires every loaded object.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from mypayroll.calculators.types import ItemInputs
from mypayroll.errors import (
    AlreadyFinalized,
    ApprovalRequiredError,
    ConcurrencyConflict,
    DuplicateRunError,
    EmployeeAlreadyInPeriod,
    NotFoundError,
    ValidationError,
)
from mypayroll.models import (
    AuditEvent,
    Claim,
    CommissionAssignment,
    LeaveRecord,
    PayrollItem,
    SalaryAdvance,
    SalaryAdvanceDeduction,
)
from mypayroll.services.change_set_service import ChangeSetService
from mypayroll.services.locking_service import RunLockManager, run_key
from mypayroll.services.payroll_run_service import PayrollRunService


MONEY_FIELDS = (
    "basic_salary",
    "ot_amount",
    "ph_pay",
    "commission",
    "claims_amount",
    "gross_salary",
    "unpaid_leave_deduction",
    "epf_employee",
    "epf_employer",
    "socso_employee",
    "socso_employer",
    "eis_employee",
    "eis_employer",
    "pcb",
    "total_deductions",
    "net_pay",
    "employer_total_cost",
)


@pytest.fixture
def service(session, company):
    return PayrollRunService(session, company.id)


async def only_item(service, run_id):
    rows = await service.list_items(run_id)
    assert len(rows) == 1
    return rows[0][0]


class TestCreateRun:
    """Run creation, scope exclusivity and employee selection."""

    async def test_company_wide_run(self, service, make_employee):
        """A plain 3000 salary nets 2649.35."""
        await make_employee()

        creation = await service.create_run(2025, 3, actor="hr")

        run = creation.run
        assert run.status == "draft"
        assert run.scope_key == "all"
        assert run.period_start == date(2025, 3, 1)
        assert run.period_end == date(2025, 3, 31)
        assert creation.employee_count == 1
        assert run.total_net == Decimal("2649.35")

        item = await only_item(service, run.id)
        assert item.epf_employee == Decimal("330.00")
        assert item.socso_employee == Decimal("14.75")
        assert item.eis_employee == Decimal("5.90")
        assert item.pcb == 0
        assert item.net_pay == Decimal("2649.35")

    async def test_duplicate_scope_rejected(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id

        with pytest.raises(DuplicateRunError) as exc_info:
            await service.create_run(2025, 3)
        assert exc_info.value.existing_run_id == run_id
        assert exc_info.value.scope_key == "all"

    async def test_employee_in_two_scopes_rejected(self, service, make_employee, department):
        """A department run cannot take an employee already in the company-wide run."""
        employee = await make_employee(department_id=department.id)
        employee_id, department_id = employee.id, department.id
        await service.create_run(2025, 3)

        with pytest.raises(EmployeeAlreadyInPeriod) as exc_info:
            await service.create_run(2025, 3, department_id=department_id)
        assert exc_info.value.employee_ids == [employee_id]

    async def test_department_and_outlet_together_rejected(self, service, department, outlet):
        with pytest.raises(ValidationError):
            await service.create_run(2025, 3, department_id=department.id, outlet_id=outlet.id)

    async def test_invalid_month_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.create_run(2025, 13)

    async def test_unknown_department(self, service):
        with pytest.raises(NotFoundError):
            await service.create_run(2025, 3, department_id=uuid4())

    async def test_department_scope_selects_members_only(
        self, service, make_employee, department, other_department
    ):
        await make_employee(department_id=department.id)
        await make_employee(department_id=other_department.id)

        creation = await service.create_run(2025, 3, department_id=department.id)
        assert creation.employee_count == 1
        assert creation.run.scope_key == f"dept:{department.id}"
        assert creation.run.department_id == department.id

    async def test_employment_window(self, service, make_employee):
        """Future joiners and employees who left before the month are excluded."""
        await make_employee(hire_date=date(2025, 4, 1))
        await make_employee(status="resigned", last_working_day=date(2025, 2, 20))
        leaver = await make_employee(status="resigned", last_working_day=date(2025, 3, 20))

        creation = await service.create_run(2025, 3)

        item = await only_item(service, creation.run.id)
        assert item.employee_id == leaver.id
        assert item.days_in_period == 20
        assert item.basic_salary == Decimal("1935.48")

    async def test_mid_month_joiner_prorated(self, service, make_employee):
        await make_employee(hire_date=date(2025, 6, 15))

        creation = await service.create_run(2025, 6)

        item = await only_item(service, creation.run.id)
        assert item.basic_salary == Decimal("1600.00")
        assert item.days_in_period == 16

    async def test_per_employee_inputs(self, service, make_employee):
        employee = await make_employee(default_basic_salary=Decimal("2200"))

        creation = await service.create_run(2025, 3, inputs={employee.id: {"ot_hours": "10"}})

        item = await only_item(service, creation.run.id)
        assert item.ot_hours == Decimal("10")
        assert item.ot_amount == Decimal("125.00")

    async def test_fixed_ot_amount_input(self, service, make_employee):
        employee = await make_employee(default_basic_salary=Decimal("2200"))

        creation = await service.create_run(2025, 3, inputs={employee.id: {"ot_amount": "300"}})

        item = await only_item(service, creation.run.id)
        assert item.ot_override == Decimal("300.00")
        assert item.ot_amount == Decimal("300.00")
        assert item.gross_salary == Decimal("2500.00")

    async def test_missing_basic_salary_warns(self, service, make_employee):
        await make_employee(default_basic_salary=Decimal("0"), name="Siti")

        creation = await service.create_run(2025, 3)
        assert creation.warning is not None
        assert "Siti" in creation.warning

    async def test_creation_is_audited(self, session, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3, actor="hr")

        event = await session.scalar(
            select(AuditEvent).where(AuditEvent.entity_id == creation.run.id)
        )
        assert event.action == "created"
        assert event.actor == "hr"


class TestCarryForward:
    """Recurring earnings inherited from last month's finalized item."""

    async def test_recurring_earnings_carried(self, session, service, make_employee):
        employee = await make_employee(default_basic_salary=Decimal("3500"))
        session.add(CommissionAssignment(employee_id=employee.id, name="Sales", amount=Decimal("150")))
        await session.commit()

        feb = await service.create_run(2025, 2)
        feb_item = await only_item(service, feb.run.id)
        await service.update_item(
            feb_item.id, {"fixed_allowance": Decimal("200"), "ot_hours": Decimal("5")}
        )
        await service.finalize_run(feb.run.id)

        mar = await service.create_run(2025, 3)

        assert mar.carried_forward_count == 1
        item = await only_item(service, mar.run.id)
        assert item.carried_forward is True
        assert item.basic_salary == Decimal("3500.00")
        assert item.fixed_allowance == Decimal("200.00")
        assert item.commission == Decimal("150.00")
        # Per-period inputs start over
        assert item.ot_hours == 0
        assert item.prev_month_net == feb_item.net_pay

    async def test_salary_change_stops_carry_forward(self, session, service, make_employee):
        employee = await make_employee(default_basic_salary=Decimal("3500"))
        feb = await service.create_run(2025, 2)
        feb_item = await only_item(service, feb.run.id)
        await service.update_item(feb_item.id, {"fixed_allowance": Decimal("200")})
        await service.finalize_run(feb.run.id)

        employee.default_basic_salary = Decimal("4000")
        await session.commit()
        mar = await service.create_run(2025, 3)

        item = await only_item(service, mar.run.id)
        assert item.carried_forward is False
        assert item.basic_salary == Decimal("4000.00")
        assert item.fixed_allowance == 0

    async def test_stable_over_consecutive_months(self, session, service, make_employee):
        employee = await make_employee(default_basic_salary=Decimal("3500"))
        session.add(CommissionAssignment(employee_id=employee.id, name="Sales", amount=Decimal("150")))
        await session.commit()

        jan = await service.create_run(2025, 1)
        jan_item = await only_item(service, jan.run.id)
        await service.update_item(jan_item.id, {"fixed_allowance": Decimal("200")})
        await service.finalize_run(jan.run.id)

        seen = []
        for month in (2, 3):
            creation = await service.create_run(2025, month)
            assert creation.carried_forward_count == 1
            item = await only_item(service, creation.run.id)
            seen.append(
                (item.basic_salary, item.fixed_allowance, item.commission, item.ot_hours, item.net_pay)
            )
            await service.finalize_run(creation.run.id)

        assert seen[0] == seen[1]
        assert seen[1][:4] == (Decimal("3500.00"), Decimal("200.00"), Decimal("150.00"), 0)

    async def test_draft_previous_month_not_used(self, service, make_employee):
        await make_employee()
        await service.create_run(2025, 2)
        mar = await service.create_run(2025, 3)
        assert mar.carried_forward_count == 0


class TestPeriodInputs:
    """Unpaid leave and approved claims pulled into new items."""

    async def test_unpaid_leave_deducted(self, session, service, make_employee, unpaid_leave):
        employee = await make_employee(default_basic_salary=Decimal("2200"))
        session.add(
            LeaveRecord(
                employee_id=employee.id,
                leave_type_id=unpaid_leave.id,
                start_date=date(2025, 3, 10),
                end_date=date(2025, 3, 11),
                total_days=Decimal("2"),
                status="approved",
            )
        )
        await session.commit()

        creation = await service.create_run(2025, 3)

        item = await only_item(service, creation.run.id)
        assert item.unpaid_leave_days == Decimal("2")
        assert item.unpaid_leave_deduction == Decimal("200.00")

    async def test_claims_included_and_linked_on_finalize(self, session, service, make_employee):
        employee = await make_employee()
        claim = Claim(
            employee_id=employee.id,
            claim_date=date(2025, 3, 5),
            amount=Decimal("120"),
            status="approved",
        )
        session.add(claim)
        session.add(
            Claim(employee_id=employee.id, claim_date=date(2025, 3, 6), amount=Decimal("50"))
        )
        await session.commit()

        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)
        assert item.claims_amount == Decimal("120.00")
        assert item.gross_salary == Decimal("3120.00")

        await service.finalize_run(creation.run.id)
        await session.refresh(claim)
        assert claim.linked_item_id == item.id
        assert claim.status == "paid"


class TestSalaryAdvances:
    """Advances recovered through payroll and tracked to a zero balance."""

    async def add_advance(self, session, service, employee_id, amount, **values):
        advance = SalaryAdvance(
            company_id=service.company_id,
            employee_id=employee_id,
            amount=Decimal(amount),
            advance_date=values.pop("advance_date", date(2025, 2, 20)),
            **values,
        )
        session.add(advance)
        await session.commit()
        return advance

    async def test_full_advance_recovered_once(self, session, service, make_employee):
        employee = await make_employee()
        advance = await self.add_advance(session, service, employee.id, "500")
        await session.refresh(advance)
        assert advance.remaining_balance == Decimal("500")

        march = await service.create_run(2025, 3)
        item = await only_item(service, march.run.id)
        assert item.advance_deduction == Decimal("500.00")
        assert item.net_pay == Decimal("2149.35")

        await service.finalize_run(march.run.id)
        await session.refresh(advance)
        assert advance.remaining_balance == 0
        assert advance.total_deducted == Decimal("500.00")
        assert advance.status == "completed"
        assert advance.linked_item_id == item.id

        april = await service.create_run(2025, 4)
        assert (await only_item(service, april.run.id)).advance_deduction == 0

    async def test_installments_and_reversal(self, session, service, make_employee):
        employee = await make_employee()
        installment = await self.add_advance(
            session, service, employee.id, "1000",
            deduction_method="installment",
            installment_amount=Decimal("300"),
            expected_deduction_year=2025,
            expected_deduction_month=3,
        )
        await self.add_advance(
            session, service, employee.id, "200",
            expected_deduction_year=2025,
            expected_deduction_month=5,
        )

        march = await service.create_run(2025, 3)
        run_id = march.run.id
        assert (await only_item(service, run_id)).advance_deduction == Decimal("300.00")

        await service.finalize_run(run_id)
        await session.refresh(installment)
        assert installment.remaining_balance == Decimal("700.00")
        assert installment.status == "active"
        recorded = await session.scalar(
            select(SalaryAdvanceDeduction).where(
                SalaryAdvanceDeduction.advance_id == installment.id
            )
        )
        assert (recorded.year, recorded.month, recorded.amount) == (2025, 3, Decimal("300.00"))

        await service.delete_run(run_id, force=True)
        await session.refresh(installment)
        assert installment.remaining_balance == Decimal("1000.00")
        assert installment.total_deducted == 0
        remaining = await session.scalar(select(SalaryAdvanceDeduction.id))
        assert remaining is None

    async def test_disabled_by_company_setting(self, session, service, company, make_employee):
        company.payroll_settings = {"features": {"auto_advance_deduction": False}}
        await session.commit()
        employee = await make_employee()
        await self.add_advance(session, service, employee.id, "500")

        creation = await service.create_run(2025, 3)
        assert (await only_item(service, creation.run.id)).advance_deduction == 0


class TestItemEdits:
    async def test_update_recalculates_item_and_totals(self, service, make_employee):
        await make_employee(default_basic_salary=Decimal("2200"))
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        updated = await service.update_item(item.id, {"ot_hours": Decimal("10")}, actor="hr")

        assert updated.ot_amount == Decimal("125.00")
        run = await service.get_run(creation.run.id)
        assert run.total_gross == updated.gross_salary
        assert run.total_net == updated.net_pay

    async def test_zero_override_and_reset(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        updated = await service.update_item(item.id, {"epf_override": Decimal("0")})
        assert updated.epf_employee == 0
        assert updated.epf_override == 0

        updated = await service.update_item(item.id, {"epf_override": None})
        assert updated.epf_employee == Decimal("330.00")
        assert updated.epf_override is None

    async def test_update_without_editable_fields(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        with pytest.raises(ValidationError):
            await service.update_item(item.id, {"net_pay": "1"})

    async def test_negative_input_rejected(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        with pytest.raises(ValidationError):
            await service.update_item(item.id, {"bonus": Decimal("-5")})

    async def test_delete_item_updates_totals(self, service, make_employee):
        await make_employee()
        await make_employee()
        creation = await service.create_run(2025, 3)
        rows = await service.list_items(creation.run.id)

        await service.delete_item(rows[0][0].id)

        run = await service.get_run(creation.run.id)
        assert run.employee_count == 1
        assert run.total_net == Decimal("2649.35")

    async def test_recalculate_picks_up_master_data(self, session, service, make_employee):
        employee = await make_employee()
        creation = await service.create_run(2025, 3)

        employee.marital_status = "married"
        employee.default_basic_salary = Decimal("9999")
        await session.commit()
        result = await service.recalculate_all(creation.run.id)

        assert result == {"recalculated": 1, "total": 1}
        item = await only_item(service, creation.run.id)
        assert item.basic_salary == Decimal("9999.00")
        assert item.basic_salary_edited is False

    async def test_recalculate_applies_new_last_working_day(
        self, session, service, make_employee
    ):
        employee = await make_employee(default_basic_salary=Decimal("4400"))
        creation = await service.create_run(2025, 6)
        item = await only_item(service, creation.run.id)
        assert item.days_in_period is None

        employee.last_working_day = date(2025, 6, 20)
        await session.commit()
        await service.recalculate_item(item.id)

        item = await service.get_item(item.id)
        assert item.basic_salary == Decimal("2933.33")
        assert item.days_in_period == 20

    async def test_recalculate_keeps_hand_entered_basic(self, session, service, make_employee):
        employee = await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        await service.update_item(item.id, {"basic_salary": Decimal("3500")})
        employee.default_basic_salary = Decimal("4000")
        await session.commit()
        await service.recalculate_all(creation.run.id)

        item = await service.get_item(item.id)
        assert item.basic_salary_edited is True
        assert item.basic_salary == Decimal("3500.00")

    async def test_basic_supplied_at_creation_is_kept(self, session, service, make_employee):
        employee = await make_employee()
        creation = await service.create_run(
            2025, 3, inputs={employee.id: {"basic_salary": "2800"}}
        )
        employee.default_basic_salary = Decimal("4000")
        await session.commit()
        await service.recalculate_all(creation.run.id)

        item = await only_item(service, creation.run.id)
        assert item.basic_salary == Decimal("2800.00")

    async def test_change_set_basic_is_kept(self, session, service, make_employee):
        employee = await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        await ChangeSetService(service.session, service.company_id).apply(
            creation.run.id,
            [{"item_id": item.id, "field": "basic_salary", "new_value": "3200"}],
        )
        employee.default_basic_salary = Decimal("4000")
        await session.commit()
        await service.recalculate_all(creation.run.id)

        item = await service.get_item(item.id)
        assert item.basic_salary == Decimal("3200.00")

    async def test_null_amount_rejected(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        item_id = (await only_item(service, creation.run.id)).id

        with pytest.raises(ValidationError) as exc_info:
            await service.update_item(item_id, {"basic_salary": None})
        assert exc_info.value.field == "basic_salary"

        item = await service.get_item(item_id)
        assert item.basic_salary == Decimal("3000.00")

    async def test_ot_amount_sets_override(self, service, make_employee):
        await make_employee(default_basic_salary=Decimal("2200"))
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        updated = await service.update_item(item.id, {"ot_amount": Decimal("300")})

        assert updated.ot_override == Decimal("300.00")
        assert updated.ot_amount == Decimal("300.00")
        assert updated.gross_salary == Decimal("2500.00")

    async def test_update_with_own_inputs_changes_nothing(self, session, service, make_employee):
        employee = await make_employee(hire_date=date(2025, 6, 15))
        session.add(
            CommissionAssignment(employee_id=employee.id, name="Sales", amount=Decimal("150"))
        )
        await session.commit()
        creation = await service.create_run(
            2025, 6, inputs={employee.id: {"ot_hours": "4", "pcb_override": "0"}}
        )
        item = await only_item(service, creation.run.id)
        before = {name: getattr(item, name) for name in MONEY_FIELDS}
        own_inputs = {name: getattr(item, name) for name in ItemInputs.field_names()}

        updated = await service.update_item(item.id, own_inputs)

        assert {name: getattr(updated, name) for name in MONEY_FIELDS} == before
        assert updated.days_in_period == 16
        assert updated.basic_salary_edited is False

    async def test_payslip(self, service, make_employee, department):
        await make_employee(department_id=department.id)
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        payslip = await service.get_payslip(item.id)
        assert payslip["employee"]["department"] == "Operations"
        assert payslip["totals"]["net_pay"] == Decimal("2649.35")
        assert payslip["period"]["month"] == 3


class TestFinalize:
    """Finalized runs are immutable."""

    async def test_finalize_then_writes_rejected(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id
        item_id = (await only_item(service, run_id)).id

        run = await service.finalize_run(run_id, actor="boss")
        assert run.status == "finalized"
        assert run.finalized_by == "boss"

        with pytest.raises(AlreadyFinalized):
            await service.update_item(item_id, {"bonus": Decimal("100")})
        with pytest.raises(AlreadyFinalized):
            await service.recalculate_all(run_id)
        with pytest.raises(AlreadyFinalized):
            await service.recalculate_item(item_id)
        with pytest.raises(AlreadyFinalized):
            await service.delete_item(item_id)
        with pytest.raises(AlreadyFinalized):
            await service.finalize_run(run_id)
        with pytest.raises(AlreadyFinalized):
            await ChangeSetService(service.session, service.company_id).apply(
                run_id, [{"item_id": item_id, "field": "bonus", "new_value": "1"}]
            )

        item = await service.get_item(item_id)
        assert item.bonus == 0

    async def test_finalized_items_read_back_unchanged(self, session, service, make_employee):
        await make_employee()
        await make_employee(default_basic_salary=Decimal("5200"))
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id
        await service.finalize_run(run_id)

        def snapshot(rows):
            return {
                item.id: {name: getattr(item, name) for name in MONEY_FIELDS}
                for item, _ in rows
            }

        first = snapshot(await service.list_items(run_id))
        item_id = next(iter(first))
        with pytest.raises(AlreadyFinalized):
            await service.update_item(item_id, {"basic_salary": Decimal("1")})

        session.expire_all()
        assert snapshot(await service.list_items(run_id)) == first
        assert snapshot(await service.list_items(run_id)) == first

    async def test_run_totals_equal_item_sums(self, session, service, make_employee):
        await make_employee()
        await make_employee(default_basic_salary=Decimal("5200"), marital_status="married")
        await make_employee(hire_date=date(2025, 3, 10))
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id
        rows = await service.list_items(run_id)
        await service.update_item(rows[0][0].id, {"bonus": Decimal("400")})
        await service.finalize_run(run_id)

        run = await service.get_run(run_id)
        items = [item for item, _ in await service.list_items(run_id)]
        totals = {
            "total_gross": "gross_salary",
            "total_deductions": "total_deductions",
            "total_net": "net_pay",
            "total_employer_cost": "employer_total_cost",
        }
        for run_field, item_field in totals.items():
            assert getattr(run, run_field) == sum(getattr(i, item_field) for i in items)
        assert run.employee_count == len(items)
        for item in items:
            assert item.net_pay == item.gross_salary - item.total_deductions

    async def test_delete_finalized_needs_force(self, session, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id
        await service.finalize_run(run_id)

        with pytest.raises(AlreadyFinalized):
            await service.delete_run(run_id)

        await service.delete_run(run_id, force=True)
        with pytest.raises(NotFoundError):
            await service.get_run(run_id)
        remaining = await session.scalar(select(PayrollItem.id).where(PayrollItem.run_id == run_id))
        assert remaining is None

    async def test_approval_required(self, session, service, company, make_employee):
        company.payroll_settings = {"features": {"require_approval": True}}
        await session.commit()
        await make_employee()
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id

        with pytest.raises(ApprovalRequiredError):
            await service.finalize_run(run_id)

        await service.approve_run(run_id, actor="boss")
        run = await service.finalize_run(run_id)
        assert run.status == "finalized"

    async def test_edit_clears_approval(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        run = await service.approve_run(creation.run.id, actor="boss")
        assert run.approved_at is not None

        await service.update_item(item.id, {"bonus": Decimal("100")})
        run = await service.get_run(creation.run.id)
        assert run.approved_at is None


class TestBulkCreation:
    async def test_one_run_per_department(self, service, make_employee, department, other_department):
        await make_employee(department_id=department.id)

        bulk = await service.create_all_departments(2025, 3)

        assert [c.run.department_id for c in bulk.created_runs] == [department.id]
        assert bulk.skipped == [
            {"id": other_department.id, "name": "Sales", "reason": "no_employees"}
        ]
        assert bulk.totals["runs_created"] == 1

        again = await service.create_all_departments(2025, 3)
        assert again.created_runs == []
        reasons = {s["name"]: s["reason"] for s in again.skipped}
        assert reasons == {"Operations": "already_exists", "Sales": "no_employees"}

    async def test_employees_already_placed_are_skipped(self, service, make_employee, department):
        await make_employee(department_id=department.id)
        await service.create_run(2025, 3)

        bulk = await service.create_all_departments(2025, 3)
        assert bulk.created_runs == []
        assert bulk.skipped[0]["reason"] == "no_employees"


class TestListRuns:
    async def test_filters_and_counts(self, service, make_employee):
        await make_employee()
        await make_employee()
        await service.create_run(2025, 2)
        await service.create_run(2025, 3)

        rows = await service.list_runs(year=2025)
        assert [(run.month, count) for run, count in rows] == [(3, 2), (2, 2)]

        rows = await service.list_runs(month=2)
        assert len(rows) == 1

        assert await service.list_runs(status="finalized") == []


class TestChangeSets:
    async def test_rows_fail_independently(self, service, make_employee):
        await make_employee(default_basic_salary=Decimal("2200"))
        creation = await service.create_run(2025, 3)
        item = await only_item(service, creation.run.id)

        outcome = await ChangeSetService(service.session, service.company_id).apply(
            creation.run.id,
            [
                {"item_id": item.id, "field": "ot_hours", "new_value": "10", "reason": "March OT"},
                {"item_id": item.id, "field": "net_pay", "new_value": "1"},
                {"item_id": item.id, "field": "bonus", "new_value": "-1"},
            ],
            source="ai",
        )

        assert [r.success for r in outcome.results] == [True, False, False]
        assert outcome.applied == 1
        item = await service.get_item(item.id)
        assert item.ot_amount == Decimal("125.00")
        assert item.bonus == 0
        assert outcome.updated_totals["total_net"] == item.net_pay

    async def test_empty_change_set(self, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        with pytest.raises(ValidationError):
            await ChangeSetService(service.session, service.company_id).apply(creation.run.id, [])


class TestLocking:
    async def test_second_writer_times_out(self, session, service, make_employee):
        await make_employee()
        creation = await service.create_run(2025, 3)
        run_id = creation.run.id
        item_id = (await only_item(service, run_id)).id
        blocked = PayrollRunService(session, service.company_id, lock_timeout=0.05)

        async with RunLockManager(session, timeout=1).exclusive(run_key(run_id)):
            with pytest.raises(ConcurrencyConflict) as exc_info:
                await blocked.update_item(item_id, {"bonus": Decimal("100")})

        assert exc_info.value.key == run_key(run_id)
        item = await service.get_item(item_id)
        assert item.bonus == 0
