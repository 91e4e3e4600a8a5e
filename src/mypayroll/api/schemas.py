"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str


# ============================================================================
# Payroll run schemas
# ============================================================================


class RunCreate(BaseModel):
    """Schema for creating a payroll run.

    ``inputs`` maps employee ids to per-period inputs (ot_hours, bonus, ...)
    applied on top of the carried-forward defaults.
    """

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    department_id: UUID | None = None
    outlet_id: UUID | None = None
    notes: str | None = None
    inputs: dict[UUID, dict[str, Any]] = Field(default_factory=dict)


class BulkRunCreate(BaseModel):
    """Schema for creating one run per department or outlet."""

    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    year: int
    month: int
    scope_key: str
    department_id: UUID | None = None
    outlet_id: UUID | None = None
    status: str
    period_start: date
    period_end: date
    working_days: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_cost: Decimal
    employee_count: int
    notes: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    finalized_at: datetime | None = None
    finalized_by: str | None = None
    created_at: datetime
    updated_at: datetime


class PayrollRunSummary(PayrollRunResponse):
    """Schema for a run in a listing."""

    item_count: int = 0


class PayrollRunListResponse(BaseModel):
    """Schema for listing payroll runs."""

    items: list[PayrollRunSummary]
    total: int


class PayrollItemResponse(BaseModel):
    """Schema for payroll item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_id: UUID
    employee_id: UUID
    emp_code: str | None = None
    employee_name: str | None = None

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
    deduction_remarks: str | None = None
    total_deductions: Decimal
    net_pay: Decimal

    ot_override: Decimal | None = None
    epf_override: Decimal | None = None
    pcb_override: Decimal | None = None
    claims_override: Decimal | None = None

    statutory_base: Decimal
    employer_total_cost: Decimal
    days_in_period: int | None = None
    carried_forward: bool
    basic_salary_edited: bool = False
    prev_month_net: Decimal | None = None
    variance_amount: Decimal | None = None
    variance_percent: Decimal | None = None
    notes: str | None = None


class RunCreateResponse(BaseModel):
    """Schema for run creation response."""

    run: PayrollRunResponse
    employee_count: int
    carried_forward_count: int
    warning: str | None = None
    skipped_employee_ids: list[UUID] = Field(default_factory=list)


class BulkRunCreateResponse(BaseModel):
    """Schema for bulk run creation response."""

    created_runs: list[RunCreateResponse]
    skipped: list[dict[str, Any]]
    totals: dict[str, Any]


class RunDetailResponse(BaseModel):
    """Schema for a run with its items."""

    run: PayrollRunResponse
    items: list[PayrollItemResponse]


class ItemUpdate(BaseModel):
    """Partial update of a draft item.

    Overrides accept null or an empty string to go back to the computed
    value; any number, including 0, replaces it. ``ot_amount`` sets the OT
    override. Amount fields reject null.
    """

    model_config = ConfigDict(extra="ignore")

    basic_salary: Decimal | None = None
    fixed_allowance: Decimal | None = None
    ot_hours: Decimal | None = None
    ph_days_worked: Decimal | None = None
    incentive: Decimal | None = None
    commission: Decimal | None = None
    trade_commission: Decimal | None = None
    outstation: Decimal | None = None
    bonus: Decimal | None = None
    claims_amount: Decimal | None = None
    unpaid_leave_days: Decimal | None = None
    advance_deduction: Decimal | None = None
    other_deductions: Decimal | None = None
    ot_override: Decimal | None = None
    ot_amount: Decimal | None = None
    epf_override: Decimal | None = None
    pcb_override: Decimal | None = None
    claims_override: Decimal | None = None
    deduction_remarks: str | None = None
    notes: str | None = None

    @field_validator(
        "ot_override", "ot_amount", "epf_override", "pcb_override", "claims_override",
        mode="before",
    )
    @classmethod
    def blank_override_is_none(cls, value: Any) -> Any:
        return None if value == "" else value


class RecalculateResponse(BaseModel):
    """Schema for recalculation response."""

    recalculated: int
    total: int


class ChangeIn(BaseModel):
    """One change in a change set."""

    item_id: UUID
    field: str
    new_value: Any = None
    reason: str | None = None


class ChangeSetRequest(BaseModel):
    """Schema for applying a change set."""

    changes: list[ChangeIn] = Field(min_length=1)
    source: Literal["manual", "ai"] = "manual"


class ChangeResultResponse(BaseModel):
    """Per-row outcome of a change set."""

    model_config = ConfigDict(from_attributes=True)

    item_id: UUID
    field: str
    success: bool
    error: str | None = None


class ChangeSetResponse(BaseModel):
    """Schema for change set response."""

    results: list[ChangeResultResponse]
    applied: int
    updated_totals: dict[str, Any]


class PayslipResponse(BaseModel):
    """Schema for a payslip."""

    company: dict[str, Any]
    employee: dict[str, Any]
    period: dict[str, Any]
    earnings: dict[str, Any]
    deductions: dict[str, Any]
    employer_contributions: dict[str, Any]
    totals: dict[str, Any]


# ============================================================================
# Contribution schemas
# ============================================================================


class BodyTotals(BaseModel):
    """Employee and employer totals for one statutory body."""

    employee: Decimal
    employer: Decimal
    total: Decimal


class PcbTotals(BaseModel):
    total: Decimal


class ContributionSummaryResponse(BaseModel):
    """Schema for a run's contribution totals."""

    run_id: UUID
    year: int
    month: int
    status: str
    employee_count: int
    epf: BodyTotals
    socso: BodyTotals
    eis: BodyTotals
    pcb: PcbTotals
    grand_total: Decimal


class ContributionDetail(BaseModel):
    """Schema for one employee's contributions."""

    employee_id: UUID
    emp_code: str
    name: str
    ic_number: str | None = None
    epf_number: str | None = None
    socso_number: str | None = None
    tax_number: str | None = None
    department: str | None = None
    gross_salary: Decimal
    statutory_base: Decimal
    epf_employee: Decimal
    epf_employer: Decimal
    socso_employee: Decimal
    socso_employer: Decimal
    eis_employee: Decimal
    eis_employer: Decimal
    pcb: Decimal


class ContributionDetailsResponse(BaseModel):
    run_id: UUID
    items: list[ContributionDetail]


class MonthlyContributions(BaseModel):
    """Schema for one month of a yearly report."""

    month: int
    employee_count: int
    gross_salary: Decimal
    epf: BodyTotals
    socso: BodyTotals
    eis: BodyTotals
    pcb: PcbTotals
    grand_total: Decimal


class UnitContributions(BaseModel):
    """Schema for one month of one department or outlet in a yearly report."""

    month: int
    unit_type: str
    unit_id: UUID | None = None
    unit_name: str | None = None
    employee_count: int
    gross_salary: Decimal
    epf: BodyTotals
    socso: BodyTotals
    eis: BodyTotals
    pcb: PcbTotals
    grand_total: Decimal


class YearlyTotals(BaseModel):
    gross_salary: Decimal
    epf: BodyTotals
    socso: BodyTotals
    eis: BodyTotals
    pcb: PcbTotals
    grand_total: Decimal


class YearlyReportResponse(BaseModel):
    """Schema for the yearly contribution report."""

    year: int
    partition: dict[str, Any] | None = None
    group_by: str
    rows: list[UnitContributions]
    months: list[MonthlyContributions]
    totals: YearlyTotals


class ExportResponse(BaseModel):
    """Rows handed to an EPF, SOCSO, EIS, PCB or bank file exporter."""

    run_id: UUID
    kind: str
    rows: list[dict[str, Any]]


# ============================================================================
# Resignation schemas
# ============================================================================


class ResignationCreate(BaseModel):
    """Schema for recording a resignation."""

    employee_id: UUID
    notice_date: date
    last_working_day: date
    reason: str | None = None
    remarks: str | None = None


class ResignationResponse(BaseModel):
    """Schema for resignation response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    employee_id: UUID
    emp_code: str | None = None
    employee_name: str | None = None
    notice_date: date
    last_working_day: date
    reason: str | None = None
    remarks: str | None = None
    status: str
    required_notice_days: int
    actual_notice_days: int
    notice_waived: bool
    days_worked: int | None = None
    pro_rated_salary: Decimal | None = None
    leave_encashment_days: Decimal | None = None
    leave_encashment_amount: Decimal | None = None
    pending_claims_amount: Decimal | None = None
    total_final_settlement: Decimal | None = None
    settlement_date: date | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    processed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class ResignationListResponse(BaseModel):
    items: list[ResignationResponse]
    total: int


class ReasonRequest(BaseModel):
    """Optional reason for reject and cancel."""

    reason: str | None = None


class WaiveNoticeRequest(BaseModel):
    waived: bool = True


class ProcessRequest(BaseModel):
    """Schema for completing a resignation."""

    confirm_leave_cancellation: bool = False
    settlement_date: date | None = None


class SettlementResponse(BaseModel):
    """Schema for a final settlement breakdown."""

    model_config = ConfigDict(from_attributes=True)

    days_worked: int
    days_in_month: int
    pro_rated_salary: Decimal
    daily_rate: Decimal
    leave_encashment_days: Decimal
    leave_encashment_amount: Decimal
    pending_claims: Decimal
    total_final_settlement: Decimal
    salary_already_paid: bool


class LeaveCancellationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pending: int
    approved: int
    total: int
    restored_days: Decimal


class ProcessResponse(BaseModel):
    """Schema for a completed resignation."""

    resignation: ResignationResponse
    settlement: SettlementResponse
    leaves_cancelled: LeaveCancellationResponse
    claims_settled: int


class LeaveCheckResponse(BaseModel):
    """Leaves starting after the last working day."""

    last_working_day: date
    approved_leaves: list[dict[str, Any]]
    pending_leaves: list[dict[str, Any]]
    total_approved_days: Decimal
    total_pending_days: Decimal
    has_leaves_to_cancel: bool
