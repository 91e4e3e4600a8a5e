"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from mypayroll.api.dependencies import Actor, CompanyId, DbSession
from mypayroll.api.schemas import (
    BulkRunCreate,
    BulkRunCreateResponse,
    ChangeResultResponse,
    ChangeSetRequest,
    ChangeSetResponse,
    ErrorResponse,
    ItemUpdate,
    PayrollItemResponse,
    PayrollRunListResponse,
    PayrollRunResponse,
    PayrollRunSummary,
    PayslipResponse,
    RecalculateResponse,
    RunCreate,
    RunCreateResponse,
    RunDetailResponse,
)
from mypayroll.models import Employee, PayrollItem
from mypayroll.services.change_set_service import ChangeSetService
from mypayroll.services.payroll_run_service import BulkCreation, PayrollRunService, RunCreation

router = APIRouter(prefix="/payroll", tags=["payroll"])


def _creation_response(creation: RunCreation) -> RunCreateResponse:
    return RunCreateResponse(
        run=PayrollRunResponse.model_validate(creation.run),
        employee_count=creation.employee_count,
        carried_forward_count=creation.carried_forward_count,
        warning=creation.warning,
        skipped_employee_ids=creation.skipped_employee_ids,
    )


def _bulk_response(bulk: BulkCreation) -> BulkRunCreateResponse:
    return BulkRunCreateResponse(
        created_runs=[_creation_response(c) for c in bulk.created_runs],
        skipped=bulk.skipped,
        totals=bulk.totals,
    )


def _item_response(item: PayrollItem, employee: Employee | None = None) -> PayrollItemResponse:
    resp = PayrollItemResponse.model_validate(item)
    if employee is not None:
        resp.emp_code = employee.emp_code
        resp.employee_name = employee.name
    return resp


# ============================================================================
# Payroll runs
# ============================================================================


@router.get("/runs", response_model=PayrollRunListResponse)
async def list_runs(
    db: DbSession,
    company_id: CompanyId,
    year: int | None = None,
    month: Annotated[int | None, Query(ge=1, le=12)] = None,
    scope: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> PayrollRunListResponse:
    """List payroll runs, newest period first."""
    service = PayrollRunService(db, company_id)
    rows = await service.list_runs(year, month, scope, status_filter)
    items = []
    for run, count in rows:
        summary = PayrollRunSummary.model_validate(run)
        summary.item_count = count
        items.append(summary)
    return PayrollRunListResponse(items=items, total=len(items))


@router.post(
    "/runs",
    response_model=RunCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_run(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    payload: RunCreate,
) -> RunCreateResponse:
    """Create a draft run for the company, a department or an outlet."""
    service = PayrollRunService(db, company_id)
    creation = await service.create_run(
        payload.year,
        payload.month,
        department_id=payload.department_id,
        outlet_id=payload.outlet_id,
        inputs=payload.inputs,
        notes=payload.notes,
        actor=actor,
    )
    return _creation_response(creation)


@router.post(
    "/runs/all-departments",
    response_model=BulkRunCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_all_department_runs(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    payload: BulkRunCreate,
) -> BulkRunCreateResponse:
    """Create one draft run per department."""
    service = PayrollRunService(db, company_id)
    return _bulk_response(await service.create_all_departments(payload.year, payload.month, actor))


@router.post(
    "/runs/all-outlets",
    response_model=BulkRunCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_all_outlet_runs(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    payload: BulkRunCreate,
) -> BulkRunCreateResponse:
    """Create one draft run per outlet."""
    service = PayrollRunService(db, company_id)
    return _bulk_response(await service.create_all_outlets(payload.year, payload.month, actor))


@router.get(
    "/runs/{run_id}",
    response_model=RunDetailResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(
    db: DbSession,
    company_id: CompanyId,
    run_id: Annotated[UUID, Path()],
) -> RunDetailResponse:
    """Get a run with its items."""
    service = PayrollRunService(db, company_id)
    run = await service.get_run(run_id)
    rows = await service.list_items(run_id)
    return RunDetailResponse(
        run=PayrollRunResponse.model_validate(run),
        items=[_item_response(item, employee) for item, employee in rows],
    )


@router.delete(
    "/runs/{run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_run(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
    force: bool = False,
) -> None:
    """Delete a run; a finalized run needs ``force=true``."""
    service = PayrollRunService(db, company_id)
    await service.delete_run(run_id, force=force, actor=actor)


@router.post("/runs/{run_id}/recalculate", response_model=RecalculateResponse)
async def recalculate_run(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
) -> RecalculateResponse:
    """Recalculate every item of a draft run."""
    service = PayrollRunService(db, company_id)
    return RecalculateResponse(**await service.recalculate_all(run_id, actor))


@router.post("/runs/{run_id}/approve", response_model=PayrollRunResponse)
async def approve_run(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    """Approve a draft run."""
    service = PayrollRunService(db, company_id)
    return PayrollRunResponse.model_validate(await service.approve_run(run_id, actor))


@router.post(
    "/runs/{run_id}/finalize",
    response_model=PayrollRunResponse,
    responses={409: {"model": ErrorResponse}},
)
async def finalize_run(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    """Finalize a draft run. Finalized runs are immutable."""
    service = PayrollRunService(db, company_id)
    return PayrollRunResponse.model_validate(await service.finalize_run(run_id, actor))


@router.post("/runs/{run_id}/changes", response_model=ChangeSetResponse)
async def apply_changes(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    run_id: Annotated[UUID, Path()],
    payload: ChangeSetRequest,
) -> ChangeSetResponse:
    """Apply a batch of item changes; failures are reported per row."""
    service = ChangeSetService(db, company_id)
    outcome = await service.apply(
        run_id,
        [change.model_dump() for change in payload.changes],
        source=payload.source,
        actor=actor,
    )
    return ChangeSetResponse(
        results=[ChangeResultResponse.model_validate(r) for r in outcome.results],
        applied=outcome.applied,
        updated_totals=outcome.updated_totals,
    )


# ============================================================================
# Payroll items
# ============================================================================


@router.put(
    "/items/{item_id}",
    response_model=PayrollItemResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_item(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    item_id: Annotated[UUID, Path()],
    payload: ItemUpdate,
) -> PayrollItemResponse:
    """Update inputs of a draft item and recalculate it."""
    service = PayrollRunService(db, company_id)
    item = await service.update_item(item_id, payload.model_dump(exclude_unset=True), actor)
    return _item_response(item)


@router.delete("/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    item_id: Annotated[UUID, Path()],
) -> None:
    """Remove an item from a draft run."""
    service = PayrollRunService(db, company_id)
    await service.delete_item(item_id, actor)


@router.post("/items/{item_id}/recalculate", response_model=RecalculateResponse)
async def recalculate_item(
    db: DbSession,
    company_id: CompanyId,
    item_id: Annotated[UUID, Path()],
) -> RecalculateResponse:
    """Recalculate one item from current master data."""
    service = PayrollRunService(db, company_id)
    return RecalculateResponse(**await service.recalculate_item(item_id))


@router.get("/items/{item_id}/payslip", response_model=PayslipResponse)
async def get_payslip(
    db: DbSession,
    company_id: CompanyId,
    item_id: Annotated[UUID, Path()],
) -> PayslipResponse:
    """Payslip contents for one item."""
    service = PayrollRunService(db, company_id)
    return PayslipResponse(**await service.get_payslip(item_id))
