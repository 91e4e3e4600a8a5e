"""Resignation endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from mypayroll.api.dependencies import Actor, CompanyId, DbSession
from mypayroll.api.schemas import (
    ErrorResponse,
    LeaveCancellationResponse,
    LeaveCheckResponse,
    ProcessRequest,
    ProcessResponse,
    ReasonRequest,
    ResignationCreate,
    ResignationListResponse,
    ResignationResponse,
    SettlementResponse,
    WaiveNoticeRequest,
)
from mypayroll.models import Employee, Resignation
from mypayroll.services.resignation_service import ResignationService

router = APIRouter(prefix="/resignations", tags=["resignations"])


def _response(resignation: Resignation, employee: Employee | None = None) -> ResignationResponse:
    resp = ResignationResponse.model_validate(resignation)
    if employee is not None:
        resp.emp_code = employee.emp_code
        resp.employee_name = employee.name
    return resp


@router.get("", response_model=ResignationListResponse)
async def list_resignations(
    db: DbSession,
    company_id: CompanyId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    employee_id: UUID | None = None,
) -> ResignationListResponse:
    """List resignations, latest last working day first."""
    service = ResignationService(db, company_id)
    rows = await service.list_resignations(status_filter, employee_id)
    return ResignationListResponse(
        items=[_response(r, e) for r, e in rows], total=len(rows)
    )


@router.post(
    "",
    response_model=ResignationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    payload: ResignationCreate,
) -> ResignationResponse:
    """Record a resignation notice."""
    service = ResignationService(db, company_id)
    resignation = await service.create(
        payload.employee_id,
        payload.notice_date,
        payload.last_working_day,
        reason=payload.reason,
        remarks=payload.remarks,
        actor=actor,
    )
    return _response(resignation)


@router.get(
    "/{resignation_id}",
    response_model=ResignationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_resignation(
    db: DbSession,
    company_id: CompanyId,
    resignation_id: Annotated[UUID, Path()],
) -> ResignationResponse:
    service = ResignationService(db, company_id)
    return _response(await service.get(resignation_id))


@router.delete(
    "/{resignation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}},
)
async def delete_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
) -> None:
    """Delete a pending resignation."""
    service = ResignationService(db, company_id)
    await service.delete(resignation_id, actor)


@router.post("/{resignation_id}/approve", response_model=ResignationResponse)
async def approve_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
) -> ResignationResponse:
    """Approve a resignation and start clearance."""
    service = ResignationService(db, company_id)
    return _response(await service.approve(resignation_id, actor))


@router.post("/{resignation_id}/reject", response_model=ResignationResponse)
async def reject_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
    payload: ReasonRequest | None = None,
) -> ResignationResponse:
    service = ResignationService(db, company_id)
    reason = payload.reason if payload else None
    return _response(await service.reject(resignation_id, reason, actor))


@router.post("/{resignation_id}/withdraw", response_model=ResignationResponse)
async def withdraw_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
) -> ResignationResponse:
    service = ResignationService(db, company_id)
    return _response(await service.withdraw(resignation_id, actor))


@router.post("/{resignation_id}/cancel", response_model=ResignationResponse)
async def cancel_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
    payload: ReasonRequest | None = None,
) -> ResignationResponse:
    """Cancel a pending or clearing resignation; the employee stays active."""
    service = ResignationService(db, company_id)
    reason = payload.reason if payload else None
    return _response(await service.cancel(resignation_id, reason, actor))


@router.post("/{resignation_id}/waive-notice", response_model=ResignationResponse)
async def waive_notice(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
    payload: WaiveNoticeRequest,
) -> ResignationResponse:
    service = ResignationService(db, company_id)
    return _response(await service.waive_notice(resignation_id, payload.waived, actor))


@router.get("/{resignation_id}/settlement", response_model=SettlementResponse)
async def preview_settlement(
    db: DbSession,
    company_id: CompanyId,
    resignation_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    """Final settlement breakdown, without saving it."""
    service = ResignationService(db, company_id)
    return SettlementResponse.model_validate(await service.calculate_settlement(resignation_id))


@router.get("/{resignation_id}/check-leaves", response_model=LeaveCheckResponse)
async def check_leaves(
    db: DbSession,
    company_id: CompanyId,
    resignation_id: Annotated[UUID, Path()],
) -> LeaveCheckResponse:
    """Leaves that completing the resignation would cancel."""
    service = ResignationService(db, company_id)
    return LeaveCheckResponse(**await service.check_leaves(resignation_id))


@router.post(
    "/{resignation_id}/process",
    response_model=ProcessResponse,
    responses={409: {"model": ErrorResponse}},
)
async def process_resignation(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
    payload: ProcessRequest | None = None,
) -> ProcessResponse:
    """Complete a resignation and record its final settlement."""
    payload = payload or ProcessRequest()
    service = ResignationService(db, company_id)
    result = await service.process(
        resignation_id,
        confirm_leave_cancellation=payload.confirm_leave_cancellation,
        settlement_date=payload.settlement_date,
        actor=actor,
    )
    return ProcessResponse(
        resignation=_response(result.resignation),
        settlement=SettlementResponse.model_validate(result.settlement),
        leaves_cancelled=LeaveCancellationResponse.model_validate(result.leaves_cancelled),
        claims_settled=result.claims_settled,
    )


@router.post("/{resignation_id}/cleanup-leaves", response_model=LeaveCancellationResponse)
async def cleanup_leaves(
    db: DbSession,
    company_id: CompanyId,
    actor: Actor,
    resignation_id: Annotated[UUID, Path()],
) -> LeaveCancellationResponse:
    """Cancel leave booked after the last working day of a completed resignation."""
    service = ResignationService(db, company_id)
    return LeaveCancellationResponse.model_validate(
        await service.cleanup_leaves(resignation_id, actor)
    )
