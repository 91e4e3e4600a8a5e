"""Statutory contribution endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from mypayroll.api.dependencies import CompanyId, DbSession
from mypayroll.api.schemas import (
    ContributionDetail,
    ContributionDetailsResponse,
    ContributionSummaryResponse,
    ErrorResponse,
    ExportResponse,
    YearlyReportResponse,
)
from mypayroll.services.contribution_service import ContributionService

router = APIRouter(prefix="/contributions", tags=["contributions"])


@router.get(
    "/runs/{run_id}/summary",
    response_model=ContributionSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def contribution_summary(
    db: DbSession,
    company_id: CompanyId,
    run_id: Annotated[UUID, Path()],
) -> ContributionSummaryResponse:
    """EPF, SOCSO, EIS and PCB totals for a run."""
    service = ContributionService(db, company_id)
    return ContributionSummaryResponse(**await service.summary(run_id))


@router.get("/runs/{run_id}/details", response_model=ContributionDetailsResponse)
async def contribution_details(
    db: DbSession,
    company_id: CompanyId,
    run_id: Annotated[UUID, Path()],
) -> ContributionDetailsResponse:
    """Per-employee contributions for a run."""
    service = ContributionService(db, company_id)
    rows = await service.details(run_id)
    return ContributionDetailsResponse(
        run_id=run_id, items=[ContributionDetail(**row) for row in rows]
    )


@router.get(
    "/runs/{run_id}/export/{kind}",
    response_model=ExportResponse,
    responses={409: {"model": ErrorResponse}},
)
async def export_rows(
    db: DbSession,
    company_id: CompanyId,
    run_id: Annotated[UUID, Path()],
    kind: Annotated[str, Path(pattern="^(epf|socso|eis|pcb|bank)$")],
) -> ExportResponse:
    """Rows for an EPF, SOCSO, EIS, PCB or bank-transfer file of a finalized run."""
    service = ContributionService(db, company_id)
    return ExportResponse(run_id=run_id, kind=kind, rows=await service.export_rows(run_id, kind))


@router.get("/report", response_model=YearlyReportResponse)
async def yearly_report(
    db: DbSession,
    company_id: CompanyId,
    year: int,
    department_id: UUID | None = None,
    outlet_id: UUID | None = None,
    group_by: Annotated[str | None, Query(pattern="^(department|outlet)$")] = None,
) -> YearlyReportResponse:
    """Contribution totals per month and unit over the finalized runs of a year."""
    service = ContributionService(db, company_id)
    report = await service.yearly_report(year, department_id, outlet_id, group_by)
    return YearlyReportResponse(**report)
