"""
Supervisor controller — the shop-floor scanning workflow.

A supervisor picks a line, scans a process QR and then an employee QR.
`POST /scan` answers with one of:

- 200 ``{"status": "success", ...}``
- 409 ``{"status": "conflict", "conflict": "confirm_change" | "quantity_required", ...}``
- 404 / 400 with ``{"code": <reason>, "message": ...}`` for unknown ids or bad QR codes
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksync.core.database import get_db, get_session_factory
from worksync.core.security import Identity, RequestContext, forwarded_headers, get_request_context
from worksync.rbac.dependencies import require_permission
from worksync.schemas import (
    AssignmentHistoryOut,
    AssignmentOut,
    EmployeeOut,
    LineAssignmentOut,
    LineOut,
    ProcessOut,
    ProgressOut,
    ProgressRequest,
    ScanConflictResponse,
    ScanRequest,
    ScanSuccessResponse,
)
from worksync.services import assignment_service, catalog_service
from worksync.services.assignment_service import (
    ConfirmRequired,
    QuantityRequired,
    ScanFailure,
    ScanFailureReason,
)

router = APIRouter(prefix="/api/supervisor", tags=["Supervisor"])

_NOT_FOUND_REASONS = {
    ScanFailureReason.LINE_NOT_FOUND,
    ScanFailureReason.PROCESS_NOT_FOUND,
    ScanFailureReason.EMPLOYEE_NOT_FOUND,
}


@router.get("/lines", response_model=list[LineOut])
async def active_lines(
    identity: Identity = Depends(require_permission("lines:read")),
    db: AsyncSession = Depends(get_db),
):
    lines = await catalog_service.list_lines(db, active_only=True)
    return [LineOut.model_validate(line) for line in lines]


@router.get("/lines/{line_id}/processes", response_model=list[ProcessOut])
async def line_processes(
    line_id: uuid.UUID,
    identity: Identity = Depends(require_permission("processes:read")),
    db: AsyncSession = Depends(get_db),
):
    processes = await catalog_service.list_line_processes(db, line_id)
    return [ProcessOut.model_validate(p) for p in processes]


@router.get("/lines/{line_id}/assignments", response_model=list[LineAssignmentOut])
async def line_assignments(
    line_id: uuid.UUID,
    work_date: date | None = Query(None),
    identity: Identity = Depends(require_permission("assignments:read")),
    db: AsyncSession = Depends(get_db),
):
    assignments = await assignment_service.list_line_assignments(db, line_id, work_date)
    return [LineAssignmentOut.model_validate(a) for a in assignments]


@router.get("/lines/{line_id}/history", response_model=list[AssignmentHistoryOut])
async def line_history(
    line_id: uuid.UUID,
    work_date: date | None = Query(None),
    identity: Identity = Depends(require_permission("assignments:read")),
    db: AsyncSession = Depends(get_db),
):
    """Closed-out assignee periods of the day."""
    entries = await assignment_service.list_assignment_history(db, line_id, work_date)
    return [AssignmentHistoryOut.model_validate(e) for e in entries]


@router.post(
    "/scan",
    response_model=ScanSuccessResponse,
    responses={409: {"model": ScanConflictResponse}},
)
async def scan(
    body: ScanRequest,
    response: Response,
    identity: Identity = Depends(require_permission("assignments:update")),
    context: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    result = await assignment_service.resolve_scan(
        line_id=body.line_id,
        process_id=body.process_id,
        process_qr=body.process_qr,
        employee_qr=body.employee_qr,
        materials_at_link=body.materials_at_link,
        quantity_completed=body.quantity_completed,
        confirm_change=body.confirm_change,
        identity=identity,
        context=context,
        work_date=body.work_date,
        session_factory=session_factory,
    )

    if isinstance(result, ScanFailure):
        code = status.HTTP_404_NOT_FOUND if result.reason in _NOT_FOUND_REASONS else status.HTTP_400_BAD_REQUEST
        raise HTTPException(
            status_code=code,
            detail={"code": result.reason, "message": result.message},
            headers=forwarded_headers(response),
        )

    if isinstance(result, (ConfirmRequired, QuantityRequired)):
        if isinstance(result, ConfirmRequired):
            conflict, message = "confirm_change", "Process is assigned to another employee"
        else:
            conflict, message = "quantity_required", "Quantity completed by the current employee is required"
        body_out = ScanConflictResponse(
            conflict=conflict,
            message=message,
            current_employee=EmployeeOut.model_validate(result.current_employee),
        )
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=body_out.model_dump(mode="json"),
            headers=forwarded_headers(response),
        )

    return ScanSuccessResponse(
        assignment=AssignmentOut.model_validate(result.assignment),
        employee=EmployeeOut.model_validate(result.employee),
        previous_employee=(
            EmployeeOut.model_validate(result.previous_employee)
            if result.previous_employee is not None
            else None
        ),
    )


@router.post("/progress", response_model=ProgressOut)
async def record_progress(
    body: ProgressRequest,
    identity: Identity = Depends(require_permission("progress:update")),
    context: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Enter (or correct) the output of one hour slot."""
    progress = await assignment_service.record_progress(
        line_id=body.line_id,
        process_id=body.process_id,
        hour_slot=body.hour_slot,
        quantity=body.quantity,
        identity=identity,
        context=context,
        work_date=body.work_date,
        session_factory=session_factory,
    )
    return ProgressOut.model_validate(progress)
