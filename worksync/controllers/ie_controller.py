"""
IE controller — daily attendance.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.database import get_db
from worksync.core.security import Identity, RequestContext, get_request_context
from worksync.rbac.dependencies import require_permission
from worksync.schemas import (
    AttendanceOut,
    AttendanceUpsertRequest,
    EmployeeAttendanceOut,
    EmployeeOut,
)
from worksync.services import attendance_service

router = APIRouter(prefix="/api/ie", tags=["IE"])


@router.get("/attendance", response_model=list[EmployeeAttendanceOut])
async def list_attendance(
    work_date: date | None = Query(None),
    identity: Identity = Depends(require_permission("attendance:read")),
    db: AsyncSession = Depends(get_db),
):
    rows = await attendance_service.list_attendance(db, work_date or date.today())
    return [
        EmployeeAttendanceOut(
            employee=EmployeeOut.model_validate(employee),
            attendance=AttendanceOut.model_validate(attendance) if attendance is not None else None,
        )
        for employee, attendance in rows
    ]


@router.put("/attendance", response_model=AttendanceOut)
async def upsert_attendance(
    body: AttendanceUpsertRequest,
    identity: Identity = Depends(require_permission("attendance:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    attendance = await attendance_service.upsert_attendance(
        db,
        employee_id=body.employee_id,
        work_date=body.work_date,
        status_value=body.status,
        in_time=body.in_time,
        out_time=body.out_time,
        notes=body.notes,
        identity=identity,
        context=context,
    )
    return AttendanceOut.model_validate(attendance)
