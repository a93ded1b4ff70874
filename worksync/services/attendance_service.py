"""
Attendance service — daily attendance maintained by IE.

Supervisor scans mark employees present automatically (see
``assignment_service.mark_present``); IE corrects times and status here.
"""

import uuid
from datetime import date, time

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.security import Identity, RequestContext
from worksync.models.attendance import EmployeeAttendance
from worksync.models.employee import Employee
from worksync.services.audit_service import AuditAction, log_audit

ATTENDANCE_STATUSES = ("present", "absent", "half_day", "leave")


async def list_attendance(db: AsyncSession, work_date: date) -> list[tuple[Employee, EmployeeAttendance | None]]:
    """Every active employee with their attendance row for the day (if any)."""
    stmt = (
        select(Employee, EmployeeAttendance)
        .outerjoin(
            EmployeeAttendance,
            (EmployeeAttendance.employee_id == Employee.id)
            & (EmployeeAttendance.attendance_date == work_date),
        )
        .where(Employee.is_active.is_(True))
        .order_by(Employee.emp_code)
    )
    result = await db.execute(stmt)
    return [(employee, attendance) for employee, attendance in result.all()]


async def upsert_attendance(
    db: AsyncSession,
    *,
    employee_id: uuid.UUID,
    work_date: date,
    status_value: str,
    in_time: time | None = None,
    out_time: time | None = None,
    notes: str | None = None,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> EmployeeAttendance:
    if status_value not in ATTENDANCE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "invalid_status", "message": f"Unknown attendance status '{status_value}'"},
        )
    if await db.get(Employee, employee_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")

    stmt = select(EmployeeAttendance).where(
        EmployeeAttendance.employee_id == employee_id,
        EmployeeAttendance.attendance_date == work_date,
    )
    attendance = (await db.execute(stmt)).scalar_one_or_none()
    old_values = None
    if attendance is None:
        attendance = EmployeeAttendance(employee_id=employee_id, attendance_date=work_date)
        db.add(attendance)
        action = AuditAction.CREATE
    else:
        old_values = {
            "status": attendance.status,
            "in_time": attendance.in_time,
            "out_time": attendance.out_time,
            "notes": attendance.notes,
        }
        action = AuditAction.UPDATE

    attendance.status = status_value
    if in_time is not None:
        attendance.in_time = in_time
    if out_time is not None:
        attendance.out_time = out_time
    if notes is not None:
        attendance.notes = notes
    await db.flush()

    await log_audit(
        db,
        table_name=EmployeeAttendance.__tablename__,
        record_id=attendance.id,
        action=action,
        old_values=old_values,
        new_values={
            "employee_id": employee_id,
            "attendance_date": work_date,
            "status": status_value,
            "in_time": attendance.in_time,
            "out_time": attendance.out_time,
            "notes": attendance.notes,
        },
        identity=identity,
        context=context,
    )
    return attendance
