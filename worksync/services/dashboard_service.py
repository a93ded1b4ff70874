"""
Dashboard service — read-only roll-ups for management screens.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.models.assignment import ProcessAssignment
from worksync.models.attendance import EmployeeAttendance, HourlyProgress
from worksync.models.employee import Employee
from worksync.models.line import ProductionLine
from worksync.models.operation import Operation
from worksync.models.product import Product, ProductProcess
from worksync.services import assignment_service, catalog_service

# Attendance statuses that count as on the floor
PRESENT_STATUSES = ("present", "half_day")


async def _count(db: AsyncSession, stmt: Any) -> int:
    return (await db.execute(stmt)).scalar_one() or 0


def _active(model: Any) -> Any:
    return select(func.count()).select_from(model).where(model.is_active.is_(True))


async def get_stats(db: AsyncSession, work_date: date) -> dict[str, Any]:
    """Master-data counts plus the day's staffing and output."""
    return {
        "work_date": work_date,
        "lines_count": await _count(db, _active(ProductionLine)),
        "employees_count": await _count(db, _active(Employee)),
        "products_count": await _count(db, _active(Product)),
        "operations_count": await _count(db, _active(Operation)),
        "assigned_processes": await _count(
            db,
            select(func.count()).where(
                ProcessAssignment.work_date == work_date,
                ProcessAssignment.employee_id.is_not(None),
            ),
        ),
        "present_employees": await _count(
            db,
            select(func.count()).where(
                EmployeeAttendance.attendance_date == work_date,
                EmployeeAttendance.status.in_(PRESENT_STATUSES),
            ),
        ),
        "output_today": await _count(
            db,
            select(func.coalesce(func.sum(HourlyProgress.quantity), 0)).where(
                HourlyProgress.work_date == work_date,
            ),
        ),
    }


@dataclass
class LineDetails:
    line: ProductionLine
    current_product: Product | None
    processes: list[ProductProcess]
    assignments: list[ProcessAssignment]
    employees: list[Employee]


async def get_line_details(db: AsyncSession, line_id: uuid.UUID, work_date: date) -> LineDetails:
    """
    Everything a line board needs in one call: the running product, its
    processes in order, who holds which process on ``work_date`` and the
    active employees that can be scanned in.  Unknown line → 404.
    """
    processes = await catalog_service.list_line_processes(db, line_id)
    line = await db.get(ProductionLine, line_id)
    return LineDetails(
        line=line,
        current_product=line.current_product,
        processes=processes,
        assignments=await assignment_service.list_line_assignments(db, line_id, work_date),
        employees=await catalog_service.list_employees(db, active_only=True),
    )
