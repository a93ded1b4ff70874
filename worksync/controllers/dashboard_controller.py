"""
Dashboard controller — read-only views for management screens.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.database import get_db
from worksync.core.security import Identity
from worksync.rbac.dependencies import require_permission
from worksync.schemas import (
    DashboardStatsOut,
    EmployeeOut,
    LineAssignmentOut,
    LineDetailsOut,
    LineOut,
    ProcessOut,
    ProductOut,
)
from worksync.services import dashboard_service

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStatsOut)
async def stats(
    work_date: date | None = Query(None),
    identity: Identity = Depends(require_permission("dashboard:read")),
    db: AsyncSession = Depends(get_db),
):
    return DashboardStatsOut(**await dashboard_service.get_stats(db, work_date or date.today()))


@router.get("/lines/{line_id}/details", response_model=LineDetailsOut)
async def line_details(
    line_id: uuid.UUID,
    work_date: date | None = Query(None),
    identity: Identity = Depends(require_permission("dashboard:read")),
    db: AsyncSession = Depends(get_db),
):
    details = await dashboard_service.get_line_details(db, line_id, work_date or date.today())
    return LineDetailsOut(
        line=LineOut.model_validate(details.line),
        current_product=(
            ProductOut.model_validate(details.current_product)
            if details.current_product is not None else None
        ),
        processes=[ProcessOut.model_validate(p) for p in details.processes],
        assignments=[LineAssignmentOut.model_validate(a) for a in details.assignments],
        employees=[EmployeeOut.model_validate(e) for e in details.employees],
    )
