"""
Concurrent scans of the same process.

These tests run against a file database behind a single-connection
pool, so two transactions started together really interleave at the
pool: the second waits for the first to commit and then sees its row.
"""

import asyncio
import json
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from worksync.models import Base, EmployeeAttendance, ProcessAssignment
from worksync.services import assignment_service
from worksync.services.assignment_service import ConfirmRequired, ScanSuccess

WORK_DATE = date(2026, 3, 2)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'worksync.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
        pool_timeout=10,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


def scan(session_factory, floor, employee):
    return assignment_service.resolve_scan(
        line_id=floor.line.id,
        process_id=floor.processes[0].id,
        employee_qr=json.dumps({"type": "employee", "id": str(employee.id)}),
        work_date=WORK_DATE,
        session_factory=session_factory,
    )


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestConcurrentScans:
    async def test_one_of_two_simultaneous_scans_wins(self, session_factory, floor):
        first, second = floor.employees[0], floor.employees[1]

        results = await asyncio.gather(
            scan(session_factory, floor, first),
            scan(session_factory, floor, second),
        )

        winners = [r for r in results if isinstance(r, ScanSuccess)]
        losers = [r for r in results if isinstance(r, ConfirmRequired)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert losers[0].current_employee.id == winners[0].employee.id

        async with session_factory() as session:
            rows = (await session.execute(select(ProcessAssignment))).scalars().all()
        assert len(rows) == 1
        assert rows[0].employee_id == winners[0].employee.id
        # Only the winner was clocked in
        assert await count(session_factory, EmployeeAttendance) == 1

    async def test_same_employee_scanned_twice_keeps_one_assignment(self, session_factory, floor):
        worker = floor.employees[2]

        results = await asyncio.gather(
            scan(session_factory, floor, worker),
            scan(session_factory, floor, worker),
        )

        assert all(isinstance(r, ScanSuccess) for r in results)
        assert await count(session_factory, ProcessAssignment) == 1
        assert await count(session_factory, EmployeeAttendance) == 1
