"""
Assignment service — who is working which process on a line today.

The scan flow (supervisor scans a process QR, then an employee QR) is a
two-phase protocol when the process already belongs to someone else:

1. scan without ``confirm_change``       -> ``ConfirmRequired``
2. re-scan with ``confirm_change``       -> ``QuantityRequired``
3. re-scan with ``quantity_completed``   -> switch, counter reset to 0

Outcomes are returned as values (``ScanResult``), never raised.  The
decision runs inside ``with_retry`` holding row locks on the process and
on its (line, process, date) assignment, so two concurrent scans of the
same process are decided one after the other.  Non-success outcomes roll
the whole scope back.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksync.core.security import Identity, RequestContext
from worksync.core.transaction import (
    lock_for_update,
    lock_rows_for_update,
    savepoint,
    with_retry,
)
from worksync.models.assignment import AssignmentHistory, ProcessAssignment
from worksync.models.attendance import EmployeeAttendance, HourlyProgress
from worksync.models.employee import Employee
from worksync.models.line import ProductionLine
from worksync.models.product import ProductProcess
from worksync.services.audit_service import AuditAction, log_audit

logger = logging.getLogger(__name__)

SCAN_ATTENDANCE_NOTE = "Supervisor scan"


# ── QR payloads ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class QrPayload:
    type: str | None
    id: uuid.UUID


def parse_qr_payload(raw: Any) -> QrPayload | None:
    """
    Accept ``{"type": ..., "id": ...}`` JSON or a bare id.

    Returns None when no usable id can be extracted.
    """
    if isinstance(raw, dict):
        data: Any = raw
    else:
        text = str(raw).strip()
        try:
            data = json.loads(text)
        except ValueError:
            data = text

    if isinstance(data, dict):
        kind, ident = data.get("type"), data.get("id")
    else:
        kind, ident = None, data

    try:
        return QrPayload(type=kind, id=uuid.UUID(str(ident)))
    except (TypeError, ValueError):
        return None


# ── Results ──────────────────────────────────────────────────────────


class ScanFailureReason:
    INVALID_QR = "invalid_qr"
    LINE_NOT_FOUND = "line_not_found"
    PROCESS_NOT_FOUND = "process_not_found"
    EMPLOYEE_NOT_FOUND = "employee_not_found"
    NO_CURRENT_PRODUCT = "no_current_product"
    OPERATION_NOT_IN_PRODUCT = "operation_not_in_product"


@dataclass(frozen=True)
class ScanSuccess:
    assignment: ProcessAssignment
    employee: Employee
    previous_employee: Employee | None = None


@dataclass(frozen=True)
class ConfirmRequired:
    current_employee: Employee


@dataclass(frozen=True)
class QuantityRequired:
    current_employee: Employee


@dataclass(frozen=True)
class ScanFailure:
    reason: str
    message: str


ScanResult = ScanSuccess | ConfirmRequired | QuantityRequired | ScanFailure


class _ScanAborted(Exception):
    """Carries a non-success result out of the transaction scope."""

    def __init__(self, result: ScanResult):
        super().__init__(type(result).__name__)
        self.result = result


def _fail(reason: str, message: str) -> _ScanAborted:
    return _ScanAborted(ScanFailure(reason=reason, message=message))


def _snapshot(assignment: ProcessAssignment) -> dict[str, Any]:
    return {
        "line_id": assignment.line_id,
        "process_id": assignment.process_id,
        "work_date": assignment.work_date,
        "employee_id": assignment.employee_id,
        "quantity_completed": assignment.quantity_completed,
        "materials_at_link": assignment.materials_at_link,
    }


# ── Shared steps ─────────────────────────────────────────────────────


async def _lock_assignment(
    session: AsyncSession,
    line_id: uuid.UUID,
    process_id: uuid.UUID,
    work_date: date,
) -> ProcessAssignment | None:
    stmt = (
        select(ProcessAssignment)
        .where(
            ProcessAssignment.line_id == line_id,
            ProcessAssignment.process_id == process_id,
            ProcessAssignment.work_date == work_date,
        )
        .with_for_update()
    )
    result = await session.execute(stmt)
    return result.scalars().first()


def _close_out(
    session: AsyncSession,
    assignment: ProcessAssignment,
    quantity: int,
    reason: str,
    identity: Identity | None,
) -> AssignmentHistory:
    """Archive the current assignee's period at ``quantity``."""
    entry = AssignmentHistory(
        line_id=assignment.line_id,
        process_id=assignment.process_id,
        work_date=assignment.work_date,
        employee_id=assignment.employee_id,
        quantity_completed=quantity,
        started_at=assignment.assigned_at,
        ended_at=datetime.now(timezone.utc),
        closed_by=identity.user_id if identity else None,
        reason=reason,
    )
    session.add(entry)
    return entry


async def _release_other_assignments(
    session: AsyncSession,
    employee_id: uuid.UUID,
    work_date: date,
    keep: ProcessAssignment | None,
    identity: Identity | None,
    context: RequestContext | None,
) -> int:
    """An employee works one process per day: free any other one."""
    rows = await lock_rows_for_update(
        session,
        ProcessAssignment,
        ProcessAssignment.employee_id,
        [employee_id],
        ProcessAssignment.work_date == work_date,
    )
    released = 0
    for other in rows:
        if keep is not None and other.id == keep.id:
            continue
        before = _snapshot(other)
        _close_out(session, other, other.quantity_completed, "moved", identity)
        other.employee_id = None
        other.quantity_completed = 0
        other.assigned_at = None
        await session.flush()
        await log_audit(
            session,
            table_name=ProcessAssignment.__tablename__,
            record_id=other.id,
            action=AuditAction.UNASSIGN,
            old_values=before,
            new_values=_snapshot(other),
            identity=identity,
            context=context,
            reason="Employee moved to another process",
        )
        released += 1
    return released


async def mark_present(session: AsyncSession, employee_id: uuid.UUID, work_date: date) -> None:
    """
    Upsert today's attendance as present, keeping an earlier ``in_time``.

    The insert runs under a savepoint: when a concurrent first scan of
    the same employee wins the unique key, the row is re-read instead.
    """
    clock_in = datetime.now().time().replace(second=0, microsecond=0)
    stmt = select(EmployeeAttendance).where(
        EmployeeAttendance.employee_id == employee_id,
        EmployeeAttendance.attendance_date == work_date,
    )
    attendance = (await session.execute(stmt)).scalars().first()

    if attendance is None:
        try:
            async with savepoint(session, "attendance_upsert"):
                await session.execute(
                    insert(EmployeeAttendance).values(
                        id=uuid.uuid4(),
                        employee_id=employee_id,
                        attendance_date=work_date,
                        in_time=clock_in,
                        status="present",
                        notes=SCAN_ATTENDANCE_NOTE,
                    )
                )
            return
        except IntegrityError:
            logger.info("Attendance for %s on %s created concurrently, updating", employee_id, work_date)
            attendance = (await session.execute(stmt)).scalars().one()

    if attendance.in_time is None:
        attendance.in_time = clock_in
    attendance.status = "present"
    await session.flush()


# ── Scan resolution ──────────────────────────────────────────────────


async def _resolve_process(
    session: AsyncSession,
    line: ProductionLine,
    ref: QrPayload,
) -> ProductProcess:
    if ref.type == "operation":
        if line.current_product_id is None:
            raise _fail(ScanFailureReason.NO_CURRENT_PRODUCT, "Line has no current product")
        stmt = (
            select(ProductProcess)
            .where(
                ProductProcess.product_id == line.current_product_id,
                ProductProcess.operation_id == ref.id,
            )
            .order_by(ProductProcess.sequence_number)
            .limit(1)
            .with_for_update()
        )
        process = (await session.execute(stmt)).scalars().first()
        if process is None:
            raise _fail(
                ScanFailureReason.OPERATION_NOT_IN_PRODUCT,
                "Operation is not part of the line's current product",
            )
        return process

    process = await lock_for_update(session, ProductProcess, ProductProcess.id, ref.id)
    if process is None:
        raise _fail(ScanFailureReason.PROCESS_NOT_FOUND, "Process not found")
    if line.current_product_id is not None and process.product_id != line.current_product_id:
        raise _fail(
            ScanFailureReason.PROCESS_NOT_FOUND,
            "Process does not belong to the line's current product",
        )
    return process


async def resolve_scan(
    *,
    line_id: uuid.UUID,
    employee_qr: Any,
    process_id: uuid.UUID | None = None,
    process_qr: Any = None,
    materials_at_link: int | None = None,
    quantity_completed: int | None = None,
    confirm_change: bool = False,
    identity: Identity | None = None,
    context: RequestContext | None = None,
    work_date: date | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> ScanResult:
    """
    Decide a supervisor scan of (line, process) followed by an employee.

    Database errors (after retries) propagate; every other outcome is
    returned as one of the ``ScanResult`` variants.
    """
    if process_id is not None:
        process_ref = QrPayload(type="process", id=process_id)
    else:
        process_ref = parse_qr_payload(process_qr) if process_qr is not None else None
    if process_ref is None or process_ref.type not in (None, "process", "operation"):
        return ScanFailure(ScanFailureReason.INVALID_QR, "Invalid process QR code")

    employee_ref = parse_qr_payload(employee_qr)
    if employee_ref is None or employee_ref.type not in (None, "employee"):
        return ScanFailure(ScanFailureReason.INVALID_QR, "Invalid employee QR code")

    day = work_date or date.today()

    async def work(session: AsyncSession) -> ScanSuccess:
        line = await session.get(ProductionLine, line_id)
        if line is None or not line.is_active:
            raise _fail(ScanFailureReason.LINE_NOT_FOUND, "Line not found")

        process = await _resolve_process(session, line, process_ref)

        employee = await session.get(Employee, employee_ref.id)
        if employee is None or not employee.is_active:
            raise _fail(ScanFailureReason.EMPLOYEE_NOT_FOUND, "Employee not found")

        assignment = await _lock_assignment(session, line.id, process.id, day)
        previous: Employee | None = None

        if (
            assignment is not None
            and assignment.employee_id is not None
            and assignment.employee_id != employee.id
        ):
            current = await session.get(Employee, assignment.employee_id)
            if not (confirm_change and quantity_completed is not None):
                # Detach so the rollback below does not expire it
                session.expunge(current)
            if not confirm_change:
                raise _ScanAborted(ConfirmRequired(current_employee=current))
            if quantity_completed is None:
                raise _ScanAborted(QuantityRequired(current_employee=current))
            _close_out(session, assignment, quantity_completed, "reassigned", identity)
            previous = current

        await _release_other_assignments(session, employee.id, day, assignment, identity, context)

        now = datetime.now(timezone.utc)
        before = _snapshot(assignment) if assignment is not None else None
        if assignment is None:
            assignment = ProcessAssignment(
                line_id=line.id,
                process_id=process.id,
                work_date=day,
                employee_id=employee.id,
                quantity_completed=0,
                assigned_at=now,
                assigned_by=identity.user_id if identity else None,
            )
            session.add(assignment)
        elif assignment.employee_id != employee.id:
            assignment.employee_id = employee.id
            assignment.quantity_completed = 0
            assignment.assigned_at = now
            assignment.assigned_by = identity.user_id if identity else None

        if materials_at_link is not None:
            assignment.materials_at_link = materials_at_link
        await session.flush()

        await mark_present(session, employee.id, day)
        await log_audit(
            session,
            table_name=ProcessAssignment.__tablename__,
            record_id=assignment.id,
            action=AuditAction.ASSIGN,
            old_values=before,
            new_values=_snapshot(assignment),
            identity=identity,
            context=context,
            reason="Supervisor scan",
        )
        return ScanSuccess(assignment=assignment, employee=employee, previous_employee=previous)

    try:
        result = await with_retry(work, session_factory=session_factory)
    except _ScanAborted as aborted:
        return aborted.result

    if result.previous_employee is not None:
        logger.info(
            "Process %s on line %s handed from %s to %s",
            result.assignment.process_id,
            line_id,
            result.previous_employee.emp_code,
            result.employee.emp_code,
        )
    return result


# ── Manual assignment & progress ─────────────────────────────────────


async def assign_process(
    *,
    line_id: uuid.UUID,
    process_id: uuid.UUID,
    employee_id: uuid.UUID | None,
    identity: Identity | None = None,
    context: RequestContext | None = None,
    work_date: date | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> ProcessAssignment:
    """Set (or clear, with ``employee_id=None``) the assignee directly."""
    day = work_date or date.today()

    async def work(session: AsyncSession) -> ProcessAssignment:
        line = await session.get(ProductionLine, line_id)
        if line is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Line not found")
        process = await lock_for_update(session, ProductProcess, ProductProcess.id, process_id)
        if process is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Process not found")
        if employee_id is not None:
            employee = await session.get(Employee, employee_id)
            if employee is None or not employee.is_active:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")

        assignment = await _lock_assignment(session, line_id, process_id, day)
        before = _snapshot(assignment) if assignment is not None else None

        if assignment is not None and assignment.employee_id == employee_id:
            return assignment

        if assignment is not None and assignment.employee_id is not None:
            _close_out(session, assignment, assignment.quantity_completed, "manual", identity)

        if employee_id is not None:
            await _release_other_assignments(session, employee_id, day, assignment, identity, context)

        assigned_at = datetime.now(timezone.utc) if employee_id is not None else None
        if assignment is None:
            assignment = ProcessAssignment(
                line_id=line_id,
                process_id=process_id,
                work_date=day,
                quantity_completed=0,
            )
            session.add(assignment)
        assignment.employee_id = employee_id
        assignment.quantity_completed = 0
        assignment.assigned_at = assigned_at
        assignment.assigned_by = identity.user_id if identity else None
        await session.flush()

        await log_audit(
            session,
            table_name=ProcessAssignment.__tablename__,
            record_id=assignment.id,
            action=AuditAction.ASSIGN if employee_id is not None else AuditAction.UNASSIGN,
            old_values=before,
            new_values=_snapshot(assignment),
            identity=identity,
            context=context,
            reason="Manual assignment",
        )
        return assignment

    return await with_retry(work, session_factory=session_factory)


async def record_progress(
    *,
    line_id: uuid.UUID,
    process_id: uuid.UUID,
    hour_slot: int,
    quantity: int,
    identity: Identity | None = None,
    context: RequestContext | None = None,
    work_date: date | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> HourlyProgress:
    """
    Upsert the output of one hour slot.

    The current assignee's running counter moves by the difference
    between the new and the previously recorded quantity of the slot.
    """
    day = work_date or date.today()

    async def work(session: AsyncSession) -> HourlyProgress:
        process = await lock_for_update(session, ProductProcess, ProductProcess.id, process_id)
        if process is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Process not found")
        assignment = await _lock_assignment(session, line_id, process_id, day)

        stmt = select(HourlyProgress).where(
            HourlyProgress.line_id == line_id,
            HourlyProgress.process_id == process_id,
            HourlyProgress.work_date == day,
            HourlyProgress.hour_slot == hour_slot,
        )
        progress = (await session.execute(stmt)).scalars().first()
        previous_quantity = progress.quantity if progress is not None else 0
        recorded_for = progress.employee_id if progress is not None else None

        if progress is None:
            progress = HourlyProgress(
                line_id=line_id,
                process_id=process_id,
                work_date=day,
                hour_slot=hour_slot,
            )
            session.add(progress)
        progress.quantity = quantity

        if assignment is not None and assignment.employee_id is not None:
            progress.employee_id = assignment.employee_id
            if recorded_for in (None, assignment.employee_id):
                delta = quantity - previous_quantity
            else:
                # Slot was first recorded for the previous assignee
                delta = quantity
            assignment.quantity_completed = max(0, assignment.quantity_completed + delta)

        await session.flush()
        await log_audit(
            session,
            table_name=HourlyProgress.__tablename__,
            record_id=progress.id,
            action=AuditAction.UPDATE,
            old_values={"quantity": previous_quantity},
            new_values={"quantity": quantity, "hour_slot": hour_slot, "employee_id": progress.employee_id},
            identity=identity,
            context=context,
        )
        return progress

    return await with_retry(work, session_factory=session_factory)


# ── Queries ──────────────────────────────────────────────────────────


async def list_line_assignments(
    db: AsyncSession,
    line_id: uuid.UUID,
    work_date: date | None = None,
) -> list[ProcessAssignment]:
    stmt = (
        select(ProcessAssignment)
        .join(ProductProcess, ProductProcess.id == ProcessAssignment.process_id)
        .where(
            ProcessAssignment.line_id == line_id,
            ProcessAssignment.work_date == (work_date or date.today()),
        )
        .order_by(ProductProcess.sequence_number)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_assignment_history(
    db: AsyncSession,
    line_id: uuid.UUID,
    work_date: date | None = None,
) -> list[AssignmentHistory]:
    stmt = (
        select(AssignmentHistory)
        .where(
            AssignmentHistory.line_id == line_id,
            AssignmentHistory.work_date == (work_date or date.today()),
        )
        .order_by(AssignmentHistory.ended_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
