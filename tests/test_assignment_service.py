"""
Tests for the scan resolver, manual assignment and hourly progress.
"""

import json
from datetime import date

from sqlalchemy import select

from worksync.models import AssignmentHistory, AuditLog, EmployeeAttendance, ProcessAssignment
from worksync.services import assignment_service
from worksync.services.assignment_service import (
    ConfirmRequired,
    QuantityRequired,
    ScanFailure,
    ScanFailureReason,
    ScanSuccess,
    parse_qr_payload,
)

WORK_DATE = date(2026, 3, 2)


def employee_qr(employee) -> str:
    return json.dumps({"type": "employee", "id": str(employee.id), "code": employee.emp_code})


async def scan(session_factory, floor, employee, *, process=None, **kwargs):
    process = process or floor.processes[0]
    return await assignment_service.resolve_scan(
        line_id=floor.line.id,
        process_id=process.id,
        employee_qr=employee_qr(employee),
        work_date=WORK_DATE,
        session_factory=session_factory,
        **kwargs,
    )


async def assignments(session_factory) -> list[ProcessAssignment]:
    async with session_factory() as session:
        result = await session.execute(select(ProcessAssignment))
        return list(result.scalars().all())


async def load(session_factory, model) -> list:
    async with session_factory() as session:
        return list((await session.execute(select(model))).scalars().all())


class TestParseQr:
    def test_json_payload(self):
        payload = parse_qr_payload('{"type": "employee", "id": "6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11"}')
        assert payload.type == "employee"
        assert str(payload.id) == "6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11"

    def test_bare_id(self):
        payload = parse_qr_payload("6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11")
        assert payload.type is None

    def test_dict_payload(self):
        payload = parse_qr_payload({"type": "process", "id": "6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11"})
        assert payload.type == "process"

    def test_garbage_is_rejected(self):
        assert parse_qr_payload("not a qr") is None
        assert parse_qr_payload('{"type": "employee"}') is None
        assert parse_qr_payload("12345") is None


class TestConfirmationProtocol:
    async def test_full_two_phase_switch(self, session_factory, floor):
        e1, e2 = floor.employees[0], floor.employees[1]

        # unassigned -> assigned(e1)
        first = await scan(session_factory, floor, e1, materials_at_link=40)
        assert isinstance(first, ScanSuccess)
        assert first.employee.id == e1.id
        assert first.assignment.employee_id == e1.id
        assert first.assignment.materials_at_link == 40

        # same employee again: self-loop, no conflict
        again = await scan(session_factory, floor, e1)
        assert isinstance(again, ScanSuccess)
        assert again.previous_employee is None

        # different employee, no confirmation
        conflict = await scan(session_factory, floor, e2)
        assert isinstance(conflict, ConfirmRequired)
        assert conflict.current_employee.id == e1.id
        [row] = await assignments(session_factory)
        assert row.employee_id == e1.id

        # confirmed, but quantity missing
        missing = await scan(session_factory, floor, e2, confirm_change=True)
        assert isinstance(missing, QuantityRequired)
        assert missing.current_employee.id == e1.id
        [row] = await assignments(session_factory)
        assert row.employee_id == e1.id

        # confirmed with quantity: switch and reset
        switched = await scan(session_factory, floor, e2, confirm_change=True, quantity_completed=12)
        assert isinstance(switched, ScanSuccess)
        assert switched.previous_employee.id == e1.id
        [row] = await assignments(session_factory)
        assert row.employee_id == e2.id
        assert row.quantity_completed == 0

        [closed] = await load(session_factory, AssignmentHistory)
        assert closed.employee_id == e1.id
        assert closed.quantity_completed == 12
        assert closed.reason == "reassigned"

    async def test_running_counter_is_reset_on_switch(self, session_factory, floor):
        e1, e2 = floor.employees[0], floor.employees[1]
        process = floor.processes[0]
        await scan(session_factory, floor, e1)
        await assignment_service.record_progress(
            line_id=floor.line.id, process_id=process.id, hour_slot=9, quantity=30,
            work_date=WORK_DATE, session_factory=session_factory,
        )
        [row] = await assignments(session_factory)
        assert row.quantity_completed == 30

        await scan(session_factory, floor, e2, confirm_change=True, quantity_completed=30)
        [row] = await assignments(session_factory)
        assert row.employee_id == e2.id
        assert row.quantity_completed == 0

    async def test_quantity_without_confirmation_still_asks_for_confirmation(self, session_factory, floor):
        await scan(session_factory, floor, floor.employees[0])
        result = await scan(session_factory, floor, floor.employees[1], quantity_completed=5)
        assert isinstance(result, ConfirmRequired)


class TestSideEffects:
    async def test_attendance_marked_present_once(self, session_factory, floor):
        e1 = floor.employees[0]
        await scan(session_factory, floor, e1)
        await scan(session_factory, floor, e1)

        [attendance] = await load(session_factory, EmployeeAttendance)
        assert attendance.employee_id == e1.id
        assert attendance.attendance_date == WORK_DATE
        assert attendance.status == "present"
        assert attendance.in_time is not None
        assert attendance.notes == "Supervisor scan"

    async def test_existing_in_time_is_kept(self, session_factory, floor):
        from datetime import time

        e1 = floor.employees[0]
        async with session_factory() as session:
            session.add(EmployeeAttendance(
                employee_id=e1.id, attendance_date=WORK_DATE, in_time=time(7, 45), status="absent",
            ))
            await session.commit()

        await scan(session_factory, floor, e1)
        [attendance] = await load(session_factory, EmployeeAttendance)
        assert attendance.in_time == time(7, 45)
        assert attendance.status == "present"

    async def test_employee_holds_one_process_per_day(self, session_factory, floor):
        e1 = floor.employees[0]
        first, second = floor.processes
        await scan(session_factory, floor, e1, process=first)
        await scan(session_factory, floor, e1, process=second)

        rows = {row.process_id: row for row in await assignments(session_factory)}
        assert rows[first.id].employee_id is None
        assert rows[second.id].employee_id == e1.id

        [closed] = await load(session_factory, AssignmentHistory)
        assert closed.process_id == first.id
        assert closed.reason == "moved"

    async def test_assign_is_audited(self, session_factory, floor):
        await scan(session_factory, floor, floor.employees[0])
        entries = await load(session_factory, AuditLog)
        assigned = [e for e in entries if e.action == "assign"]
        assert len(assigned) == 1
        assert assigned[0].table_name == "process_assignments"
        assert assigned[0].new_values["employee_id"] == str(floor.employees[0].id)


class TestResolution:
    async def test_operation_qr_resolves_to_process_of_current_product(self, session_factory, floor):
        operation = floor.operations[1]
        result = await assignment_service.resolve_scan(
            line_id=floor.line.id,
            process_qr=json.dumps({"type": "operation", "id": str(operation.id)}),
            employee_qr=employee_qr(floor.employees[0]),
            work_date=WORK_DATE,
            session_factory=session_factory,
        )
        assert isinstance(result, ScanSuccess)
        assert result.assignment.process_id == floor.processes[1].id

    async def test_invalid_employee_qr(self, session_factory, floor):
        result = await assignment_service.resolve_scan(
            line_id=floor.line.id,
            process_id=floor.processes[0].id,
            employee_qr='{"type": "line", "id": "6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11"}',
            session_factory=session_factory,
        )
        assert result == ScanFailure(ScanFailureReason.INVALID_QR, "Invalid employee QR code")

    async def test_unknown_employee(self, session_factory, floor):
        result = await assignment_service.resolve_scan(
            line_id=floor.line.id,
            process_id=floor.processes[0].id,
            employee_qr="6f1c2a9e-3b1d-4c56-9a0e-2f4f4b7d8e11",
            session_factory=session_factory,
        )
        assert isinstance(result, ScanFailure)
        assert result.reason == ScanFailureReason.EMPLOYEE_NOT_FOUND
        assert await assignments(session_factory) == []

    async def test_unknown_line(self, session_factory, floor):
        result = await assignment_service.resolve_scan(
            line_id=floor.employees[0].id,
            process_id=floor.processes[0].id,
            employee_qr=employee_qr(floor.employees[0]),
            session_factory=session_factory,
        )
        assert isinstance(result, ScanFailure)
        assert result.reason == ScanFailureReason.LINE_NOT_FOUND


class TestManualAssignmentAndProgress:
    async def test_assign_and_clear(self, session_factory, floor):
        e1 = floor.employees[0]
        process = floor.processes[0]
        assigned = await assignment_service.assign_process(
            line_id=floor.line.id, process_id=process.id, employee_id=e1.id,
            work_date=WORK_DATE, session_factory=session_factory,
        )
        assert assigned.employee_id == e1.id

        cleared = await assignment_service.assign_process(
            line_id=floor.line.id, process_id=process.id, employee_id=None,
            work_date=WORK_DATE, session_factory=session_factory,
        )
        assert cleared.employee_id is None
        [closed] = await load(session_factory, AssignmentHistory)
        assert closed.employee_id == e1.id
        assert closed.reason == "manual"

    async def test_progress_moves_counter_by_delta(self, session_factory, floor):
        process = floor.processes[0]
        await scan(session_factory, floor, floor.employees[0])

        async def record(hour, qty):
            return await assignment_service.record_progress(
                line_id=floor.line.id, process_id=process.id, hour_slot=hour, quantity=qty,
                work_date=WORK_DATE, session_factory=session_factory,
            )

        await record(9, 20)
        await record(10, 15)
        corrected = await record(9, 25)
        assert corrected.quantity == 25
        assert corrected.employee_id == floor.employees[0].id

        [row] = await assignments(session_factory)
        assert row.quantity_completed == 40
