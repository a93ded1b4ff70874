"""
Tests for the transaction coordinator: scopes, retries, locks, savepoints.
"""

import pytest
from sqlalchemy import func, insert, select
from sqlalchemy.exc import IntegrityError, OperationalError

from worksync.core.transaction import (
    backoff_delay,
    create_savepoint,
    is_retryable_error,
    lock_for_update,
    lock_rows_for_update,
    release_savepoint,
    rollback_to_savepoint,
    run_in_transaction,
    savepoint,
    with_retry,
)
from worksync.models import Employee


class FakePgError(Exception):
    """Stands in for an asyncpg error carrying a SQLSTATE."""

    def __init__(self, sqlstate: str):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def db_error(sqlstate: str) -> OperationalError:
    return OperationalError("UPDATE process_assignments ...", {}, FakePgError(sqlstate))


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def count_employees(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(Employee))).scalar_one()


class TestBackoff:
    def test_minimum_jitter(self):
        assert backoff_delay(0, 100, rng=lambda: 0.0) == pytest.approx(0.05)
        assert backoff_delay(3, 100, rng=lambda: 0.0) == pytest.approx(0.4)

    def test_maximum_jitter(self):
        assert backoff_delay(2, 100, rng=lambda: 1.0) == pytest.approx(0.4)

    def test_grows_exponentially(self):
        delays = [backoff_delay(a, 100, rng=lambda: 0.5) for a in range(4)]
        assert delays == pytest.approx([0.075, 0.15, 0.3, 0.6])


class TestRetryableErrors:
    @pytest.mark.parametrize("code", ["40001", "40P01"])
    def test_serialization_and_deadlock_are_retryable(self, code):
        assert is_retryable_error(db_error(code))

    def test_unique_violation_is_not_retryable(self):
        assert not is_retryable_error(db_error("23505"))

    def test_plain_exception_is_not_retryable(self):
        assert not is_retryable_error(ValueError("boom"))

    def test_error_found_through_cause_chain(self):
        try:
            try:
                raise db_error("40001")
            except OperationalError as exc:
                raise RuntimeError("wrapped") from exc
        except RuntimeError as outer:
            assert is_retryable_error(outer)


class TestWithRetry:
    async def test_succeeds_after_two_serialization_failures(self, session_factory):
        attempts = 0
        sleep = RecordingSleep()

        async def work(session):
            nonlocal attempts
            attempts += 1
            if attempts <= 2:
                raise db_error("40001")
            return "ok"

        result = await with_retry(
            work, max_retries=3, session_factory=session_factory, rng=lambda: 0.0, sleep=sleep,
        )
        assert result == "ok"
        assert attempts == 3
        assert sleep.delays == pytest.approx([0.05, 0.1])

    async def test_non_retryable_error_raises_immediately(self, session_factory):
        attempts = 0

        async def work(session):
            nonlocal attempts
            attempts += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await with_retry(work, max_retries=3, session_factory=session_factory, sleep=RecordingSleep())
        assert attempts == 1

    async def test_gives_up_after_max_retries(self, session_factory):
        attempts = 0

        async def work(session):
            nonlocal attempts
            attempts += 1
            raise db_error("40P01")

        with pytest.raises(OperationalError):
            await with_retry(work, max_retries=2, session_factory=session_factory, sleep=RecordingSleep())
        assert attempts == 3

    async def test_failed_attempt_is_rolled_back(self, session_factory):
        attempts = 0

        async def work(session):
            nonlocal attempts
            attempts += 1
            session.add(Employee(emp_code=f"R{attempts}", emp_name="Retry"))
            await session.flush()
            if attempts == 1:
                raise db_error("40001")

        await with_retry(work, session_factory=session_factory, sleep=RecordingSleep())
        async with session_factory() as session:
            codes = (await session.execute(select(Employee.emp_code))).scalars().all()
        assert codes == ["R2"]


class TestScope:
    async def test_commit_on_success(self, session_factory):
        async def work(session):
            session.add(Employee(emp_code="C1", emp_name="Committed"))

        await run_in_transaction(work, session_factory=session_factory)
        assert await count_employees(session_factory) == 1

    async def test_rollback_on_error(self, session_factory):
        async def work(session):
            session.add(Employee(emp_code="X1", emp_name="Rolled back"))
            await session.flush()
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            await run_in_transaction(work, session_factory=session_factory)
        assert await count_employees(session_factory) == 0


class TestLocksAndSavepoints:
    async def test_lock_helpers_return_rows(self, session_factory, floor):
        async def work(session):
            one = await lock_for_update(session, Employee, Employee.id, floor.employees[0].id)
            many = await lock_rows_for_update(
                session, Employee, Employee.id, [e.id for e in floor.employees[:2]],
            )
            none = await lock_rows_for_update(session, Employee, Employee.id, [])
            return one, many, none

        one, many, none = await run_in_transaction(work, session_factory=session_factory)
        assert one.emp_code == "E001"
        assert {e.emp_code for e in many} == {"E001", "E002"}
        assert none == []

    async def test_savepoint_rolls_back_only_inner_work(self, session_factory):
        async def work(session):
            session.add(Employee(emp_code="S1", emp_name="Outer"))
            await session.flush()
            with pytest.raises(IntegrityError):
                async with savepoint(session, "dup_insert"):
                    await session.execute(
                        insert(Employee).values(emp_code="S1", emp_name="Duplicate", is_active=True)
                    )
            session.add(Employee(emp_code="S2", emp_name="After savepoint"))

        await run_in_transaction(work, session_factory=session_factory)
        assert await count_employees(session_factory) == 2

    async def test_savepoint_name_is_validated(self, session_factory):
        async def work(session):
            async with savepoint(session, "bad name; DROP TABLE users"):
                pass

        with pytest.raises(ValueError):
            await run_in_transaction(work, session_factory=session_factory)

    async def test_failed_orm_flush_inside_savepoint_keeps_session_usable(self, session_factory):
        async def work(session):
            session.add(Employee(emp_code="S1", emp_name="Outer"))
            await session.flush()
            with pytest.raises(IntegrityError):
                async with savepoint(session, "orm_dup"):
                    session.add(Employee(emp_code="S1", emp_name="Duplicate"))
            session.add(Employee(emp_code="S2", emp_name="After savepoint"))

        await run_in_transaction(work, session_factory=session_factory)
        async with session_factory() as session:
            codes = (await session.execute(select(Employee.emp_code).order_by(Employee.emp_code))).scalars().all()
        assert codes == ["S1", "S2"]

    async def test_named_savepoint_helpers(self, session_factory):
        async def work(session):
            session.add(Employee(emp_code="N1", emp_name="Kept"))
            await session.flush()
            await create_savepoint(session, "step_two")
            await session.execute(insert(Employee).values(emp_code="N2", emp_name="Undone", is_active=True))
            await rollback_to_savepoint(session, "step_two")
            await release_savepoint(session, "step_two")

        await run_in_transaction(work, session_factory=session_factory)
        assert await count_employees(session_factory) == 1
