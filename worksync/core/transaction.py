"""
Transaction helpers — atomic scopes, retries, row locks & savepoints.

- ``run_in_transaction`` wraps a unit of work in BEGIN / COMMIT with
  ROLLBACK on any error; the session (and its pooled connection) is
  always released.
- ``with_retry`` re-runs the whole scope on PostgreSQL serialization
  failures (40001) and deadlocks (40P01) with exponential backoff and
  jitter.  Every other error propagates on the first attempt.
- ``lock_for_update`` / ``lock_rows_for_update`` serialize concurrent
  writers on the same rows (``SELECT … FOR UPDATE``).
- Savepoints give partial rollback inside a larger scope: the
  ``savepoint`` block for ORM work, plus named SQL-level helpers.

Usage:
    async def work(session: AsyncSession) -> Assignment:
        row = await lock_for_update(session, ProcessAssignment, ProcessAssignment.id, pk)
        ...
        return row

    result = await with_retry(work)
"""

import asyncio
import enum
import logging
import random
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, TypeVar

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksync.core.config import settings
from worksync.core.database import get_session_factory

logger = logging.getLogger(__name__)

T = TypeVar("T")

Work = Callable[[AsyncSession], Awaitable[T]]

SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
RETRYABLE_SQLSTATES = frozenset({SERIALIZATION_FAILURE, DEADLOCK_DETECTED})

_SAVEPOINT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class IsolationLevel(str, enum.Enum):
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"  # PostgreSQL default
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


# ── Atomic scope ─────────────────────────────────────────────────────


async def run_in_transaction(
    work: Work[T],
    isolation_level: IsolationLevel | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> T:
    """
    Execute ``work(session)`` inside a single transaction.

    ``isolation_level=None`` keeps the driver default (READ COMMITTED on
    PostgreSQL) and saves a round trip.
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        async with session.begin():
            if isolation_level is not None:
                # Must happen before the first statement of the transaction.
                await session.connection(
                    execution_options={"isolation_level": IsolationLevel(isolation_level).value},
                )
            return await work(session)


# ── Retry ────────────────────────────────────────────────────────────


def backoff_delay(
    attempt: int,
    base_delay_ms: float = 100,
    rng: Callable[[], float] = random.random,
) -> float:
    """Delay in seconds before retry ``attempt`` (0-based)."""
    jitter = 0.5 + rng() * 0.5
    return base_delay_ms * (2 ** attempt) * jitter / 1000.0


def _sqlstate(error: BaseException) -> str | None:
    for attr in ("sqlstate", "pgcode"):
        code = getattr(error, attr, None)
        if isinstance(code, str):
            return code
    return None


def is_retryable_error(exc: BaseException) -> bool:
    """True for serialization failures and deadlocks anywhere in the chain."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if _sqlstate(current) in RETRYABLE_SQLSTATES:
            return True
        # SQLAlchemy wraps the DBAPI error in ``.orig``
        orig = getattr(current, "orig", None)
        if isinstance(orig, BaseException) and _sqlstate(orig) in RETRYABLE_SQLSTATES:
            return True
        current = current.__cause__ or current.__context__
    return False


async def with_retry(
    work: Work[T],
    max_retries: int = settings.TRANSACTION_MAX_RETRIES,
    base_delay_ms: float = settings.TRANSACTION_RETRY_BASE_DELAY_MS,
    *,
    isolation_level: IsolationLevel | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    rng: Callable[[], float] = random.random,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``work`` in a transaction, retrying serialization conflicts.

    At most ``max_retries + 1`` attempts are made.  The last error is
    re-raised once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await run_in_transaction(
                work, isolation_level, session_factory=session_factory,
            )
        except Exception as exc:
            if not is_retryable_error(exc) or attempt >= max_retries:
                raise
            delay = backoff_delay(attempt, base_delay_ms, rng)
            logger.warning(
                "Transaction conflict (attempt %d/%d), retrying in %.0f ms: %s",
                attempt + 1,
                max_retries + 1,
                delay * 1000,
                exc.__class__.__name__,
            )
            await sleep(delay)
            attempt += 1


# ── Row locks ────────────────────────────────────────────────────────


async def lock_for_update(session: AsyncSession, model: Any, column: Any, value: Any) -> Any | None:
    """Lock and return the single row where ``column == value`` (or None)."""
    stmt = select(model).where(column == value).with_for_update()
    result = await session.execute(stmt)
    return result.scalars().first()


async def lock_rows_for_update(
    session: AsyncSession,
    model: Any,
    column: Any,
    values: Sequence[Any],
    *criteria: Any,
) -> list[Any]:
    """Lock every row where ``column`` is in ``values`` (and ``criteria`` hold)."""
    if not values:
        return []
    stmt = select(model).where(column.in_(list(values)), *criteria).with_for_update()
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ── Savepoints ───────────────────────────────────────────────────────


def _checked_name(name: str) -> str:
    if not _SAVEPOINT_NAME.match(name):
        raise ValueError(f"Invalid savepoint name: {name!r}")
    return name


async def create_savepoint(session: AsyncSession, name: str) -> None:
    await session.execute(text(f"SAVEPOINT {_checked_name(name)}"))


async def rollback_to_savepoint(session: AsyncSession, name: str) -> None:
    await session.execute(text(f"ROLLBACK TO SAVEPOINT {_checked_name(name)}"))


async def release_savepoint(session: AsyncSession, name: str) -> None:
    await session.execute(text(f"RELEASE SAVEPOINT {_checked_name(name)}"))


@asynccontextmanager
async def savepoint(session: AsyncSession, name: str) -> AsyncIterator[AsyncSession]:
    """
    Partial-rollback block built on ``session.begin_nested()``.

    Pending ORM changes are flushed before the SAVEPOINT.  On error the
    block is rolled back to the savepoint (objects added inside it are
    expunged, the rest of the session stays usable) and the error is
    re-raised; on success the savepoint is released.  ``name`` labels the
    block in logs.
    """
    _checked_name(name)
    try:
        async with session.begin_nested():
            yield session
    except Exception:
        logger.debug("Rolled back to savepoint %s", name)
        raise
