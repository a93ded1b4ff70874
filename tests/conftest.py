"""
WorkSync — test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection via StaticPool).  ``FOR UPDATE`` renders as nothing on
SQLite, so the row-lock paths run unchanged, just without blocking.
"""

from dataclasses import dataclass
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from worksync.core.database import get_db, get_session_factory
from worksync.core.security import hash_password
from worksync.main import app
from worksync.models import (
    Base,
    Employee,
    Operation,
    Product,
    ProductionLine,
    ProductProcess,
    User,
    UserRole,
)
from worksync.services.rate_limiter import rate_limiter
from worksync.services.session_service import session_registry

TEST_DATABASE_URL = "sqlite+aiosqlite://"
DEFAULT_PASSWORD = "correct-horse-battery"


class FakeClock:
    """Injectable ``time.time`` replacement."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_in_memory_state():
    session_registry.clear()
    rate_limiter.clear()
    yield
    session_registry.clear()
    rate_limiter.clear()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the per-test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Data helpers ─────────────────────────────────────────────────────


async def create_user(
    session_factory,
    username: str,
    role: UserRole,
    password: str = DEFAULT_PASSWORD,
    is_active: bool = True,
) -> User:
    async with session_factory() as session:
        user = User(
            username=username,
            password_hash=hash_password(password),
            full_name=username.title(),
            role=role,
            is_active=is_active,
        )
        session.add(user)
        await session.commit()
        return user


async def login(client: AsyncClient, username: str, password: str = DEFAULT_PASSWORD) -> dict[str, str]:
    """
    Log in and return headers carrying the session token.

    The cookie jar is cleared so that several users can act from one
    client: the ``sessionId`` cookie would otherwise win over the header.
    """
    response = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {"X-Session-Id": response.json()["session_id"]}


@dataclass
class Floor:
    line: ProductionLine
    product: Product
    operations: list[Operation]
    processes: list[ProductProcess]
    employees: list[Employee]


@pytest.fixture
async def floor(session_factory) -> Floor:
    """One line running one product with two processes, three employees."""
    async with session_factory() as session:
        product = Product(product_code="SHIRT-01", product_name="Formal shirt", processes=[])
        operations = [
            Operation(operation_code="OP-COLLAR", operation_name="Collar attach"),
            Operation(operation_code="OP-CUFF", operation_name="Cuff attach"),
        ]
        session.add_all([product, *operations])
        await session.flush()

        processes = [
            ProductProcess(product_id=product.id, operation_id=op.id, sequence_number=i)
            for i, op in enumerate(operations, start=1)
        ]
        line = ProductionLine(line_code="L1", line_name="Line 1", current_product_id=product.id)
        employees = [
            Employee(emp_code=f"E{i:03d}", emp_name=f"Worker {i}") for i in range(1, 4)
        ]
        session.add_all([*processes, line, *employees])
        await session.commit()

    return Floor(line=line, product=product, operations=operations, processes=processes, employees=employees)
