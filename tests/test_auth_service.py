"""
Tests for the login / logout service functions.
"""

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from conftest import DEFAULT_PASSWORD, create_user
from worksync.core.security import RequestContext
from worksync.models import AuditLog, UserRole
from worksync.services import auth_service
from worksync.services.session_service import session_registry


class TestLogin:
    async def test_login_registers_session_after_commit(self, db_session, session_factory):
        user = await create_user(session_factory, "sup1", UserRole.SUPERVISOR)

        logged_in, session = await auth_service.login(
            "sup1", DEFAULT_PASSWORD, db_session, RequestContext(ip_address="10.0.0.7"),
        )

        assert logged_in.id == user.id
        assert session_registry.validate(session.id) is session
        assert session.ip_address == "10.0.0.7"
        async with session_factory() as fresh:
            count = (await fresh.execute(select(func.count()).select_from(AuditLog))).scalar_one()
        assert count == 1

    async def test_failed_commit_leaves_sessions_untouched(self, db_session, session_factory, monkeypatch):
        user = await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        existing = [session_registry.create(user).id for _ in range(5)]

        async def broken_commit():
            raise RuntimeError("connection lost during commit")

        monkeypatch.setattr(db_session, "commit", broken_commit)

        with pytest.raises(RuntimeError):
            await auth_service.login("sup1", DEFAULT_PASSWORD, db_session, RequestContext())

        assert [s.id for s in session_registry.list_active_for_user(user.id)] == existing

    async def test_rejected_login_opens_no_session(self, db_session, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        with pytest.raises(HTTPException):
            await auth_service.login("sup1", "wrong", db_session, RequestContext())
        assert len(session_registry) == 0
