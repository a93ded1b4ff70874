"""
API tests — login, sessions, permissions and throttling.
"""

import time

from sqlalchemy import select

from conftest import DEFAULT_PASSWORD, create_user, login
from worksync.models import AuditLog, UserRole
from worksync.services.session_service import session_registry


class TestLogin:
    async def test_login_sets_cookie_and_returns_session(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        response = await client.post(
            "/api/auth/login", json={"username": "admin1", "password": DEFAULT_PASSWORD},
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["session_id"]) == 64
        assert body["user"]["role"] == "admin"
        assert "users:create" in body["user"]["permissions"]

        cookie = response.headers["set-cookie"]
        assert f"sessionId={body['session_id']}" in cookie
        assert "httponly" in cookie.lower()
        assert "X-RateLimit-Remaining" in response.headers

    async def test_login_is_audited(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        await login(client, "admin1")
        async with session_factory() as session:
            actions = (await session.execute(select(AuditLog.action))).scalars().all()
        assert actions == ["login"]

    async def test_wrong_password(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        response = await client.post("/api/auth/login", json={"username": "admin1", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "invalid_credentials"

    async def test_unknown_user(self, client):
        response = await client.post("/api/auth/login", json={"username": "ghost", "password": "x"})
        assert response.status_code == 401

    async def test_disabled_account(self, client, session_factory):
        await create_user(session_factory, "old", UserRole.SUPERVISOR, is_active=False)
        response = await client.post(
            "/api/auth/login", json={"username": "old", "password": DEFAULT_PASSWORD},
        )
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "account_disabled"

    async def test_sixth_login_attempt_is_throttled(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        for _ in range(5):
            response = await client.post("/api/auth/login", json={"username": "admin1", "password": "bad"})
            assert response.status_code == 401

        response = await client.post(
            "/api/auth/login", json={"username": "admin1", "password": DEFAULT_PASSWORD},
        )
        assert response.status_code == 429
        assert response.json()["detail"]["code"] == "rate_limited"
        assert int(response.headers["Retry-After"]) > 0


class TestSessions:
    async def test_me_requires_session(self, client):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "authentication_required"

    async def test_me_with_header_token(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        headers = await login(client, "sup1")
        response = await client.get("/api/auth/me", headers=headers)
        assert response.status_code == 200
        assert response.json()["username"] == "sup1"
        assert "users:create" not in response.json()["permissions"]

    async def test_unknown_token_is_anonymous(self, client):
        response = await client.get("/api/auth/me", headers={"X-Session-Id": "f" * 64})
        assert response.status_code == 401

    async def test_logout_ends_session(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        headers = await login(client, "sup1")

        response = await client.delete("/api/auth/logout", headers=headers)
        assert response.status_code == 200
        assert (await client.get("/api/auth/me", headers=headers)).status_code == 401

    async def test_list_own_sessions(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        first = await login(client, "sup1")
        await login(client, "sup1")

        response = await client.get("/api/auth/sessions", headers=first)
        sessions = response.json()
        assert len(sessions) == 2
        assert [s["current"] for s in sessions] == [True, False]


class TestPermissions:
    async def test_supervisor_cannot_manage_users(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        headers = await login(client, "sup1")
        response = await client.get("/api/admin/users", headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"] == {"code": "forbidden", "message": "Insufficient permissions"}

    async def test_admin_creates_user_and_duplicate_conflicts(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        headers = await login(client, "admin1")
        payload = {"username": "ie1", "password": "long-enough-pw", "full_name": "IE One", "role": "ie"}

        created = await client.post("/api/admin/users", json=payload, headers=headers)
        assert created.status_code == 201
        assert created.json()["role"] == "ie"

        duplicate = await client.post("/api/admin/users", json=payload, headers=headers)
        assert duplicate.status_code == 409

    async def test_disabling_user_ends_their_sessions(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        sup = await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        admin_headers = await login(client, "admin1")
        sup_headers = await login(client, "sup1")

        response = await client.post(f"/api/admin/users/{sup.id}/disable", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False
        assert (await client.get("/api/auth/me", headers=sup_headers)).status_code == 401

    async def test_force_logout(self, client, session_factory):
        await create_user(session_factory, "admin1", UserRole.ADMIN)
        sup = await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        admin_headers = await login(client, "admin1")
        sup_headers = await login(client, "sup1")

        response = await client.post(f"/api/admin/users/{sup.id}/force-logout", headers=admin_headers)
        assert response.json()["detail"] == "1 session(s) terminated"
        assert (await client.get("/api/auth/me", headers=sup_headers)).status_code == 401

    async def test_events_require_session(self, client):
        response = await client.get("/api/events")
        assert response.status_code == 401


def cookie_for(token: str) -> dict[str, str]:
    return {"Cookie": f"sessionId={token}"}


class TestSessionResolution:
    async def test_idle_session_is_destroyed_and_cookie_cleared(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        token = (await login(client, "sup1"))["X-Session-Id"]
        session_registry.get(token).last_activity -= 31 * 60

        response = await client.get("/api/auth/me", headers=cookie_for(token))

        assert response.status_code == 401
        cleared = response.headers["set-cookie"]
        assert cleared.startswith("sessionId=")
        assert token not in cleared
        assert "max-age=0" in cleared.lower()
        assert session_registry.get(token) is None

    async def test_expired_session_cleared_on_permission_guarded_route(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        token = (await login(client, "sup1"))["X-Session-Id"]
        session_registry.get(token).expires_at = time.time() - 1

        response = await client.get("/api/events", headers=cookie_for(token))

        assert response.status_code == 401
        assert "max-age=0" in response.headers["set-cookie"].lower()
        assert session_registry.get(token) is None

    async def test_session_near_expiry_is_renewed_and_cookie_reissued(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        token = (await login(client, "sup1"))["X-Session-Id"]
        session_registry.get(token).expires_at = time.time() + 10 * 60

        response = await client.get("/api/auth/me", headers=cookie_for(token))

        assert response.status_code == 200
        assert response.headers["set-cookie"].startswith(f"sessionId={token}")
        assert session_registry.get(token).expires_at > time.time() + 7 * 3600

    async def test_renewed_cookie_survives_forbidden_response(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        token = (await login(client, "sup1"))["X-Session-Id"]
        session_registry.get(token).expires_at = time.time() + 10 * 60

        response = await client.get("/api/admin/users", headers=cookie_for(token))

        assert response.status_code == 403
        assert response.headers["set-cookie"].startswith(f"sessionId={token}")

    async def test_header_token_is_renewed_without_cookie(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        headers = await login(client, "sup1")
        token = headers["X-Session-Id"]
        session_registry.get(token).expires_at = time.time() + 10 * 60

        response = await client.get("/api/auth/me", headers=headers)

        assert response.status_code == 200
        assert "set-cookie" not in response.headers
        assert session_registry.get(token).expires_at > time.time() + 7 * 3600

    async def test_live_session_is_touched(self, client, session_factory):
        await create_user(session_factory, "sup1", UserRole.SUPERVISOR)
        headers = await login(client, "sup1")
        session = session_registry.get(headers["X-Session-Id"])
        session.last_activity -= 20 * 60

        assert (await client.get("/api/auth/me", headers=headers)).status_code == 200
        assert time.time() - session.last_activity < 60
