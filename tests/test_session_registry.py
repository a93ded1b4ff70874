"""
Tests for the in-memory session registry.
"""

import uuid
from dataclasses import dataclass

import pytest

from conftest import FakeClock
from worksync.services.session_service import SessionRegistry, generate_session_token


@dataclass
class FakeUser:
    id: uuid.UUID
    username: str = "sup1"
    role: str = "supervisor"


@pytest.fixture
def registry(clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(
        max_age=8 * 3600,
        idle_timeout=30 * 60,
        renewal_threshold=3600,
        max_sessions=5,
        clock=clock,
    )


@pytest.fixture
def user() -> FakeUser:
    return FakeUser(id=uuid.uuid4())


class TestTokens:
    def test_token_is_64_hex_chars(self):
        token = generate_session_token()
        assert len(token) == 64
        int(token, 16)

    def test_tokens_are_unique(self):
        assert len({generate_session_token() for _ in range(100)}) == 100


class TestValidation:
    def test_fresh_session_validates(self, registry, user):
        session = registry.create(user, "10.0.0.1", "pytest")
        assert registry.validate(session.id) is session
        assert session.role == "supervisor"

    def test_unknown_token_is_invalid(self, registry):
        assert registry.validate("nope") is None

    def test_expiry_wins_even_when_recently_active(self, registry, user, clock):
        """Touching right up to the deadline does not keep a session alive past max age."""
        session = registry.create(user)
        for _ in range(17):
            clock.advance(29 * 60)
            registry.touch(session.id)
        assert clock.now > session.expires_at
        assert registry.validate(session.id) is None
        assert registry.invalid_reason(session) == "expired"

    def test_idle_session_is_invalid_before_expiry(self, registry, user, clock):
        session = registry.create(user)
        clock.advance(31 * 60)
        assert clock.now <= session.expires_at
        assert registry.validate(session.id) is None
        assert registry.invalid_reason(session) == "idle"

    def test_touch_resets_idle_timer(self, registry, user, clock):
        session = registry.create(user)
        clock.advance(20 * 60)
        registry.touch(session.id)
        clock.advance(20 * 60)
        assert registry.validate(session.id) is session

    def test_validate_does_not_mutate(self, registry, user, clock):
        session = registry.create(user)
        clock.advance(60)
        registry.validate(session.id)
        assert session.last_activity == clock.now - 60

    def test_user_agent_is_truncated(self, registry, user):
        session = registry.create(user, user_agent="x" * 500)
        assert len(session.user_agent) == 200


class TestRenewal:
    def test_needs_renewal_only_near_expiry(self, registry, user, clock):
        session = registry.create(user)
        assert not registry.needs_renewal(session)
        for _ in range(15):
            clock.advance(29 * 60)
            registry.touch(session.id)
        assert registry.needs_renewal(session)

    def test_renew_extends_expiry(self, registry, user, clock):
        session = registry.create(user)
        clock.advance(60)
        registry.renew(session.id)
        assert session.expires_at == clock.now + registry.max_age
        assert session.last_activity == clock.now


class TestEviction:
    def test_sixth_session_evicts_oldest(self, registry, user, clock):
        sessions = []
        for _ in range(6):
            sessions.append(registry.create(user))
            clock.advance(1)

        assert registry.get(sessions[0].id) is None
        for session in sessions[1:]:
            assert registry.validate(session.id) is session
        assert len(registry.list_active_for_user(user.id)) == 5

    def test_other_users_are_unaffected(self, registry, user):
        other = FakeUser(id=uuid.uuid4(), username="ie1", role="ie")
        keep = registry.create(other)
        for _ in range(6):
            registry.create(user)
        assert registry.validate(keep.id) is keep


class TestDestroy:
    def test_destroy_removes_session(self, registry, user):
        session = registry.create(user)
        assert registry.destroy(session.id) is True
        assert registry.destroy(session.id) is False
        assert registry.list_active_for_user(user.id) == []

    def test_destroy_all_for_user(self, registry, user):
        for _ in range(3):
            registry.create(user)
        assert registry.destroy_all_for_user(user.id) == 3
        assert len(registry) == 0
        assert registry.destroy_all_for_user(user.id) == 0

    def test_sweep_removes_only_dead_sessions(self, registry, user, clock):
        old = registry.create(user)
        clock.advance(25 * 60)
        fresh = registry.create(user)
        clock.advance(10 * 60)

        assert registry.sweep_expired() == 1
        assert registry.get(old.id) is None
        assert registry.get(fresh.id) is fresh
