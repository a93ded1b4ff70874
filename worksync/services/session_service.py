"""
Session service — in-memory registry of authenticated sessions.

Handles:
- Creating sessions on login (opaque 256-bit tokens)
- Expiry (absolute max age) and idle-timeout validation
- Sliding renewal when a session is close to expiring
- Max-sessions-per-user eviction (oldest session goes first)
- Periodic sweeping of dead sessions

Sessions live in process memory only.  Every worker process has its own
registry, so a deployment running several processes must pin clients to
a process or move this state to a shared store — that is a known scaling
limit of this design, not something the registry tries to hide.

All methods are synchronous and never await, so under the asyncio event
loop each call runs to completion without interleaving.
"""

import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from worksync.core.config import settings

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 200


@dataclass
class Session:
    id: str
    user_id: uuid.UUID
    username: str
    role: str
    created_at: float
    last_activity: float
    expires_at: float
    ip_address: str | None = None
    user_agent: str | None = None


def generate_session_token() -> str:
    """256 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(32)


class SessionRegistry:
    def __init__(
        self,
        *,
        max_age: float = 8 * 3600,
        idle_timeout: float = 30 * 60,
        renewal_threshold: float = 3600,
        max_sessions: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.max_age = max_age
        self.idle_timeout = idle_timeout
        self.renewal_threshold = renewal_threshold
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        # user_id -> ordered token set (dict keys keep insertion order)
        self._user_sessions: dict[uuid.UUID, dict[str, None]] = {}

    @classmethod
    def from_settings(cls, cfg: Any = settings) -> "SessionRegistry":
        return cls(
            max_age=cfg.SESSION_MAX_AGE_MINUTES * 60,
            idle_timeout=cfg.SESSION_IDLE_TIMEOUT_MINUTES * 60,
            renewal_threshold=cfg.SESSION_RENEWAL_THRESHOLD_MINUTES * 60,
            max_sessions=cfg.SESSION_MAX_PER_USER,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    # ── Lifecycle ────────────────────────────────────────────────────

    def create(
        self,
        user: Any,
        ip_address: str | None = None,
        user_agent: str | None = None,
        token: str | None = None,
    ) -> Session:
        """
        Register a new session for ``user`` (anything with ``id``,
        ``username`` and ``role``).  Evicts the user's oldest session when
        the per-user limit is exceeded.

        ``token`` lets a caller reserve the id up front (see
        ``generate_session_token``) and register it only once the login
        has been committed.
        """
        now = self._clock()
        role = getattr(user.role, "value", user.role)
        session = Session(
            id=token or generate_session_token(),
            user_id=user.id,
            username=user.username,
            role=str(role),
            created_at=now,
            last_activity=now,
            expires_at=now + self.max_age,
            ip_address=ip_address,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        )
        self._sessions[session.id] = session
        tokens = self._user_sessions.setdefault(session.user_id, {})
        tokens[session.id] = None

        if len(tokens) > self.max_sessions:
            oldest = min(tokens, key=lambda t: self._sessions[t].created_at)
            logger.warning(
                "User %s exceeded %d sessions — evicting oldest session",
                session.user_id,
                self.max_sessions,
            )
            self.destroy(oldest)

        return session

    def get(self, token: str) -> Session | None:
        """Raw lookup — no validity checks."""
        return self._sessions.get(token)

    def invalid_reason(self, session: Session) -> str | None:
        """``"expired"``, ``"idle"`` or None for a live session."""
        now = self._clock()
        if now > session.expires_at:
            return "expired"
        if now - session.last_activity > self.idle_timeout:
            return "idle"
        return None

    def validate(self, token: str) -> Session | None:
        """Return the session if it exists and is live.  Never mutates."""
        session = self._sessions.get(token)
        if session is None or self.invalid_reason(session) is not None:
            return None
        return session

    def touch(self, token: str) -> Session | None:
        session = self._sessions.get(token)
        if session is not None:
            session.last_activity = self._clock()
        return session

    def needs_renewal(self, session: Session) -> bool:
        return session.expires_at - self._clock() < self.renewal_threshold

    def renew(self, token: str) -> Session | None:
        session = self._sessions.get(token)
        if session is not None:
            now = self._clock()
            session.expires_at = now + self.max_age
            session.last_activity = now
        return session

    def destroy(self, token: str) -> bool:
        session = self._sessions.pop(token, None)
        if session is None:
            return False
        tokens = self._user_sessions.get(session.user_id)
        if tokens is not None:
            tokens.pop(token, None)
            if not tokens:
                del self._user_sessions[session.user_id]
        return True

    def destroy_all_for_user(self, user_id: uuid.UUID) -> int:
        """Force logout.  Returns the number of sessions removed."""
        tokens = self._user_sessions.pop(user_id, {})
        for token in tokens:
            self._sessions.pop(token, None)
        return len(tokens)

    # ── Queries / maintenance ────────────────────────────────────────

    def list_active_for_user(self, user_id: uuid.UUID) -> list[Session]:
        return [
            self._sessions[token]
            for token in self._user_sessions.get(user_id, {})
            if self.invalid_reason(self._sessions[token]) is None
        ]

    def sweep_expired(self) -> int:
        """Destroy every session that no longer validates."""
        dead = [
            token
            for token, session in self._sessions.items()
            if self.invalid_reason(session) is not None
        ]
        for token in dead:
            self.destroy(token)
        if dead:
            logger.info("Session cleanup: removed %d expired sessions", len(dead))
        return len(dead)

    def clear(self) -> None:
        self._sessions.clear()
        self._user_sessions.clear()


session_registry = SessionRegistry.from_settings()
