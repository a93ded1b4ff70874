"""
Password hashing, session resolution & request context.

- Passwords are hashed with bcrypt directly (passlib is unmaintained
  and broken with bcrypt>=4.1).
- Sessions are opaque tokens held by the in-memory session registry,
  read from the ``sessionId`` cookie or the ``X-Session-Id`` header.
- ``resolve_session`` runs on EVERY request (installed app-wide): stale
  tokens are destroyed and cleared client-side, live ones are touched
  and renewed.  The result is an explicit ``Identity`` value that routes
  receive through dependency injection and hand to services — nothing is
  stashed on the request object.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass

import bcrypt
from fastapi import Request, Response

from worksync.core.config import settings
from worksync.services.session_service import Session, session_registry

logger = logging.getLogger(__name__)

# ── Password hashing ────────────────────────────────────────────────


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


# ── Token hashing ───────────────────────────────────────────────────


def hash_token(token: str) -> str:
    """SHA-256 hash — suitable for high-entropy tokens like session ids."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ── Identity & request context ──────────────────────────────────────


@dataclass(frozen=True)
class Identity:
    user_id: uuid.UUID
    username: str
    role: str
    session_id: str

    @classmethod
    def from_session(cls, session: Session) -> "Identity":
        return cls(
            user_id=session.user_id,
            username=session.username,
            role=session.role,
            session_id=session.id,
        )


@dataclass(frozen=True)
class RequestContext:
    """Who/where a request came from — recorded with audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    request_path: str | None = None
    http_method: str | None = None


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def get_session_token(request: Request) -> str | None:
    return (
        request.cookies.get(settings.SESSION_COOKIE_NAME)
        or request.headers.get(settings.SESSION_HEADER_NAME)
    )


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_MAX_AGE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        path="/",
    )


def forwarded_headers(response: Response) -> dict[str, str] | None:
    """
    Headers queued on the dependency ``Response`` (session cookie,
    rate-limit counters).

    FastAPI copies them only onto values a route *returns*.  An
    ``HTTPException`` or a ``Response`` built by the route itself must be
    handed them explicitly, or a cleared / renewed cookie never reaches
    the client.
    """
    headers = {key: value for key, value in response.headers.items() if key != "content-length"}
    return headers or None


# ── Per-request session resolution ──────────────────────────────────


async def resolve_session(request: Request, response: Response) -> Identity | None:
    """
    FastAPI dependency — resolve the caller's session, if any.

    Never raises: a missing or dead session simply means anonymous.
    Routes that need an identity depend on ``require_identity`` instead.
    """
    token = get_session_token(request)
    if not token:
        return None

    session = session_registry.validate(token)
    if session is None:
        session_registry.destroy(token)
        clear_session_cookie(response)
        return None

    session_registry.touch(token)
    if session_registry.needs_renewal(session):
        session_registry.renew(token)
        if request.cookies.get(settings.SESSION_COOKIE_NAME) == token:
            set_session_cookie(response, token)
        logger.debug("Session renewed for user %s", session.username)

    return Identity.from_session(session)


async def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency — request metadata for audit records."""
    user_agent = request.headers.get("user-agent")
    return RequestContext(
        ip_address=get_client_ip(request),
        user_agent=user_agent[:500] if user_agent else None,
        session_id=get_session_token(request),
        request_path=request.url.path,
        http_method=request.method,
    )
