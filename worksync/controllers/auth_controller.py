"""
Auth controller — login, logout, current identity & own sessions.

Login is PUBLIC (guarded by the login rate limit only).  Every other
route requires a live session.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.database import get_db
from worksync.core.security import (
    Identity,
    RequestContext,
    clear_session_cookie,
    get_request_context,
    set_session_cookie,
)
from worksync.rbac.dependencies import login_rate_limit, require_identity
from worksync.rbac.permissions import permissions_for_role
from worksync.schemas import IdentityOut, LoginRequest, LoginResponse, MessageResponse, SessionOut
from worksync.services import auth_service
from worksync.services.session_service import session_registry

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _ts(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def _identity_out(user_id, username: str, role: str) -> IdentityOut:
    return IdentityOut(
        user_id=user_id,
        username=username,
        role=role,
        permissions=sorted(permissions_for_role(role)),
    )


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(login_rate_limit)])
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Username + password → session token (also set as an HTTP-only cookie)."""
    user, session = await auth_service.login(body.username, body.password, db, context)
    set_session_cookie(response, session.id)
    return LoginResponse(
        session_id=session.id,
        expires_at=_ts(session.expires_at),
        user=_identity_out(user.id, user.username, session.role),
    )


@router.delete("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    identity: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    await auth_service.logout(identity, db, context)
    clear_session_cookie(response)
    return MessageResponse(detail="Logged out successfully")


@router.get("/me", response_model=IdentityOut)
async def me(identity: Identity = Depends(require_identity)):
    return _identity_out(identity.user_id, identity.username, identity.role)


@router.get("/sessions", response_model=list[SessionOut])
async def my_sessions(identity: Identity = Depends(require_identity)):
    """Live sessions of the caller, oldest first."""
    return [
        SessionOut(
            created_at=_ts(s.created_at),
            last_activity=_ts(s.last_activity),
            expires_at=_ts(s.expires_at),
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            current=s.id == identity.session_id,
        )
        for s in session_registry.list_active_for_user(identity.user_id)
    ]
