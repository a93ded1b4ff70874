"""
Authentication service.

Handles:
- Credential checks (bcrypt) and account status
- Opening a registry session on login, closing it on logout
- Audit entries for both

All business logic lives here — controllers call service methods
and return the result.
"""

from dataclasses import replace

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.security import Identity, RequestContext, verify_password
from worksync.models.user import User
from worksync.services.audit_service import AuditAction, log_audit
from worksync.services.session_service import Session, generate_session_token, session_registry


async def authenticate(username: str, password: str, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_credentials", "message": "Invalid username or password"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "account_disabled", "message": "Account is disabled"},
        )
    return user


# ── Login / logout ───────────────────────────────────────────────────


async def login(
    username: str,
    password: str,
    db: AsyncSession,
    context: RequestContext,
) -> tuple[User, Session]:
    """
    Check credentials, record the login and open a registry session.

    The audit row is committed before the session is registered, so a
    failed commit leaves no live session behind (and evicts nothing).
    """
    user = await authenticate(username, password, db)
    token = generate_session_token()

    await log_audit(
        db,
        table_name=User.__tablename__,
        record_id=user.id,
        action=AuditAction.LOGIN,
        changed_by=user.id,
        context=replace(context, session_id=token),
    )
    await db.commit()

    session = session_registry.create(user, context.ip_address, context.user_agent, token=token)
    return user, session


async def logout(identity: Identity, db: AsyncSession, context: RequestContext) -> bool:
    destroyed = session_registry.destroy(identity.session_id)
    await log_audit(
        db,
        table_name=User.__tablename__,
        record_id=identity.user_id,
        action=AuditAction.LOGOUT,
        identity=identity,
        context=context,
    )
    return destroyed
