"""
User service — dashboard account management (admin only).
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.security import Identity, RequestContext, hash_password
from worksync.models.user import User, UserRole
from worksync.services.audit_service import AuditAction, log_audit
from worksync.services.session_service import session_registry


async def get_user_by_id(user_id: uuid.UUID, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def list_users(db: AsyncSession, skip: int = 0, limit: int = 50) -> list[User]:
    stmt = select(User).order_by(User.username).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_user(
    *,
    username: str,
    password: str,
    full_name: str,
    role: UserRole,
    db: AsyncSession,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> User:
    existing = await db.execute(select(User.id).where(User.username == username))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "conflict", "message": "Username already exists"},
        )

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name=full_name,
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()

    await log_audit(
        db,
        table_name=User.__tablename__,
        record_id=user.id,
        action=AuditAction.CREATE,
        new_values={"username": username, "full_name": full_name, "role": role.value},
        identity=identity,
        context=context,
    )
    return user


async def disable_user(
    target_user_id: uuid.UUID,
    db: AsyncSession,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> User:
    """Disable an account and invalidate all of its sessions."""
    user = await get_user_by_id(target_user_id, db)
    user.is_active = False
    session_registry.destroy_all_for_user(user.id)
    await db.flush()

    await log_audit(
        db,
        table_name=User.__tablename__,
        record_id=user.id,
        action=AuditAction.UPDATE,
        old_values={"is_active": True},
        new_values={"is_active": False},
        identity=identity,
        context=context,
        reason="Account disabled",
    )
    return user


def force_logout(target_user_id: uuid.UUID) -> int:
    return session_registry.destroy_all_for_user(target_user_id)
