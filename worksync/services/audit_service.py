"""
Audit service — write path for the audit trail.

Audit rows are inserted inside the caller's transaction so they commit
(or vanish) together with the change they describe.  The insert runs
under a savepoint: if it fails, only the audit row is rolled back and
the business operation carries on.
"""

import enum
import logging
import uuid
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.security import Identity, RequestContext, hash_token
from worksync.core.transaction import savepoint
from worksync.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGOUT = "logout"
    ASSIGN = "assign"
    UNASSIGN = "unassign"


async def log_audit(
    db: AsyncSession,
    *,
    table_name: str,
    record_id: Any,
    action: AuditAction,
    new_values: dict[str, Any] | None = None,
    old_values: dict[str, Any] | None = None,
    identity: Identity | None = None,
    context: RequestContext | None = None,
    changed_by: uuid.UUID | None = None,
    reason: str | None = None,
) -> bool:
    """Record one audit entry.  Returns False if the entry was dropped."""
    ctx = context or RequestContext()
    values = {
        "id": uuid.uuid4(),
        "table_name": table_name,
        "record_id": str(record_id),
        "action": action.value,
        "old_values": jsonable_encoder(old_values) if old_values is not None else None,
        "new_values": jsonable_encoder(new_values) if new_values is not None else None,
        "changed_by": identity.user_id if identity else changed_by,
        "reason": reason,
        "ip_address": ctx.ip_address,
        "user_agent": ctx.user_agent[:500] if ctx.user_agent else None,
        "session_ref": hash_token(ctx.session_id) if ctx.session_id else None,
        "request_path": ctx.request_path,
        "http_method": ctx.http_method,
    }

    try:
        async with savepoint(db, "audit_entry"):
            await db.execute(insert(AuditLog).values(**values))
    except Exception:
        logger.exception("Audit log write failed for %s:%s (%s)", table_name, record_id, action.value)
        return False
    return True
