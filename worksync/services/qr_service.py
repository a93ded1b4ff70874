"""
QR service — badge / station QR codes for employees, lines, operations
and product processes.

Regeneration is triggered by the change feed when one of those rows is
inserted.  Each action reads the row, renders the PNG in a worker thread
(PIL encoding is CPU bound) and stores the relative file path in the
row's ``qr_code_path``.
"""

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable

import qrcode
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksync.core.config import settings
from worksync.core.transaction import run_in_transaction
from worksync.models.employee import Employee
from worksync.models.line import ProductionLine
from worksync.models.operation import Operation
from worksync.models.product import ProductProcess

logger = logging.getLogger(__name__)


def qr_relative_path(kind: str, row_id: Any) -> str:
    return f"{kind}/{kind}_{row_id}.png"


def _render_png(data: str, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    image = qrcode.make(data)
    image.save(str(target))


async def write_qr_png(payload: dict[str, Any], target: Path) -> Path:
    await asyncio.to_thread(_render_png, json.dumps(payload, default=str), target)
    return target


# ── Payloads ─────────────────────────────────────────────────────────


def employee_payload(employee: Employee) -> dict[str, Any]:
    return {"type": "employee", "id": str(employee.id), "code": employee.emp_code, "name": employee.emp_name}


def line_payload(line: ProductionLine) -> dict[str, Any]:
    return {"type": "line", "id": str(line.id), "code": line.line_code, "name": line.line_name}


def operation_payload(operation: Operation) -> dict[str, Any]:
    return {
        "type": "operation",
        "id": str(operation.id),
        "code": operation.operation_code,
        "name": operation.operation_name,
    }


def process_payload(process: ProductProcess) -> dict[str, Any]:
    name = process.operation.operation_name if process.operation is not None else None
    return {"type": "process", "id": str(process.id), "name": name}


# ── Regeneration ─────────────────────────────────────────────────────


async def _regenerate(
    kind: str,
    model: Any,
    row_id: Any,
    build_payload: Callable[[Any], dict[str, Any]],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    base_dir: str | Path | None = None,
) -> str | None:
    row_uuid = uuid.UUID(str(row_id))

    async def load(session: AsyncSession) -> dict[str, Any] | None:
        row = await session.get(model, row_uuid)
        return build_payload(row) if row is not None else None

    payload = await run_in_transaction(load, session_factory=session_factory)
    if payload is None:
        logger.warning("QR regeneration skipped: %s %s no longer exists", kind, row_uuid)
        return None

    relative = qr_relative_path(kind, row_uuid)
    await write_qr_png(payload, Path(base_dir or settings.QRCODES_DIR) / relative)

    async def store(session: AsyncSession) -> None:
        row = await session.get(model, row_uuid)
        if row is not None:
            row.qr_code_path = relative

    await run_in_transaction(store, session_factory=session_factory)
    logger.info("QR code generated for %s %s", kind, row_uuid)
    return relative


async def regenerate_employee_qr(row_id: Any, **kwargs: Any) -> str | None:
    return await _regenerate("employee", Employee, row_id, employee_payload, **kwargs)


async def regenerate_line_qr(row_id: Any, **kwargs: Any) -> str | None:
    return await _regenerate("line", ProductionLine, row_id, line_payload, **kwargs)


async def regenerate_operation_qr(row_id: Any, **kwargs: Any) -> str | None:
    return await _regenerate("operation", Operation, row_id, operation_payload, **kwargs)


async def regenerate_process_qr(row_id: Any, **kwargs: Any) -> str | None:
    return await _regenerate("process", ProductProcess, row_id, process_payload, **kwargs)


# Table name -> derived action run when a row is inserted
REGENERATORS: dict[str, Callable[[Any], Awaitable[str | None]]] = {
    Employee.__tablename__: regenerate_employee_qr,
    ProductionLine.__tablename__: regenerate_line_qr,
    Operation.__tablename__: regenerate_operation_qr,
    ProductProcess.__tablename__: regenerate_process_qr,
}
