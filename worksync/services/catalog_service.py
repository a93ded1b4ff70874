"""
Catalog service — master data for the shop floor.

Lines, employees, operations, products and the ordered processes of a
product.  Codes are unique per table; a duplicate is reported as 409
before the write is attempted.  Rows are retired with ``is_active``
rather than deleted, except a process nobody has worked on yet.  QR
codes for new rows are produced asynchronously by the change feed,
not here.
"""

import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from worksync.core.security import Identity, RequestContext
from worksync.models.assignment import AssignmentHistory, ProcessAssignment
from worksync.models.attendance import HourlyProgress
from worksync.models.employee import Employee
from worksync.models.line import ProductionLine
from worksync.models.operation import Operation
from worksync.models.product import Product, ProductProcess
from worksync.services.audit_service import AuditAction, log_audit


# ── Helpers ──────────────────────────────────────────────────────────


async def _ensure_unique(
    db: AsyncSession,
    column: Any,
    value: Any,
    label: str,
    exclude_id: uuid.UUID | None = None,
) -> None:
    stmt = select(func.count()).where(column == value)
    if exclude_id is not None:
        stmt = stmt.where(column.class_.id != exclude_id)
    result = await db.execute(stmt)
    if result.scalar_one():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "conflict", "message": f"{label} '{value}' already exists"},
        )


async def _get_or_404(db: AsyncSession, model: Any, row_id: uuid.UUID, label: str) -> Any:
    row = await db.get(model, row_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return row


async def _create(
    db: AsyncSession,
    row: Any,
    values: dict[str, Any],
    identity: Identity | None,
    context: RequestContext | None,
) -> Any:
    db.add(row)
    await db.flush()
    await log_audit(
        db,
        table_name=row.__tablename__,
        record_id=row.id,
        action=AuditAction.CREATE,
        new_values=values,
        identity=identity,
        context=context,
    )
    return row


async def _update(
    db: AsyncSession,
    row: Any,
    values: dict[str, Any],
    identity: Identity | None,
    context: RequestContext | None,
    action: AuditAction = AuditAction.UPDATE,
) -> Any:
    """Apply ``values`` and audit only the fields that actually changed."""
    old_values: dict[str, Any] = {}
    new_values: dict[str, Any] = {}
    for field, value in values.items():
        current = getattr(row, field)
        if current != value:
            old_values[field] = current
            new_values[field] = value
            setattr(row, field, value)
    if not new_values:
        return row

    await db.flush()
    await log_audit(
        db,
        table_name=row.__tablename__,
        record_id=row.id,
        action=action,
        old_values=old_values,
        new_values=new_values,
        identity=identity,
        context=context,
    )
    return row


async def _deactivate(
    db: AsyncSession,
    row: Any,
    identity: Identity | None,
    context: RequestContext | None,
) -> Any:
    # Soft delete: history, attendance and audit rows keep pointing at it
    return await _update(db, row, {"is_active": False}, identity, context, action=AuditAction.DELETE)


# ── Lines ────────────────────────────────────────────────────────────


async def list_lines(db: AsyncSession, active_only: bool = False) -> list[ProductionLine]:
    stmt = select(ProductionLine).order_by(ProductionLine.line_code)
    if active_only:
        stmt = stmt.where(ProductionLine.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_line(
    db: AsyncSession,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductionLine:
    await _ensure_unique(db, ProductionLine.line_code, values["line_code"], "Line code")
    if values.get("current_product_id") is not None:
        await _get_or_404(db, Product, values["current_product_id"], "Product")
    return await _create(db, ProductionLine(**values), values, identity, context)


async def set_line_product(
    db: AsyncSession,
    line_id: uuid.UUID,
    product_id: uuid.UUID | None,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductionLine:
    line = await _get_or_404(db, ProductionLine, line_id, "Line")
    if product_id is not None:
        await _get_or_404(db, Product, product_id, "Product")
    previous = line.current_product_id
    line.current_product_id = product_id
    await db.flush()
    await log_audit(
        db,
        table_name=ProductionLine.__tablename__,
        record_id=line.id,
        action=AuditAction.UPDATE,
        old_values={"current_product_id": previous},
        new_values={"current_product_id": product_id},
        identity=identity,
        context=context,
    )
    return line


async def update_line(
    db: AsyncSession,
    line_id: uuid.UUID,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductionLine:
    line = await _get_or_404(db, ProductionLine, line_id, "Line")
    if "line_code" in values:
        await _ensure_unique(db, ProductionLine.line_code, values["line_code"], "Line code", exclude_id=line.id)
    if values.get("current_product_id") is not None:
        await _get_or_404(db, Product, values["current_product_id"], "Product")
    return await _update(db, line, values, identity, context)


async def deactivate_line(
    db: AsyncSession,
    line_id: uuid.UUID,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductionLine:
    line = await _get_or_404(db, ProductionLine, line_id, "Line")
    return await _deactivate(db, line, identity, context)


async def list_line_processes(db: AsyncSession, line_id: uuid.UUID) -> list[ProductProcess]:
    """Processes of the product currently running on the line."""
    line = await _get_or_404(db, ProductionLine, line_id, "Line")
    if line.current_product_id is None:
        return []
    return await list_product_processes(db, line.current_product_id)


# ── Employees ────────────────────────────────────────────────────────


async def list_employees(db: AsyncSession, active_only: bool = False) -> list[Employee]:
    stmt = select(Employee).order_by(Employee.emp_code)
    if active_only:
        stmt = stmt.where(Employee.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_employee(
    db: AsyncSession,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Employee:
    await _ensure_unique(db, Employee.emp_code, values["emp_code"], "Employee code")
    return await _create(db, Employee(**values), values, identity, context)


async def update_employee(
    db: AsyncSession,
    employee_id: uuid.UUID,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Employee:
    employee = await _get_or_404(db, Employee, employee_id, "Employee")
    if "emp_code" in values:
        await _ensure_unique(db, Employee.emp_code, values["emp_code"], "Employee code", exclude_id=employee.id)
    return await _update(db, employee, values, identity, context)


async def deactivate_employee(
    db: AsyncSession,
    employee_id: uuid.UUID,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Employee:
    """An inactive employee can no longer be scanned onto a process."""
    employee = await _get_or_404(db, Employee, employee_id, "Employee")
    return await _deactivate(db, employee, identity, context)


# ── Operations ───────────────────────────────────────────────────────


async def list_operations(db: AsyncSession) -> list[Operation]:
    result = await db.execute(select(Operation).order_by(Operation.operation_code))
    return list(result.scalars().all())


async def create_operation(
    db: AsyncSession,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Operation:
    await _ensure_unique(db, Operation.operation_code, values["operation_code"], "Operation code")
    return await _create(db, Operation(**values), values, identity, context)


async def update_operation(
    db: AsyncSession,
    operation_id: uuid.UUID,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Operation:
    operation = await _get_or_404(db, Operation, operation_id, "Operation")
    if "operation_code" in values:
        await _ensure_unique(
            db, Operation.operation_code, values["operation_code"], "Operation code", exclude_id=operation.id,
        )
    return await _update(db, operation, values, identity, context)


async def deactivate_operation(
    db: AsyncSession,
    operation_id: uuid.UUID,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Operation:
    operation = await _get_or_404(db, Operation, operation_id, "Operation")
    return await _deactivate(db, operation, identity, context)


async def list_operation_categories(db: AsyncSession) -> list[tuple[str | None, int]]:
    """Active operations per category, largest category first."""
    count = func.count(Operation.id).label("count")
    stmt = (
        select(Operation.operation_category, count)
        .where(Operation.is_active.is_(True))
        .group_by(Operation.operation_category)
        .order_by(count.desc(), Operation.operation_category)
    )
    result = await db.execute(stmt)
    return [(category, total) for category, total in result.all()]


# ── Products & processes ─────────────────────────────────────────────


async def list_products(db: AsyncSession) -> list[Product]:
    result = await db.execute(select(Product).order_by(Product.product_code))
    return list(result.scalars().all())


async def create_product(
    db: AsyncSession,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Product:
    await _ensure_unique(db, Product.product_code, values["product_code"], "Product code")
    return await _create(db, Product(processes=[], **values), values, identity, context)


async def update_product(
    db: AsyncSession,
    product_id: uuid.UUID,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Product:
    product = await _get_or_404(db, Product, product_id, "Product")
    if "product_code" in values:
        await _ensure_unique(
            db, Product.product_code, values["product_code"], "Product code", exclude_id=product.id,
        )
    return await _update(db, product, values, identity, context)


async def deactivate_product(
    db: AsyncSession,
    product_id: uuid.UUID,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> Product:
    """Retire a product and take it off every line still running it."""
    product = await _get_or_404(db, Product, product_id, "Product")
    running = await db.execute(
        select(ProductionLine.id).where(ProductionLine.current_product_id == product.id)
    )
    for line_id in running.scalars().all():
        await set_line_product(db, line_id, None, identity, context)
    return await _deactivate(db, product, identity, context)


async def list_product_processes(db: AsyncSession, product_id: uuid.UUID) -> list[ProductProcess]:
    stmt = (
        select(ProductProcess)
        .where(ProductProcess.product_id == product_id)
        .order_by(ProductProcess.sequence_number)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_product_process(
    db: AsyncSession,
    product_id: uuid.UUID,
    operation_id: uuid.UUID,
    sequence_number: int,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductProcess:
    await _get_or_404(db, Product, product_id, "Product")
    await _get_or_404(db, Operation, operation_id, "Operation")

    await _ensure_sequence_free(db, product_id, sequence_number)
    values = {"product_id": product_id, "operation_id": operation_id, "sequence_number": sequence_number}
    process = await _create(db, ProductProcess(**values), values, identity, context)
    await db.refresh(process, attribute_names=["operation"])
    return process


async def _ensure_sequence_free(
    db: AsyncSession,
    product_id: uuid.UUID,
    sequence_number: int,
    exclude_id: uuid.UUID | None = None,
) -> None:
    stmt = select(func.count()).where(
        ProductProcess.product_id == product_id,
        ProductProcess.sequence_number == sequence_number,
    )
    if exclude_id is not None:
        stmt = stmt.where(ProductProcess.id != exclude_id)
    if (await db.execute(stmt)).scalar_one():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "conflict", "message": f"Sequence number {sequence_number} already used"},
        )


async def update_product_process(
    db: AsyncSession,
    process_id: uuid.UUID,
    values: dict[str, Any],
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> ProductProcess:
    process = await _get_or_404(db, ProductProcess, process_id, "Process")
    if "operation_id" in values:
        await _get_or_404(db, Operation, values["operation_id"], "Operation")
    if "sequence_number" in values:
        await _ensure_sequence_free(db, process.product_id, values["sequence_number"], exclude_id=process.id)
    await _update(db, process, values, identity, context)
    await db.refresh(process, attribute_names=["operation"])
    return process


async def delete_product_process(
    db: AsyncSession,
    process_id: uuid.UUID,
    identity: Identity | None = None,
    context: RequestContext | None = None,
) -> None:
    """
    Remove a process from its product's routing.

    Only a process nobody has worked on yet can go: assignments, history
    and hourly output cascade with it, so a used one is refused with 409.
    """
    process = await _get_or_404(db, ProductProcess, process_id, "Process")
    for model in (ProcessAssignment, AssignmentHistory, HourlyProgress):
        used = await db.execute(select(func.count()).where(model.process_id == process.id))
        if used.scalar_one():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "process_in_use", "message": "Process already has recorded work"},
            )

    snapshot = {
        "product_id": process.product_id,
        "operation_id": process.operation_id,
        "sequence_number": process.sequence_number,
    }
    await db.delete(process)
    await db.flush()
    await log_audit(
        db,
        table_name=ProductProcess.__tablename__,
        record_id=process_id,
        action=AuditAction.DELETE,
        old_values=snapshot,
        identity=identity,
        context=context,
    )
