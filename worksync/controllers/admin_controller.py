"""
Admin controller — user management, master data, manual assignment.

Every route uses `Depends(require_permission(...))` for enforcement.
Controllers are THIN — they delegate to services and return schemas.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from worksync.core.database import get_db, get_session_factory
from worksync.core.security import Identity, RequestContext, get_request_context
from worksync.rbac.dependencies import require_permission
from worksync.schemas import (
    AssignmentOut,
    AssignProcessRequest,
    CreateEmployeeRequest,
    CreateLineRequest,
    CreateOperationRequest,
    CreateProcessRequest,
    CreateProductRequest,
    CreateUserRequest,
    EmployeeOut,
    LineOut,
    MessageResponse,
    OperationCategoryOut,
    OperationOut,
    ProcessOut,
    ProductOut,
    SetLineProductRequest,
    UpdateEmployeeRequest,
    UpdateLineRequest,
    UpdateOperationRequest,
    UpdateProcessRequest,
    UpdateProductRequest,
    UserOut,
)
from worksync.services import assignment_service, catalog_service, user_service

router = APIRouter(prefix="/api/admin", tags=["Admin"])


# ── Users ────────────────────────────────────────────────────────────
@router.get("/users", response_model=list[UserOut])
async def list_users(
    identity: Identity = Depends(require_permission("users:read")),
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    users = await user_service.list_users(db, skip, limit)
    return [UserOut.model_validate(u) for u in users]


@router.post("/users", response_model=UserOut, status_code=201)
async def create_user(
    body: CreateUserRequest,
    identity: Identity = Depends(require_permission("users:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    user = await user_service.create_user(
        username=body.username,
        password=body.password,
        full_name=body.full_name,
        role=body.role,
        db=db,
        identity=identity,
        context=context,
    )
    return UserOut.model_validate(user)


@router.post("/users/{user_id}/disable", response_model=UserOut)
async def disable_user(
    user_id: uuid.UUID,
    identity: Identity = Depends(require_permission("users:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Disable the account and end all of its sessions."""
    user = await user_service.disable_user(user_id, db, identity, context)
    return UserOut.model_validate(user)


@router.post("/users/{user_id}/force-logout", response_model=MessageResponse)
async def force_logout(
    user_id: uuid.UUID,
    identity: Identity = Depends(require_permission("users:update")),
):
    count = user_service.force_logout(user_id)
    return MessageResponse(detail=f"{count} session(s) terminated")


# ── Lines ────────────────────────────────────────────────────────────
@router.get("/lines", response_model=list[LineOut])
async def list_lines(
    identity: Identity = Depends(require_permission("lines:read")),
    db: AsyncSession = Depends(get_db),
):
    return [LineOut.model_validate(line) for line in await catalog_service.list_lines(db)]


@router.post("/lines", response_model=LineOut, status_code=201)
async def create_line(
    body: CreateLineRequest,
    identity: Identity = Depends(require_permission("lines:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    line = await catalog_service.create_line(db, body.model_dump(), identity, context)
    return LineOut.model_validate(line)


@router.put("/lines/{line_id}/product", response_model=LineOut)
async def set_line_product(
    line_id: uuid.UUID,
    body: SetLineProductRequest,
    identity: Identity = Depends(require_permission("lines:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Switch the product running on a line (or clear it)."""
    line = await catalog_service.set_line_product(db, line_id, body.product_id, identity, context)
    return LineOut.model_validate(line)


@router.put("/lines/{line_id}", response_model=LineOut)
async def update_line(
    line_id: uuid.UUID,
    body: UpdateLineRequest,
    identity: Identity = Depends(require_permission("lines:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    line = await catalog_service.update_line(db, line_id, body.changes(), identity, context)
    return LineOut.model_validate(line)


@router.delete("/lines/{line_id}", response_model=LineOut)
async def deactivate_line(
    line_id: uuid.UUID,
    identity: Identity = Depends(require_permission("lines:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    line = await catalog_service.deactivate_line(db, line_id, identity, context)
    return LineOut.model_validate(line)


# ── Employees ────────────────────────────────────────────────────────
@router.get("/employees", response_model=list[EmployeeOut])
async def list_employees(
    identity: Identity = Depends(require_permission("employees:read")),
    db: AsyncSession = Depends(get_db),
):
    return [EmployeeOut.model_validate(e) for e in await catalog_service.list_employees(db)]


@router.post("/employees", response_model=EmployeeOut, status_code=201)
async def create_employee(
    body: CreateEmployeeRequest,
    identity: Identity = Depends(require_permission("employees:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    employee = await catalog_service.create_employee(db, body.model_dump(), identity, context)
    return EmployeeOut.model_validate(employee)


@router.put("/employees/{employee_id}", response_model=EmployeeOut)
async def update_employee(
    employee_id: uuid.UUID,
    body: UpdateEmployeeRequest,
    identity: Identity = Depends(require_permission("employees:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    employee = await catalog_service.update_employee(db, employee_id, body.changes(), identity, context)
    return EmployeeOut.model_validate(employee)


@router.delete("/employees/{employee_id}", response_model=EmployeeOut)
async def deactivate_employee(
    employee_id: uuid.UUID,
    identity: Identity = Depends(require_permission("employees:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Deactivated employees stay in history but can no longer be scanned."""
    employee = await catalog_service.deactivate_employee(db, employee_id, identity, context)
    return EmployeeOut.model_validate(employee)


# ── Operations ───────────────────────────────────────────────────────
@router.get("/operations", response_model=list[OperationOut])
async def list_operations(
    identity: Identity = Depends(require_permission("operations:read")),
    db: AsyncSession = Depends(get_db),
):
    return [OperationOut.model_validate(o) for o in await catalog_service.list_operations(db)]


@router.get("/operations/categories", response_model=list[OperationCategoryOut])
async def list_operation_categories(
    identity: Identity = Depends(require_permission("operations:read")),
    db: AsyncSession = Depends(get_db),
):
    """Active operations grouped by category."""
    rows = await catalog_service.list_operation_categories(db)
    return [OperationCategoryOut(operation_category=category, count=count) for category, count in rows]


@router.post("/operations", response_model=OperationOut, status_code=201)
async def create_operation(
    body: CreateOperationRequest,
    identity: Identity = Depends(require_permission("operations:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    operation = await catalog_service.create_operation(db, body.model_dump(), identity, context)
    return OperationOut.model_validate(operation)


@router.put("/operations/{operation_id}", response_model=OperationOut)
async def update_operation(
    operation_id: uuid.UUID,
    body: UpdateOperationRequest,
    identity: Identity = Depends(require_permission("operations:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    operation = await catalog_service.update_operation(db, operation_id, body.changes(), identity, context)
    return OperationOut.model_validate(operation)


@router.delete("/operations/{operation_id}", response_model=OperationOut)
async def deactivate_operation(
    operation_id: uuid.UUID,
    identity: Identity = Depends(require_permission("operations:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    operation = await catalog_service.deactivate_operation(db, operation_id, identity, context)
    return OperationOut.model_validate(operation)


# ── Products & processes ─────────────────────────────────────────────
@router.get("/products", response_model=list[ProductOut])
async def list_products(
    identity: Identity = Depends(require_permission("products:read")),
    db: AsyncSession = Depends(get_db),
):
    return [ProductOut.model_validate(p) for p in await catalog_service.list_products(db)]


@router.post("/products", response_model=ProductOut, status_code=201)
async def create_product(
    body: CreateProductRequest,
    identity: Identity = Depends(require_permission("products:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    product = await catalog_service.create_product(db, body.model_dump(), identity, context)
    return ProductOut.model_validate(product)


@router.put("/products/{product_id}", response_model=ProductOut)
async def update_product(
    product_id: uuid.UUID,
    body: UpdateProductRequest,
    identity: Identity = Depends(require_permission("products:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    product = await catalog_service.update_product(db, product_id, body.changes(), identity, context)
    return ProductOut.model_validate(product)


@router.delete("/products/{product_id}", response_model=ProductOut)
async def deactivate_product(
    product_id: uuid.UUID,
    identity: Identity = Depends(require_permission("products:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Retire the product; lines running it are left without a product."""
    product = await catalog_service.deactivate_product(db, product_id, identity, context)
    return ProductOut.model_validate(product)


@router.get("/products/{product_id}/processes", response_model=list[ProcessOut])
async def list_product_processes(
    product_id: uuid.UUID,
    identity: Identity = Depends(require_permission("processes:read")),
    db: AsyncSession = Depends(get_db),
):
    processes = await catalog_service.list_product_processes(db, product_id)
    return [ProcessOut.model_validate(p) for p in processes]


@router.post("/products/{product_id}/processes", response_model=ProcessOut, status_code=201)
async def create_product_process(
    product_id: uuid.UUID,
    body: CreateProcessRequest,
    identity: Identity = Depends(require_permission("processes:create")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    process = await catalog_service.create_product_process(
        db, product_id, body.operation_id, body.sequence_number, identity, context,
    )
    return ProcessOut.model_validate(process)


@router.put("/processes/{process_id}", response_model=ProcessOut)
async def update_product_process(
    process_id: uuid.UUID,
    body: UpdateProcessRequest,
    identity: Identity = Depends(require_permission("processes:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    process = await catalog_service.update_product_process(db, process_id, body.changes(), identity, context)
    return ProcessOut.model_validate(process)


@router.delete("/processes/{process_id}", status_code=204)
async def delete_product_process(
    process_id: uuid.UUID,
    identity: Identity = Depends(require_permission("processes:update")),
    db: AsyncSession = Depends(get_db),
    context: RequestContext = Depends(get_request_context),
):
    """Remove a process that has no recorded work yet."""
    await catalog_service.delete_product_process(db, process_id, identity, context)


# ── Manual assignment ────────────────────────────────────────────────
@router.post("/assignments", response_model=AssignmentOut)
async def assign_process(
    body: AssignProcessRequest,
    identity: Identity = Depends(require_permission("assignments:manage")),
    context: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Set or clear the assignee of a process without a scan."""
    assignment = await assignment_service.assign_process(
        line_id=body.line_id,
        process_id=body.process_id,
        employee_id=body.employee_id,
        identity=identity,
        context=context,
        work_date=body.work_date,
        session_factory=session_factory,
    )
    return AssignmentOut.model_validate(assignment)
