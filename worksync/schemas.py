"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.
"""

import uuid
from datetime import date, datetime, time
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, model_validator

from worksync.models.user import UserRole


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class IdentityOut(BaseModel):
    user_id: uuid.UUID
    username: str
    role: str
    permissions: list[str] = []


class LoginResponse(BaseModel):
    session_id: str
    expires_at: datetime
    user: IdentityOut


class SessionOut(BaseModel):
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    current: bool = False


# ── User ─────────────────────────────────────────────────────────────
class CreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64)
    password: str = Field(min_length=8)
    full_name: str = Field(min_length=1, max_length=256)
    role: UserRole


class UserOut(BaseModel):
    id: uuid.UUID
    username: str
    full_name: str
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ── Master data ──────────────────────────────────────────────────────
class PartialUpdate(BaseModel):
    """
    PUT body where only the fields sent are applied.

    Fields named in ``not_null`` may be omitted but never sent as null.
    """

    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_nulls(self) -> "PartialUpdate":
        for name in self.not_null:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CreateLineRequest(BaseModel):
    line_code: str = Field(min_length=1, max_length=32)
    line_name: str = Field(min_length=1, max_length=256)
    hall_location: str | None = None
    current_product_id: uuid.UUID | None = None
    target_units: int = Field(0, ge=0)
    efficiency: float = Field(0.0, ge=0)


class UpdateLineRequest(PartialUpdate):
    not_null = ("line_code", "line_name", "target_units", "efficiency", "is_active")

    line_code: str | None = Field(None, min_length=1, max_length=32)
    line_name: str | None = Field(None, min_length=1, max_length=256)
    hall_location: str | None = None
    current_product_id: uuid.UUID | None = None
    target_units: int | None = Field(None, ge=0)
    efficiency: float | None = Field(None, ge=0)
    is_active: bool | None = None


class SetLineProductRequest(BaseModel):
    product_id: uuid.UUID | None = None


class LineOut(BaseModel):
    id: uuid.UUID
    line_code: str
    line_name: str
    hall_location: str | None = None
    current_product_id: uuid.UUID | None = None
    target_units: int
    efficiency: float
    qr_code_path: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class CreateEmployeeRequest(BaseModel):
    emp_code: str = Field(min_length=1, max_length=32)
    emp_name: str = Field(min_length=1, max_length=256)
    designation: str | None = None


class UpdateEmployeeRequest(PartialUpdate):
    not_null = ("emp_code", "emp_name", "is_active")

    emp_code: str | None = Field(None, min_length=1, max_length=32)
    emp_name: str | None = Field(None, min_length=1, max_length=256)
    designation: str | None = None
    is_active: bool | None = None


class EmployeeOut(BaseModel):
    id: uuid.UUID
    emp_code: str
    emp_name: str
    designation: str | None = None
    qr_code_path: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class CreateOperationRequest(BaseModel):
    operation_code: str = Field(min_length=1, max_length=32)
    operation_name: str = Field(min_length=1, max_length=256)
    operation_category: str | None = None


class UpdateOperationRequest(PartialUpdate):
    not_null = ("operation_code", "operation_name", "is_active")

    operation_code: str | None = Field(None, min_length=1, max_length=32)
    operation_name: str | None = Field(None, min_length=1, max_length=256)
    operation_category: str | None = None
    is_active: bool | None = None


class OperationOut(BaseModel):
    id: uuid.UUID
    operation_code: str
    operation_name: str
    operation_category: str | None = None
    qr_code_path: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class CreateProductRequest(BaseModel):
    product_code: str = Field(min_length=1, max_length=32)
    product_name: str = Field(min_length=1, max_length=256)


class UpdateProductRequest(PartialUpdate):
    not_null = ("product_code", "product_name", "is_active")

    product_code: str | None = Field(None, min_length=1, max_length=32)
    product_name: str | None = Field(None, min_length=1, max_length=256)
    is_active: bool | None = None


class ProductOut(BaseModel):
    id: uuid.UUID
    product_code: str
    product_name: str
    is_active: bool

    model_config = {"from_attributes": True}


class CreateProcessRequest(BaseModel):
    operation_id: uuid.UUID
    sequence_number: int = Field(ge=1)


class UpdateProcessRequest(PartialUpdate):
    not_null = ("operation_id", "sequence_number")

    operation_id: uuid.UUID | None = None
    sequence_number: int | None = Field(None, ge=1)


class ProcessOut(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    operation_id: uuid.UUID
    sequence_number: int
    operation: OperationOut | None = None
    qr_code_path: str | None = None

    model_config = {"from_attributes": True}


# ── Assignments ──────────────────────────────────────────────────────
class ScanRequest(BaseModel):
    line_id: uuid.UUID
    process_id: uuid.UUID | None = None
    process_qr: str | dict[str, Any] | None = None
    employee_qr: str | dict[str, Any]
    materials_at_link: int | None = Field(None, ge=0)
    quantity_completed: int | None = Field(None, ge=0)
    confirm_change: bool = False
    work_date: date | None = None

    @model_validator(mode="after")
    def _process_given(self) -> "ScanRequest":
        if self.process_id is None and self.process_qr is None:
            raise ValueError("process_id or process_qr is required")
        return self


class AssignmentOut(BaseModel):
    id: uuid.UUID
    line_id: uuid.UUID
    process_id: uuid.UUID
    work_date: date
    employee_id: uuid.UUID | None = None
    quantity_completed: int
    materials_at_link: int | None = None
    assigned_at: datetime | None = None

    model_config = {"from_attributes": True}


class LineAssignmentOut(AssignmentOut):
    employee: EmployeeOut | None = None


class ScanSuccessResponse(BaseModel):
    status: Literal["success"] = "success"
    assignment: AssignmentOut
    employee: EmployeeOut
    previous_employee: EmployeeOut | None = None


class ScanConflictResponse(BaseModel):
    status: Literal["conflict"] = "conflict"
    conflict: Literal["confirm_change", "quantity_required"]
    message: str
    current_employee: EmployeeOut


class AssignProcessRequest(BaseModel):
    line_id: uuid.UUID
    process_id: uuid.UUID
    employee_id: uuid.UUID | None = None
    work_date: date | None = None


class AssignmentHistoryOut(BaseModel):
    id: uuid.UUID
    line_id: uuid.UUID
    process_id: uuid.UUID
    work_date: date
    employee_id: uuid.UUID
    quantity_completed: int
    started_at: datetime | None = None
    ended_at: datetime
    reason: str

    model_config = {"from_attributes": True}


# ── Progress & attendance ────────────────────────────────────────────
class ProgressRequest(BaseModel):
    line_id: uuid.UUID
    process_id: uuid.UUID
    hour_slot: int = Field(ge=0, le=23)
    quantity: int = Field(ge=0)
    work_date: date | None = None


class ProgressOut(BaseModel):
    id: uuid.UUID
    line_id: uuid.UUID
    process_id: uuid.UUID
    work_date: date
    hour_slot: int
    quantity: int
    employee_id: uuid.UUID | None = None

    model_config = {"from_attributes": True}


class AttendanceUpsertRequest(BaseModel):
    employee_id: uuid.UUID
    work_date: date
    status: str = "present"
    in_time: time | None = None
    out_time: time | None = None
    notes: str | None = Field(None, max_length=512)


class AttendanceOut(BaseModel):
    employee_id: uuid.UUID
    attendance_date: date
    status: str
    in_time: time | None = None
    out_time: time | None = None
    notes: str | None = None

    model_config = {"from_attributes": True}


class EmployeeAttendanceOut(BaseModel):
    employee: EmployeeOut
    attendance: AttendanceOut | None = None


# ── Dashboard ────────────────────────────────────────────────────────
class OperationCategoryOut(BaseModel):
    operation_category: str | None = None
    count: int


class DashboardStatsOut(BaseModel):
    work_date: date
    lines_count: int
    employees_count: int
    products_count: int
    operations_count: int
    assigned_processes: int
    present_employees: int
    output_today: int


class LineDetailsOut(BaseModel):
    line: LineOut
    current_product: ProductOut | None = None
    processes: list[ProcessOut]
    assignments: list[LineAssignmentOut]
    employees: list[EmployeeOut]


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
