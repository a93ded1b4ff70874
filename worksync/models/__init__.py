"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from worksync.models.base import ActiveFlagMixin, Base, QRCodeMixin, TimestampMixin, UUIDPrimaryKeyMixin
from worksync.models.user import User, UserRole
from worksync.models.employee import Employee
from worksync.models.operation import Operation
from worksync.models.product import Product, ProductProcess
from worksync.models.line import ProductionLine
from worksync.models.assignment import AssignmentHistory, ProcessAssignment
from worksync.models.attendance import EmployeeAttendance, HourlyProgress
from worksync.models.audit_log import AuditLog

__all__ = [
    "Base",
    "TimestampMixin",
    "ActiveFlagMixin",
    "QRCodeMixin",
    "UUIDPrimaryKeyMixin",
    "User",
    "UserRole",
    "Employee",
    "Operation",
    "Product",
    "ProductProcess",
    "ProductionLine",
    "ProcessAssignment",
    "AssignmentHistory",
    "EmployeeAttendance",
    "HourlyProgress",
    "AuditLog",
]
