"""
Employee model — shop-floor workers identified by a badge QR code.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from worksync.models.base import (
    ActiveFlagMixin,
    Base,
    QRCodeMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class Employee(Base, UUIDPrimaryKeyMixin, TimestampMixin, ActiveFlagMixin, QRCodeMixin):
    __tablename__ = "employees"

    emp_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    emp_name: Mapped[str] = mapped_column(String(256), nullable=False)
    designation: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<Employee {self.emp_code}>"
