"""
Operation model — a reusable sewing / assembly step (e.g. "Collar attach").

Products reference operations through `product_processes`, which fixes
their order on the line.
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


class Operation(Base, UUIDPrimaryKeyMixin, TimestampMixin, ActiveFlagMixin, QRCodeMixin):
    __tablename__ = "operations"

    operation_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    operation_name: Mapped[str] = mapped_column(String(256), nullable=False)
    operation_category: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return f"<Operation {self.operation_code}>"
