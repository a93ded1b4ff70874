from __future__ import annotations

"""
Product & ProductProcess models.

A product is built by an ordered list of operations.  Each entry of that
list is a `ProductProcess` — the unit a supervisor scans on the line and
the unit an employee gets assigned to.
"""

import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from typing import TYPE_CHECKING

from worksync.models.base import (
    ActiveFlagMixin,
    Base,
    QRCodeMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

if TYPE_CHECKING:
    from worksync.models.operation import Operation


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin, ActiveFlagMixin):
    __tablename__ = "products"

    product_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    product_name: Mapped[str] = mapped_column(String(256), nullable=False)

    # ── Relationships ────────────────────────────────────────────────
    processes: Mapped[list["ProductProcess"]] = relationship(  # noqa: F821
        back_populates="product",
        lazy="selectin",
        order_by="ProductProcess.sequence_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product {self.product_code}>"


class ProductProcess(Base, UUIDPrimaryKeyMixin, TimestampMixin, QRCodeMixin):
    __tablename__ = "product_processes"

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    operation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("operations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Relationships ────────────────────────────────────────────────
    product: Mapped["Product"] = relationship(  # noqa: F821
        back_populates="processes",
        lazy="selectin",
    )
    operation: Mapped["Operation"] = relationship(  # noqa: F821
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("product_id", "sequence_number", name="uq_product_process_sequence"),
    )

    def __repr__(self) -> str:
        return f"<ProductProcess product={self.product_id} seq={self.sequence_number}>"
