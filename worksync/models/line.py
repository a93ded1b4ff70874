from __future__ import annotations

"""
ProductionLine model.

A line runs one product at a time (`current_product_id`); the processes a
supervisor can scan on the line are that product's processes.
"""

import uuid

from sqlalchemy import Float, ForeignKey, Integer, String
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
    from worksync.models.product import Product


class ProductionLine(Base, UUIDPrimaryKeyMixin, TimestampMixin, ActiveFlagMixin, QRCodeMixin):
    __tablename__ = "production_lines"

    line_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    line_name: Mapped[str] = mapped_column(String(256), nullable=False)
    hall_location: Mapped[str | None] = mapped_column(String(128), nullable=True)
    current_product_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )
    target_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    efficiency: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # ── Relationships ────────────────────────────────────────────────
    current_product: Mapped["Product | None"] = relationship(  # noqa: F821
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ProductionLine {self.line_code}>"
