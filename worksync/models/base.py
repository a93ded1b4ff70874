"""
Declarative base & shared column mixins.

- `UUIDPrimaryKeyMixin`: `id` UUID, generated in Python so the id is known
  before flush (QR payloads and audit rows reference it).
- `TimestampMixin`: UTC `created_at` / `updated_at`.
- `ActiveFlagMixin`: soft on/off switch; inactive rows stay referenced by
  history and attendance but are hidden from scanning and pick lists.
- `QRCodeMixin`: relative path of the row's generated QR PNG, filled in by
  the change feed after the row is inserted.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class ActiveFlagMixin:
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class QRCodeMixin:
    # Relative to settings.QRCODES_DIR
    qr_code_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
