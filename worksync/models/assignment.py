from __future__ import annotations

"""
Process assignment models.

`ProcessAssignment` is the live binding of a (line, process, work date)
to the employee currently doing that process, plus the quantity that
employee has completed since the binding started.  At most one row —
and therefore at most one assignee — exists per (line, process, date).

`AssignmentHistory` keeps every closed-out assignee period so output
stays attributable after the process changes hands mid-shift.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from typing import TYPE_CHECKING

from worksync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from worksync.models.employee import Employee


class ProcessAssignment(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "process_assignments"

    line_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("production_lines.id", ondelete="CASCADE"),
        nullable=False,
    )
    process_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("product_processes.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Output of the CURRENT assignee only; reset on every hand-over.
    quantity_completed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    materials_at_link: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ── Relationships ────────────────────────────────────────────────
    employee: Mapped["Employee | None"] = relationship(  # noqa: F821
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("line_id", "process_id", "work_date", name="uq_process_assignment_slot"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProcessAssignment line={self.line_id} process={self.process_id} "
            f"date={self.work_date} employee={self.employee_id}>"
        )


class AssignmentHistory(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "assignment_history"

    line_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("production_lines.id", ondelete="CASCADE"),
        nullable=False,
    )
    process_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("product_processes.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    employee_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity_completed: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    closed_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AssignmentHistory employee={self.employee_id} qty={self.quantity_completed}>"
