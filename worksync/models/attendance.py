"""
Attendance & hourly output models.

Both are plain upsert targets keyed by natural composite keys; the
unique constraints are what make concurrent upserts safe.
"""

import uuid
from datetime import date, time

from sqlalchemy import Date, ForeignKey, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from worksync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class EmployeeAttendance(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "employee_attendance"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    in_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    out_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="present", nullable=False)
    notes: Mapped[str | None] = mapped_column(String(512), nullable=True)

    __table_args__ = (
        UniqueConstraint("employee_id", "attendance_date", name="uq_attendance_employee_date"),
    )

    def __repr__(self) -> str:
        return f"<EmployeeAttendance employee={self.employee_id} date={self.attendance_date}>"


class HourlyProgress(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "line_process_hourly_progress"

    line_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("production_lines.id", ondelete="CASCADE"),
        nullable=False,
    )
    process_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("product_processes.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    hour_slot: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    employee_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "line_id", "process_id", "work_date", "hour_slot",
            name="uq_hourly_progress_slot",
        ),
    )
