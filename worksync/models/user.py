"""
User model — dashboard login accounts.

Shop-floor employees are NOT users: they never log in and are tracked
in `employees`.  A user's single role decides which dashboard and
which permissions they get (see `worksync.rbac.permissions`).
"""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from worksync.models.base import ActiveFlagMixin, Base, TimestampMixin, UUIDPrimaryKeyMixin


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    IE = "ie"
    SUPERVISOR = "supervisor"
    MANAGEMENT = "management"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin, ActiveFlagMixin):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value})>"
