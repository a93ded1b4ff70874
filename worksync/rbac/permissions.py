"""
Role → permission map.

Permissions are *codes* naming one action (``"lines:create"``); routes
check codes, never role names.  Roles are fixed (admin, ie, supervisor,
management) so the mapping lives in code instead of RBAC tables.

Governance rules enforced here:
    • Only admin manages users and master data
    • Management is read-only everywhere
    • Hourly output is entered by supervisors, attendance by IE
"""

from worksync.models.user import UserRole

ADMIN = UserRole.ADMIN.value
IE = UserRole.IE.value
SUPERVISOR = UserRole.SUPERVISOR.value
MANAGEMENT = UserRole.MANAGEMENT.value

ALL_ROLES = (ADMIN, IE, SUPERVISOR, MANAGEMENT)

PERMISSIONS: dict[str, tuple[str, ...]] = {
    # User management
    "users:read": (ADMIN,),
    "users:create": (ADMIN,),
    "users:update": (ADMIN,),
    # Master data
    "lines:read": ALL_ROLES,
    "lines:create": (ADMIN,),
    "lines:update": (ADMIN,),
    "employees:read": ALL_ROLES,
    "employees:create": (ADMIN,),
    "employees:update": (ADMIN,),
    "products:read": ALL_ROLES,
    "products:create": (ADMIN,),
    "products:update": (ADMIN,),
    "operations:read": ALL_ROLES,
    "operations:create": (ADMIN,),
    "operations:update": (ADMIN,),
    "processes:read": ALL_ROLES,
    "processes:create": (ADMIN,),
    "processes:update": (ADMIN,),
    # Attendance
    "attendance:read": ALL_ROLES,
    "attendance:update": (ADMIN, IE),
    # Hourly progress
    "progress:read": ALL_ROLES,
    "progress:update": (ADMIN, SUPERVISOR),
    # Assignments
    "assignments:read": (ADMIN, IE, SUPERVISOR),
    "assignments:update": (ADMIN, SUPERVISOR),
    "assignments:manage": (ADMIN, IE),
    # Dashboards and live updates
    "dashboard:read": ALL_ROLES,
}


def has_permission(role: str, code: str) -> bool:
    """Unknown codes are denied."""
    return role in PERMISSIONS.get(code, ())


def permissions_for_role(role: str) -> set[str]:
    return {code for code, roles in PERMISSIONS.items() if role in roles}
