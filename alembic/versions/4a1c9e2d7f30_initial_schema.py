"""initial schema and data_change notify triggers

Revision ID: 4a1c9e2d7f30
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4a1c9e2d7f30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Tables whose row changes are pushed to dashboards over SSE
NOTIFY_TABLES = (
    "production_lines",
    "employees",
    "operations",
    "products",
    "product_processes",
    "process_assignments",
    "employee_attendance",
    "line_process_hourly_progress",
)

NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_data_change() RETURNS trigger AS $$
DECLARE
    row_id text;
BEGIN
    IF TG_OP = 'DELETE' THEN
        row_id := OLD.id::text;
    ELSE
        row_id := NEW.id::text;
    END IF;
    PERFORM pg_notify(
        'data_change',
        json_build_object('entity', TG_TABLE_NAME, 'action', TG_OP, 'id', row_id)::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql;
"""


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create all tables, then install the notify triggers."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("password_hash", sa.String(length=512), nullable=False),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column(
            "role",
            sa.Enum("admin", "ie", "supervisor", "management", name="user_role"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("emp_code", sa.String(length=32), nullable=False),
        sa.Column("emp_name", sa.String(length=256), nullable=False),
        sa.Column("designation", sa.String(length=128), nullable=True),
        sa.Column("qr_code_path", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_employees_emp_code", "employees", ["emp_code"], unique=True)

    op.create_table(
        "operations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("operation_code", sa.String(length=32), nullable=False),
        sa.Column("operation_name", sa.String(length=256), nullable=False),
        sa.Column("operation_category", sa.String(length=128), nullable=True),
        sa.Column("qr_code_path", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_operations_operation_code", "operations", ["operation_code"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("product_code", sa.String(length=32), nullable=False),
        sa.Column("product_name", sa.String(length=256), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_products_product_code", "products", ["product_code"], unique=True)

    op.create_table(
        "product_processes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("operation_id", sa.Uuid(), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("qr_code_path", sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["operation_id"], ["operations.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "sequence_number", name="uq_product_process_sequence"),
    )
    op.create_index("ix_product_processes_product_id", "product_processes", ["product_id"])

    op.create_table(
        "production_lines",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("line_code", sa.String(length=32), nullable=False),
        sa.Column("line_name", sa.String(length=256), nullable=False),
        sa.Column("hall_location", sa.String(length=128), nullable=True),
        sa.Column("current_product_id", sa.Uuid(), nullable=True),
        sa.Column("target_units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("efficiency", sa.Float(), nullable=False, server_default="0"),
        sa.Column("qr_code_path", sa.String(length=512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["current_product_id"], ["products.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_production_lines_line_code", "production_lines", ["line_code"], unique=True)

    op.create_table(
        "process_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("line_id", sa.Uuid(), nullable=False),
        sa.Column("process_id", sa.Uuid(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=True),
        sa.Column("quantity_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("materials_at_link", sa.Integer(), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["line_id"], ["production_lines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["process_id"], ["product_processes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("line_id", "process_id", "work_date", name="uq_process_assignment_slot"),
    )
    op.create_index("ix_process_assignments_employee_id", "process_assignments", ["employee_id"])

    op.create_table(
        "assignment_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("line_id", sa.Uuid(), nullable=False),
        sa.Column("process_id", sa.Uuid(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("quantity_completed", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_by", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["line_id"], ["production_lines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["process_id"], ["product_processes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["closed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_assignment_history_work_date", "assignment_history", ["work_date"])
    op.create_index("ix_assignment_history_employee_id", "assignment_history", ["employee_id"])

    op.create_table(
        "employee_attendance",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("in_time", sa.Time(), nullable=True),
        sa.Column("out_time", sa.Time(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="present"),
        sa.Column("notes", sa.String(length=512), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "attendance_date", name="uq_attendance_employee_date"),
    )
    op.create_index("ix_employee_attendance_attendance_date", "employee_attendance", ["attendance_date"])

    op.create_table(
        "line_process_hourly_progress",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("line_id", sa.Uuid(), nullable=False),
        sa.Column("process_id", sa.Uuid(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("hour_slot", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("employee_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["line_id"], ["production_lines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["process_id"], ["product_processes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "line_id", "process_id", "work_date", "hour_slot",
            name="uq_hourly_progress_slot",
        ),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("table_name", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=64), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.Uuid(), nullable=True),
        sa.Column("reason", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("session_ref", sa.String(length=64), nullable=True),
        sa.Column("request_path", sa.String(length=512), nullable=True),
        sa.Column("http_method", sa.String(length=16), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_table_name", "audit_logs", ["table_name"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_changed_by", "audit_logs", ["changed_by"])
    op.create_index("ix_audit_logs_changed_at", "audit_logs", ["changed_at"])

    # ── Change feed ──────────────────────────────────────────────────
    op.execute(NOTIFY_FUNCTION)
    for table in NOTIFY_TABLES:
        op.execute(
            f"CREATE TRIGGER {table}_notify_data_change "
            f"AFTER INSERT OR UPDATE OR DELETE ON {table} "
            f"FOR EACH ROW EXECUTE FUNCTION notify_data_change()"
        )


def downgrade() -> None:
    """Drop triggers, then every table in reverse dependency order."""
    for table in NOTIFY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_notify_data_change ON {table}")
    op.execute("DROP FUNCTION IF EXISTS notify_data_change()")

    op.drop_table("audit_logs")
    op.drop_table("line_process_hourly_progress")
    op.drop_table("employee_attendance")
    op.drop_table("assignment_history")
    op.drop_table("process_assignments")
    op.drop_table("production_lines")
    op.drop_table("product_processes")
    op.drop_table("products")
    op.drop_table("operations")
    op.drop_table("employees")
    op.drop_table("users")
    sa.Enum(name="user_role").drop(op.get_bind(), checkfirst=True)
