"""Maintenance workflow tables.

- maintenance_schedules
- maintenance_requests
- maintenance_parts
- maintenance_work_logs
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "c5d2e8f1a7b3"
down_revision: Union[str, None] = "b7e8c2d1f4a3"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_DEFAULT = sa.text("current_setting('app.tenant_id', true)::uuid")
MONEY = sa.Numeric(18, 2)
QUANTITY = sa.Numeric(18, 3)

TABLES = [
    "maintenance_schedules",
    "maintenance_requests",
    "maintenance_parts",
    "maintenance_work_logs",
]


def _id() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()"))


def _tenant() -> list:
    return [
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT, index=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "maintenance_schedules",
        _id(),
        *_tenant(),
        sa.Column("machine_id", sa.UUID(), nullable=False, index=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("maintenance_type", sa.Text(), nullable=False),
        sa.Column("frequency_type", sa.Text(), nullable=False),
        sa.Column("frequency_value", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("next_due_date", sa.Date(), nullable=True),
        sa.Column("last_executed_date", sa.Date(), nullable=True),
        sa.Column("times_executed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("auto_create_request", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", MONEY, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "maintenance_requests",
        _id(),
        *_tenant(),
        sa.Column("request_number", sa.Text(), nullable=False),
        sa.Column("machine_id", sa.UUID(), nullable=False, index=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("maintenance_type", sa.Text(), nullable=False),
        sa.Column("priority", sa.Text(), server_default="normal", nullable=False),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False, index=True),
        sa.Column("created_by_user_id", sa.UUID(), nullable=True),
        sa.Column("assigned_technician_id", sa.UUID(), nullable=True),
        _ts("scheduled_date"),
        sa.Column("approved_by_user_id", sa.UUID(), nullable=True),
        _ts("approved_at"),
        _ts("started_at"),
        _ts("completed_at"),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        _ts("downtime_start"),
        _ts("downtime_end"),
        sa.Column("downtime_minutes", sa.Integer(), nullable=True),
        sa.Column("estimated_cost", MONEY, nullable=True),
        sa.Column("parts_cost", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("labor_cost", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("total_cost", MONEY, server_default=sa.text("0"), nullable=False),
        _ts("sla_due_date"),
        sa.Column("sla_breached", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("completion_notes", sa.Text(), nullable=True),
        sa.Column("root_cause", sa.Text(), nullable=True),
        sa.Column("actions_taken", sa.Text(), nullable=True),
        sa.Column("recommendations", sa.Text(), nullable=True),
        sa.Column("verified_by_user_id", sa.UUID(), nullable=True),
        _ts("verified_at"),
        sa.Column("maintenance_schedule_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_technician_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["maintenance_schedule_id"], ["maintenance_schedules.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("tenant_id", "request_number", name="uq_maintenance_requests_tenant_request_number"),
    )

    op.create_table(
        "maintenance_parts",
        _id(),
        *_tenant(),
        sa.Column("maintenance_request_id", sa.UUID(), nullable=False, index=True),
        sa.Column("product_id", sa.UUID(), nullable=True),
        sa.Column("part_name", sa.Text(), nullable=False),
        sa.Column("part_number", sa.Text(), nullable=True),
        sa.Column("quantity_needed", QUANTITY, nullable=False),
        sa.Column("quantity_used", QUANTITY, nullable=True),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("total_price", MONEY, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["maintenance_request_id"], ["maintenance_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "maintenance_work_logs",
        _id(),
        *_tenant(),
        sa.Column("maintenance_request_id", sa.UUID(), nullable=False, index=True),
        sa.Column("technician_id", sa.UUID(), nullable=True),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Text(), nullable=False),
        sa.Column("end_time", sa.Text(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("hourly_rate", MONEY, nullable=True),
        sa.Column("labor_cost", MONEY, nullable=False),
        sa.Column("is_billable", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["maintenance_request_id"], ["maintenance_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["technician_id"], ["users.id"], ondelete="SET NULL"),
    )

    for tbl in TABLES:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = current_setting('app.tenant_id', true)::uuid)
            WITH CHECK (tenant_id = current_setting('app.tenant_id', true)::uuid);
            """
        )


def downgrade() -> None:
    for tbl in TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")
    for tbl in reversed(TABLES):
        op.drop_table(tbl)
