"""Catalog, contracts, machines and three-level inventory.

- products, product_price_history
- contractors, contracts
- machines, machine_slots, machine_error_logs
- warehouse_inventory, operator_inventory, machine_inventory, inventory_movements
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "a2e4f7c1b8d2"
down_revision: Union[str, None] = "9f0b6b3a9a01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_DEFAULT = sa.text("current_setting('app.tenant_id', true)::uuid")
MONEY = sa.Numeric(18, 2)
QUANTITY = sa.Numeric(18, 3)

TABLES = [
    "products",
    "product_price_history",
    "contractors",
    "contracts",
    "machines",
    "machine_slots",
    "machine_error_logs",
    "warehouse_inventory",
    "operator_inventory",
    "machine_inventory",
    "inventory_movements",
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


def _zero(name: str, type_=QUANTITY) -> sa.Column:
    return sa.Column(name, type_, server_default=sa.text("0"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "products",
        _id(),
        *_tenant(),
        sa.Column("sku", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), server_default="other", nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        sa.Column("unit_of_measure", sa.Text(), server_default="pcs", nullable=False),
        sa.Column("is_ingredient", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("barcode", sa.Text(), nullable=True, index=True),
        sa.Column("purchase_price", MONEY, nullable=True),
        sa.Column("selling_price", MONEY, nullable=True),
        sa.Column("currency", sa.Text(), server_default="UZS", nullable=False),
        sa.Column("ikpu_code", sa.Text(), nullable=True),
        sa.Column("package_code", sa.Text(), nullable=True),
        sa.Column("vat_rate", MONEY, server_default=sa.text("12"), nullable=False),
        _zero("min_stock_level"),
        sa.Column("max_stock_level", QUANTITY, nullable=True),
        sa.Column("shelf_life_days", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
    )

    op.create_table(
        "product_price_history",
        _id(),
        *_tenant(),
        sa.Column("product_id", sa.UUID(), nullable=False, index=True),
        sa.Column("purchase_price", MONEY, nullable=True),
        sa.Column("selling_price", MONEY, nullable=True),
        sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("effective_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("changed_by_user_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["changed_by_user_id"], ["users.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "contractors",
        _id(),
        *_tenant(),
        sa.Column("company_name", sa.Text(), nullable=False),
        sa.Column("contact_person", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("inn", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("service_type", sa.Text(), server_default="location_owner", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "contracts",
        _id(),
        *_tenant(),
        sa.Column("contractor_id", sa.UUID(), nullable=False, index=True),
        sa.Column("contract_number", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("commission_type", sa.Text(), server_default="percentage", nullable=False),
        sa.Column("commission_rate", MONEY, nullable=True),
        sa.Column("commission_fixed_amount", MONEY, nullable=True),
        sa.Column("commission_tiers", postgresql.JSONB(), nullable=True),
        sa.Column("commission_hybrid_fixed", MONEY, nullable=True),
        sa.Column("commission_hybrid_rate", MONEY, nullable=True),
        sa.Column("currency", sa.Text(), server_default="UZS", nullable=False),
        sa.Column("payment_term_days", sa.Integer(), server_default=sa.text("30"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["contractor_id"], ["contractors.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("tenant_id", "contract_number", name="uq_contracts_tenant_contract_number"),
    )

    op.create_table(
        "machines",
        _id(),
        *_tenant(),
        sa.Column("machine_number", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("serial_number", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), server_default="coffee", nullable=False),
        sa.Column("status", sa.Text(), server_default="active", nullable=False, index=True),
        sa.Column("connection_status", sa.Text(), server_default="unknown", nullable=False),
        sa.Column("manufacturer", sa.Text(), nullable=True),
        sa.Column("model", sa.Text(), nullable=True),
        sa.Column("firmware_version", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("contract_id", sa.UUID(), nullable=True, index=True),
        sa.Column("last_refill_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_maintenance_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_ping_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("telemetry", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("tenant_id", "machine_number", name="uq_machines_tenant_machine_number"),
    )

    op.create_table(
        "machine_slots",
        _id(),
        *_tenant(),
        sa.Column("machine_id", sa.UUID(), nullable=False, index=True),
        sa.Column("slot_number", sa.Text(), nullable=False),
        sa.Column("product_id", sa.UUID(), nullable=True),
        _zero("capacity", sa.Integer()),
        _zero("current_quantity", sa.Integer()),
        _zero("min_quantity", sa.Integer()),
        sa.Column("price", MONEY, nullable=True),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        _zero("total_sold", sa.Integer()),
        sa.Column("last_refilled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("tenant_id", "machine_id", "slot_number", name="uq_machine_slots_tenant_machine_slot"),
    )

    op.create_table(
        "machine_error_logs",
        _id(),
        *_tenant(),
        sa.Column("machine_id", sa.UUID(), nullable=False, index=True),
        sa.Column("error_code", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("severity", sa.Text(), server_default="error", nullable=False),
        sa.Column("context", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_user_id", sa.UUID(), nullable=True),
        sa.Column("resolution", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "warehouse_inventory",
        _id(),
        *_tenant(),
        sa.Column("product_id", sa.UUID(), nullable=False),
        _zero("current_quantity"),
        _zero("reserved_quantity"),
        _zero("min_stock_level"),
        sa.Column("max_stock_level", QUANTITY, nullable=True),
        _zero("avg_purchase_price", MONEY),
        sa.Column("last_purchase_price", MONEY, nullable=True),
        sa.Column("last_restocked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_in_warehouse", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "product_id", name="uq_warehouse_inventory_tenant_product"),
    )

    op.create_table(
        "operator_inventory",
        _id(),
        *_tenant(),
        sa.Column("operator_id", sa.UUID(), nullable=False, index=True),
        sa.Column("product_id", sa.UUID(), nullable=False),
        _zero("current_quantity"),
        _zero("reserved_quantity"),
        sa.Column("last_received_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["operator_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "tenant_id", "operator_id", "product_id", name="uq_operator_inventory_tenant_operator_product"
        ),
    )

    op.create_table(
        "machine_inventory",
        _id(),
        *_tenant(),
        sa.Column("machine_id", sa.UUID(), nullable=False, index=True),
        sa.Column("product_id", sa.UUID(), nullable=False),
        sa.Column("slot_number", sa.Text(), nullable=True),
        _zero("current_quantity"),
        _zero("min_stock_level"),
        _zero("max_capacity"),
        _zero("total_sold"),
        sa.Column("last_refilled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "tenant_id", "machine_id", "product_id", "slot_number",
            name="uq_machine_inventory_tenant_machine_product_slot",
        ),
    )

    op.create_table(
        "inventory_movements",
        _id(),
        *_tenant(),
        sa.Column("movement_type", sa.Text(), nullable=False, index=True),
        sa.Column("product_id", sa.UUID(), nullable=False, index=True),
        sa.Column("quantity", QUANTITY, nullable=False),
        sa.Column("operator_id", sa.UUID(), nullable=True),
        sa.Column("machine_id", sa.UUID(), nullable=True),
        sa.Column("performed_by_user_id", sa.UUID(), nullable=True),
        sa.Column("operation_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("unit_cost", MONEY, nullable=True),
        sa.Column("total_cost", MONEY, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["operator_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["performed_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.Index("ix_inventory_movements_tenant_operation_date", "tenant_id", "operation_date"),
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
