"""Orders, promo codes, payments, commissions and fiscalization.

- orders, order_items
- promo_codes, promo_code_redemptions
- payment_transactions, payment_refunds
- commission_calculations
- fiscal_devices, fiscal_shifts, fiscal_receipts, fiscal_queue
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "b7e8c2d1f4a3"
down_revision: Union[str, None] = "a2e4f7c1b8d2"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_DEFAULT = sa.text("current_setting('app.tenant_id', true)::uuid")
MONEY = sa.Numeric(18, 2)

TABLES = [
    "orders",
    "order_items",
    "promo_codes",
    "promo_code_redemptions",
    "payment_transactions",
    "payment_refunds",
    "commission_calculations",
    "fiscal_devices",
    "fiscal_shifts",
    "fiscal_receipts",
    "fiscal_queue",
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


def _jsonb(name: str, empty: str = "'{}'::jsonb") -> sa.Column:
    return sa.Column(name, postgresql.JSONB(), server_default=sa.text(empty), nullable=False)


def upgrade() -> None:
    op.create_table(
        "orders",
        _id(),
        *_tenant(),
        sa.Column("order_number", sa.Text(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=True, index=True),
        sa.Column("machine_id", sa.UUID(), nullable=True, index=True),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False, index=True),
        sa.Column("payment_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_method", sa.Text(), nullable=True),
        sa.Column("subtotal_amount", MONEY, nullable=False),
        sa.Column("discount_amount", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("bonus_amount", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("promo_code", sa.Text(), nullable=True),
        sa.Column("promo_discount", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("points_used", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("confirmed_at"),
        _ts("prepared_at"),
        _ts("completed_at"),
        _ts("cancelled_at"),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        _ts("refunded_at"),
        _ts("paid_at"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_order_number"),
        sa.Index("ix_orders_tenant_created_at", "tenant_id", "created_at"),
    )

    op.create_table(
        "order_items",
        _id(),
        *_tenant(),
        sa.Column("order_id", sa.UUID(), nullable=False, index=True),
        sa.Column("product_id", sa.UUID(), nullable=True),
        sa.Column("product_name", sa.Text(), nullable=False),
        sa.Column("product_sku", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("total_price", MONEY, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "promo_codes",
        _id(),
        *_tenant(),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("value", MONEY, nullable=False),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        _ts("valid_until"),
        sa.Column("max_total_uses", sa.Integer(), nullable=True),
        sa.Column("max_uses_per_user", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("current_total_uses", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("min_order_amount", MONEY, nullable=True),
        sa.Column("max_discount_amount", MONEY, nullable=True),
        sa.Column("created_by_user_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_promo_codes_tenant_code"),
    )

    op.create_table(
        "promo_code_redemptions",
        _id(),
        *_tenant(),
        sa.Column("promo_code_id", sa.UUID(), nullable=False, index=True),
        sa.Column("client_user_id", sa.UUID(), nullable=False, index=True),
        sa.Column("order_id", sa.UUID(), nullable=True),
        sa.Column("discount_applied", MONEY, nullable=False),
        sa.Column("loyalty_points_awarded", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("order_amount", MONEY, nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["promo_code_id"], ["promo_codes.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["client_user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "payment_transactions",
        _id(),
        *_tenant(),
        sa.Column("provider", sa.Text(), nullable=False, index=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("currency", sa.Text(), server_default="UZS", nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False, index=True),
        sa.Column("order_id", sa.Text(), nullable=True, index=True),
        sa.Column("machine_id", sa.UUID(), nullable=True, index=True),
        sa.Column("client_user_id", sa.UUID(), nullable=True),
        sa.Column("provider_tx_id", sa.Text(), nullable=True, index=True),
        sa.Column("raw_request", postgresql.JSONB(), nullable=True),
        sa.Column("raw_response", postgresql.JSONB(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _ts("processed_at"),
        _jsonb("metadata"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["client_user_id"], ["users.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "payment_refunds",
        _id(),
        *_tenant(),
        sa.Column("payment_transaction_id", sa.UUID(), nullable=False, index=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("reason_note", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("provider_refund_id", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("processed_by_user_id", sa.UUID(), nullable=True),
        _ts("processed_at"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["payment_transaction_id"], ["payment_transactions.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "commission_calculations",
        _id(),
        *_tenant(),
        sa.Column("contract_id", sa.UUID(), nullable=False, index=True),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_revenue", MONEY, nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False),
        sa.Column("commission_amount", MONEY, nullable=False),
        sa.Column("commission_type", sa.Text(), nullable=False),
        _jsonb("calculation_details"),
        sa.Column("payment_status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("payment_due_date", sa.Date(), nullable=True),
        _ts("paid_at"),
        sa.Column("payment_transaction_id", sa.UUID(), nullable=True),
        sa.Column("calculated_by_user_id", sa.UUID(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["contract_id"], ["contracts.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "fiscal_devices",
        _id(),
        *_tenant(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("provider", sa.Text(), server_default="multikassa", nullable=False),
        sa.Column("serial_number", sa.Text(), nullable=False),
        sa.Column("terminal_id", sa.Text(), nullable=True),
        _jsonb("credentials"),
        _jsonb("config"),
        sa.Column("sandbox_mode", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("status", sa.Text(), server_default="inactive", nullable=False),
        sa.Column("machine_id", sa.UUID(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["machine_id"], ["machines.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "fiscal_shifts",
        _id(),
        *_tenant(),
        sa.Column("device_id", sa.UUID(), nullable=False, index=True),
        sa.Column("external_shift_id", sa.Text(), nullable=True),
        sa.Column("shift_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="open", nullable=False),
        sa.Column("cashier_name", sa.Text(), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        _ts("closed_at"),
        sa.Column("z_report_number", sa.Text(), nullable=True),
        sa.Column("z_report_url", sa.Text(), nullable=True),
        sa.Column("total_sales", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("total_refunds", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("total_cash", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("total_card", MONEY, server_default=sa.text("0"), nullable=False),
        sa.Column("receipts_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _jsonb("vat_summary", "'[]'::jsonb"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["device_id"], ["fiscal_devices.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "fiscal_receipts",
        _id(),
        *_tenant(),
        sa.Column("device_id", sa.UUID(), nullable=False, index=True),
        sa.Column("shift_id", sa.UUID(), nullable=True, index=True),
        sa.Column("order_id", sa.Text(), nullable=True),
        sa.Column("transaction_id", sa.UUID(), nullable=True),
        sa.Column("type", sa.Text(), server_default="sale", nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False, index=True),
        _jsonb("items", "'[]'::jsonb"),
        _jsonb("payment"),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("vat_total", MONEY, nullable=False),
        sa.Column("external_receipt_id", sa.Text(), nullable=True),
        sa.Column("fiscal_number", sa.Text(), nullable=True),
        sa.Column("fiscal_sign", sa.Text(), nullable=True),
        sa.Column("qr_code_url", sa.Text(), nullable=True),
        sa.Column("receipt_url", sa.Text(), nullable=True),
        _ts("fiscalized_at"),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        _jsonb("metadata"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["device_id"], ["fiscal_devices.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["shift_id"], ["fiscal_shifts.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "fiscal_queue",
        _id(),
        *_tenant(),
        sa.Column("device_id", sa.UUID(), nullable=False, index=True),
        sa.Column("operation", sa.Text(), nullable=False),
        _jsonb("payload"),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False, index=True),
        sa.Column("priority", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("max_retries", sa.Integer(), server_default=sa.text("5"), nullable=False),
        _ts("next_retry_at"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("result", postgresql.JSONB(), nullable=True),
        _ts("processed_at"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["device_id"], ["fiscal_devices.id"], ondelete="CASCADE"),
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
