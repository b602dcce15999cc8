from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_payment_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True, server_default="producer"),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("store_name", sa.String(), nullable=False, server_default="Loja"),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("plan", sa.String(length=20), nullable=False, server_default="trial"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("mp_connected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("mp_user_id", sa.String(length=64), nullable=True),
        sa.Column("mp_access_token", sa.Text(), nullable=True),
        sa.Column("mp_refresh_token", sa.Text(), nullable=True),
        sa.Column("mp_token_expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_tenants_user_id", "tenants", ["user_id"])
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("public_id", sa.String(length=32), nullable=False),
        sa.Column("display_number", sa.String(length=40), nullable=True),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("customer_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("customer_email", sa.String(length=200), nullable=True),
        sa.Column("customer_phone", sa.String(length=30), nullable=True),
        sa.Column("payment_method", sa.String(length=30), nullable=False, server_default="pix"),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("payment_provider", sa.String(length=30), nullable=True),
        sa.Column("payment_id", sa.String(length=64), nullable=True),
        sa.Column("payment_status", sa.String(length=20), nullable=True),
        sa.Column("pix_qr_code", sa.Text(), nullable=True),
        sa.Column("pix_qr_code_base64", sa.Text(), nullable=True),
        sa.Column("pix_ticket_url", sa.Text(), nullable=True),
        sa.Column("pix_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )
    op.create_index("ix_orders_public_id", "orders", ["public_id"], unique=True)
    op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"])
    op.create_index("ix_orders_payment_id", "orders", ["payment_id"])


def downgrade() -> None:
    op.drop_index("ix_orders_payment_id", table_name="orders")
    op.drop_index("ix_orders_tenant_id", table_name="orders")
    op.drop_index("ix_orders_public_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_tenants_slug", table_name="tenants")
    op.drop_index("ix_tenants_user_id", table_name="tenants")
    op.drop_table("tenants")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
