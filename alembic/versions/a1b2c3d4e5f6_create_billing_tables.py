"""create_billing_tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-18 00:00:00.000000

Initial schema for the billing engine:
  - `subscription_tiers` country-scoped catalog.
  - `tenants` with lifecycle status and subscription dates.
  - `payment_invoices` ledger with the one-open-invoice-per-tier index.
  - `products` / `orders` storefront tables read by the usage limiter.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic
revision: str = "a1b2c3d4e5f6"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None

OPEN_STATUS_PREDICATE = sa.text("status IN ('PENDING', 'SUBMITTED', 'UNDER_REVIEW')")


def upgrade() -> None:
    # 1. Tier catalog
    op.create_table(
        "subscription_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("country_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("tier_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("plan_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("trial_days", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("overdue_grace_days", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("product_limit", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("order_limit_per_month", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("storage_limit_mb", sa.Integer(), nullable=False, server_default="-1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("country", "name", name="uq_subscription_tiers_country_name"),
    )
    op.create_index(op.f("ix_subscription_tiers_id"), "subscription_tiers", ["id"], unique=False)
    op.create_index(
        "idx_subscription_tiers_country_order", "subscription_tiers", ["country", "tier_order"], unique=False
    )

    # 2. Tenants
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("country", sa.String(2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("current_tier_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="TRIAL"),
        sa.Column("trial_ends_at", sa.DateTime(), nullable=True),
        sa.Column("subscription_starts_at", sa.DateTime(), nullable=True),
        sa.Column("subscription_ends_at", sa.DateTime(), nullable=True),
        sa.Column("next_billing_date", sa.DateTime(), nullable=True),
        sa.Column("overdue_since", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("paused_at", sa.DateTime(), nullable=True),
        sa.Column("storage_used_mb", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["current_tier_id"], ["subscription_tiers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_tenants_id"), "tenants", ["id"], unique=False)
    op.create_index("idx_tenant_status", "tenants", ["status"], unique=False)
    op.create_index("idx_tenant_country", "tenants", ["country"], unique=False)

    # 3. Invoice ledger
    op.create_table(
        "payment_invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("tier_id", sa.Integer(), nullable=False),
        sa.Column("previous_tier_id", sa.Integer(), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=False),
        sa.Column("invoice_type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("billing_period_start", sa.DateTime(), nullable=False),
        sa.Column("billing_period_end", sa.DateTime(), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column("payment_receipt_url", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(), nullable=True),
        sa.Column("submission_date", sa.DateTime(), nullable=True),
        sa.Column("review_date", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by", sa.String(100), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tier_id"], ["subscription_tiers.id"]),
        sa.ForeignKeyConstraint(["previous_tier_id"], ["subscription_tiers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("invoice_number"),
    )
    op.create_index(op.f("ix_payment_invoices_id"), "payment_invoices", ["id"], unique=False)
    op.create_index("idx_payment_invoices_tenant", "payment_invoices", ["tenant_id"], unique=False)
    op.create_index("idx_payment_invoices_status", "payment_invoices", ["status"], unique=False)
    op.create_index("idx_payment_invoices_due_date", "payment_invoices", ["due_date"], unique=False)
    op.create_index(
        "uq_payment_invoices_open_per_tier",
        "payment_invoices",
        ["tenant_id", "tier_id"],
        unique=True,
        postgresql_where=OPEN_STATUS_PREDICATE,
        sqlite_where=OPEN_STATUS_PREDICATE,
    )

    # 4. Storefront tables counted by the usage limiter
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_products_id"), "products", ["id"], unique=False)
    op.create_index("idx_products_tenant", "products", ["tenant_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_orders_id"), "orders", ["id"], unique=False)
    op.create_index("idx_orders_tenant_created", "orders", ["tenant_id", "created_at"], unique=False)


def downgrade() -> None:
    # Reverse in dependency order
    op.drop_index("idx_orders_tenant_created", table_name="orders")
    op.drop_index(op.f("ix_orders_id"), table_name="orders")
    op.drop_table("orders")

    op.drop_index("idx_products_tenant", table_name="products")
    op.drop_index(op.f("ix_products_id"), table_name="products")
    op.drop_table("products")

    op.drop_index("uq_payment_invoices_open_per_tier", table_name="payment_invoices")
    op.drop_index("idx_payment_invoices_due_date", table_name="payment_invoices")
    op.drop_index("idx_payment_invoices_status", table_name="payment_invoices")
    op.drop_index("idx_payment_invoices_tenant", table_name="payment_invoices")
    op.drop_index(op.f("ix_payment_invoices_id"), table_name="payment_invoices")
    op.drop_table("payment_invoices")

    op.drop_index("idx_tenant_country", table_name="tenants")
    op.drop_index("idx_tenant_status", table_name="tenants")
    op.drop_index(op.f("ix_tenants_id"), table_name="tenants")
    op.drop_table("tenants")

    op.drop_index("idx_subscription_tiers_country_order", table_name="subscription_tiers")
    op.drop_index(op.f("ix_subscription_tiers_id"), table_name="subscription_tiers")
    op.drop_table("subscription_tiers")
