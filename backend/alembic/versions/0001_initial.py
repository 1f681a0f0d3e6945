"""create storefront tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "flavors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("allow_out_of_stock_order", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_flavors_slug", "flavors", ["slug"], unique=True)
    op.create_index("ix_flavors_category", "flavors", ["category"])

    op.create_table(
        "flavor_stock",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "flavor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("flavors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("size", sa.String(length=6), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("flavor_id", "size", name="uq_flavor_stock_flavor_size"),
        sa.CheckConstraint("quantity >= 0", name="ck_flavor_stock_quantity_non_negative"),
    )
    op.create_index("ix_flavor_stock_flavor_id", "flavor_stock", ["flavor_id"])

    op.create_table(
        "products",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=160), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_pack", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("flavor_size", sa.String(length=6), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("allow_out_of_stock_order", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_quantity_non_negative"),
    )
    op.create_index("ix_products_slug", "products", ["slug"], unique=True)
    op.create_index("ix_products_category", "products", ["category"])

    op.create_table(
        "stock_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("item_type", sa.String(length=7), nullable=False),
        sa.Column("size", sa.String(length=6), nullable=True),
        sa.Column("old_quantity", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("change_amount", sa.Integer(), nullable=False),
        sa.Column("change_type", sa.String(length=11), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("changed_by", sa.String(length=120), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_stock_history_item_id", "stock_history", ["item_id"])
    op.create_index("ix_stock_history_changed_at", "stock_history", ["changed_at"])

    op.create_table(
        "promo_codes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.String(length=12), nullable=False, server_default="percentage"),
        sa.Column("enhanced_type", sa.String(length=19), nullable=False, server_default="basic"),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("minimum_order_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("maximum_discount", sa.Numeric(10, 2), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("usage_per_customer", sa.Integer(), nullable=True),
        sa.Column("usage_per_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("category_restrictions", sa.Text(), nullable=True),
        sa.Column("product_restrictions", sa.Text(), nullable=True),
        sa.Column("customer_group_restrictions", sa.Text(), nullable=True),
        sa.Column("first_time_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("minimum_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("maximum_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("combination_allowed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("stack_with_pricing_rules", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("buy_x_quantity", sa.Integer(), nullable=True),
        sa.Column("get_y_quantity", sa.Integer(), nullable=True),
        sa.Column("get_y_discount_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("created_by", sa.String(length=120), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("discount_value >= 0", name="ck_promo_codes_discount_value_non_negative"),
        sa.CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="ck_promo_codes_percentage_max",
        ),
    )
    op.create_index("ix_promo_codes_code", "promo_codes", ["code"], unique=True)
    op.create_index("ix_promo_codes_enhanced_type", "promo_codes", ["enhanced_type"])
    op.create_index("ix_promo_codes_is_active", "promo_codes", ["is_active"])

    op.create_table(
        "promo_code_usages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "promo_code_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("promo_codes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("customer_key", sa.String(length=320), nullable=False),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("guest_email", sa.String(length=255), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("promo_code_id", "customer_key", name="uq_promo_code_usages_code_customer"),
    )
    op.create_index("ix_promo_code_usages_promo_code_id", "promo_code_usages", ["promo_code_id"])
    op.create_index("ix_promo_code_usages_customer_id", "promo_code_usages", ["customer_id"])

    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("reference_code", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=9), nullable=False, server_default="confirmed"),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("order_mode", sa.String(length=20), nullable=False, server_default="stock_based"),
        sa.Column(
            "promo_code_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("promo_codes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("promo_code", sa.String(length=40), nullable=True),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EGP"),
        *_timestamps(),
        sa.UniqueConstraint("reference_code", name="uq_orders_reference_code"),
    )
    op.create_index("ix_orders_customer_id", "orders", ["customer_id"])
    op.create_index("ix_orders_customer_email", "orders", ["customer_email"])
    op.create_index("ix_orders_promo_code_id", "orders", ["promo_code_id"])

    op.create_table(
        "order_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("flavor_selections", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "order_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "site_settings",
        sa.Column("setting_key", sa.String(length=80), primary_key=True, nullable=False),
        sa.Column("setting_value", sa.Text(), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("site_settings")
    op.drop_table("order_events")
    op.drop_table("order_items")
    op.drop_index("ix_orders_promo_code_id", table_name="orders")
    op.drop_index("ix_orders_customer_email", table_name="orders")
    op.drop_index("ix_orders_customer_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_promo_code_usages_customer_id", table_name="promo_code_usages")
    op.drop_index("ix_promo_code_usages_promo_code_id", table_name="promo_code_usages")
    op.drop_table("promo_code_usages")
    op.drop_index("ix_promo_codes_is_active", table_name="promo_codes")
    op.drop_index("ix_promo_codes_enhanced_type", table_name="promo_codes")
    op.drop_index("ix_promo_codes_code", table_name="promo_codes")
    op.drop_table("promo_codes")
    op.drop_index("ix_stock_history_changed_at", table_name="stock_history")
    op.drop_index("ix_stock_history_item_id", table_name="stock_history")
    op.drop_table("stock_history")
    op.drop_index("ix_products_category", table_name="products")
    op.drop_index("ix_products_slug", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_flavor_stock_flavor_id", table_name="flavor_stock")
    op.drop_table("flavor_stock")
    op.drop_index("ix_flavors_category", table_name="flavors")
    op.drop_index("ix_flavors_slug", table_name="flavors")
    op.drop_table("flavors")
