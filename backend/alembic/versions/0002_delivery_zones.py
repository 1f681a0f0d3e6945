"""delivery zones and order zone

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "delivery_zones",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_delivery_zones_slug", "delivery_zones", ["slug"], unique=True)

    op.add_column("orders", sa.Column("zone_id", postgresql.UUID(as_uuid=True), nullable=True))
    op.create_foreign_key(
        "fk_orders_zone_id_delivery_zones", "orders", "delivery_zones", ["zone_id"], ["id"], ondelete="SET NULL"
    )
    op.create_index("ix_orders_zone_id", "orders", ["zone_id"])


def downgrade() -> None:
    op.drop_index("ix_orders_zone_id", table_name="orders")
    op.drop_constraint("fk_orders_zone_id_delivery_zones", "orders", type_="foreignkey")
    op.drop_column("orders", "zone_id")
    op.drop_index("ix_delivery_zones_slug", table_name="delivery_zones")
    op.drop_table("delivery_zones")
