"""Create orders, order_items and order_status_history tables.

Revision ID: 003
Revises: 002
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create orders, order_items and order_status_history tables."""
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(32), nullable=False, unique=True, index=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        # Totals
        sa.Column("subtotal", sa.Integer, nullable=False),
        sa.Column("discount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tax", sa.Integer, nullable=False),
        sa.Column("shipping_cost", sa.Integer, nullable=False),
        sa.Column("total", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="IDR"),
        sa.Column("exchange_rate", sa.Numeric(12, 4), nullable=True),
        # Payment
        sa.Column("payment_method", sa.String(30), nullable=True),
        sa.Column("payment_provider", sa.String(30), nullable=True),
        sa.Column("payment_id", sa.String(100), nullable=True),
        sa.Column("invoice_number", sa.String(30), nullable=True, unique=True),
        # Shipping
        sa.Column("shipping_type", sa.String(20), nullable=False),
        sa.Column("shipping_method", sa.String(255), nullable=False),
        sa.Column("carrier_courier", sa.String(50), nullable=True),
        sa.Column("carrier_service", sa.String(50), nullable=True),
        sa.Column("carrier_order_id", sa.String(100), nullable=True, unique=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column(
            "shipping_zone_id",
            sa.String(36),
            sa.ForeignKey("shipping_zones.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("recipient_name", sa.String(100), nullable=False),
        sa.Column("recipient_phone", sa.String(20), nullable=False),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("shipping_address", sa.Text, nullable=False),
        sa.Column("shipping_city", sa.String(100), nullable=False),
        sa.Column("shipping_province", sa.String(100), nullable=True),
        sa.Column("shipping_country", sa.String(2), nullable=False),
        sa.Column("shipping_postal_code", sa.String(10), nullable=False),
        sa.Column("shipping_notes", sa.Text, nullable=True),
        sa.Column("parcel_weight_grams", sa.Integer, nullable=False, server_default="0"),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("canceled_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Sweep queries
    op.create_index("ix_orders_status_created_at", "orders", ["status", "created_at"])
    op.create_index("ix_orders_status_delivered_at", "orders", ["status", "delivered_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "product_id", sa.String(36), sa.ForeignKey("products.id"), nullable=False, index=True
        ),
        sa.Column(
            "variant_id",
            sa.String(36),
            sa.ForeignKey("product_variants.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("line_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("variant_name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("unit_price", sa.Integer, nullable=False),
        sa.Column("unit_discount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("line_subtotal", sa.Integer, nullable=False),
        sa.Column("line_discount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit_weight_grams", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Create order status history table for audit trail
    op.create_table(
        "order_status_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("actor", sa.String(100), nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    """Drop orders, order_items, and order_status_history tables."""
    op.drop_table("order_status_history")
    op.drop_table("order_items")
    op.drop_index("ix_orders_status_delivered_at", table_name="orders")
    op.drop_index("ix_orders_status_created_at", table_name="orders")
    op.drop_table("orders")
