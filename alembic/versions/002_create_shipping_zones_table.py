"""Create shipping_zones table.

Revision ID: 002
Revises: 001
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create shipping_zones table."""
    op.create_table(
        "shipping_zones",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("countries", postgresql.ARRAY(sa.String(2)), nullable=False),
        # IDR
        sa.Column("base_rate", sa.Integer(), nullable=False),
        sa.Column("per_kg_rate", sa.Integer(), nullable=False),
        sa.Column("min_days", sa.Integer(), nullable=False),
        sa.Column("max_days", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_shipping_zones_countries",
        "shipping_zones",
        ["countries"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    """Drop shipping_zones table."""
    op.drop_index("ix_shipping_zones_countries", table_name="shipping_zones")
    op.drop_table("shipping_zones")
