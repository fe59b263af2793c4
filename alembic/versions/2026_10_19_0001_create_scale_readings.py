"""create scale_readings table with indexes

Revision ID: 2026_10_19_0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "2026_10_19_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "scale_readings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("scale_id", sa.String(length=100), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("item_type", sa.String(length=100), nullable=False),
        sa.Column("weight_kg", sa.Float(), nullable=False),
        sa.Column("item_count", sa.Integer(), nullable=False),
        sa.Column("item_weight", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("raw_payload", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_scale_readings_scale_id", "scale_readings", ["scale_id"], unique=False
    )
    op.create_index(
        "ix_scale_readings_timestamp", "scale_readings", ["timestamp"], unique=False
    )
    op.create_index(
        "ix_scale_readings_received_at", "scale_readings", ["received_at"], unique=False
    )
    op.create_index(
        "ix_scale_readings_scale_ts",
        "scale_readings",
        ["scale_id", "timestamp"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_scale_readings_scale_ts", table_name="scale_readings")
    op.drop_index("ix_scale_readings_received_at", table_name="scale_readings")
    op.drop_index("ix_scale_readings_timestamp", table_name="scale_readings")
    op.drop_index("ix_scale_readings_scale_id", table_name="scale_readings")
    op.drop_table("scale_readings")
