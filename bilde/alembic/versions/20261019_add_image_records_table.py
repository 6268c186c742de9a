"""Add image_records table for the metadata index.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "image_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("identifier", sa.String(64), nullable=False),
        sa.Column("variant", sa.String(128), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("original_file_name", sa.String(255), nullable=True),
        sa.Column("content_type", sa.String(128), nullable=False),
        sa.Column("extension", sa.String(16), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("revision", sa.String(32), nullable=False),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("identifier", "variant", name="uq_image_records_identifier_variant"),
    )
    op.create_index("ix_image_records_identifier", "image_records", ["identifier"])
    op.create_index("ix_image_records_file_name", "image_records", ["file_name"])


def downgrade() -> None:
    op.drop_index("ix_image_records_file_name", table_name="image_records")
    op.drop_index("ix_image_records_identifier", table_name="image_records")
    op.drop_table("image_records")
