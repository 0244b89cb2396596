"""Initial schema: flyers and price_history.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "flyers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("source_url", sa.Text, nullable=True),
        sa.Column("page_count", sa.Integer, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extraction_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("products_extracted", sa.Integer, nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from", name="flyers_date_check",
        ),
    )
    op.create_index("idx_flyers_store", "flyers", ["store_id"])
    op.create_index("idx_flyers_status_validity", "flyers", ["status", "valid_from"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("product_master_id", sa.Integer, nullable=False),
        sa.Column("store_id", sa.Integer, nullable=True),
        sa.Column("flyer_id", sa.Integer, nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("original_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default="EUR"),
        sa.Column("is_on_sale", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("source", sa.String(50), nullable=False, server_default="flyer"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="price_history_price_check"),
        sa.CheckConstraint(
            "original_price IS NULL OR original_price >= 0",
            name="price_history_original_price_check",
        ),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="price_history_valid_dates_check",
        ),
    )
    op.create_index(
        "idx_price_history_current", "price_history",
        ["product_master_id", "store_id", "valid_from", "valid_to"],
    )
    # One open window per (product master, store); NULL store folded to 0
    op.create_index(
        "uq_price_history_open_key", "price_history",
        ["product_master_id", sa.text("coalesce(store_id, 0)")],
        unique=True,
        postgresql_where=sa.text("valid_to IS NULL"),
        sqlite_where=sa.text("valid_to IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("uq_price_history_open_key", table_name="price_history")
    op.drop_index("idx_price_history_current", table_name="price_history")
    op.drop_table("price_history")
    op.drop_index("idx_flyers_status_validity", table_name="flyers")
    op.drop_index("idx_flyers_store", table_name="flyers")
    op.drop_table("flyers")
