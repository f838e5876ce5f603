"""add stores and ratings

Revision ID: 5d2f8a6c1b73
Revises: 3a7c1e9b2d40
Create Date: 2026-10-12

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "5d2f8a6c1b73"
down_revision: Union[str, Sequence[str], None] = "3a7c1e9b2d40"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    def _has_index(table: str, name: str) -> bool:
        return any(ix.get("name") == name for ix in inspect(op.get_bind()).get_indexes(table))

    if "stores" not in existing_tables:
        op.create_table(
            "stores",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(60), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("address", sa.String(400), nullable=False),
            sa.Column("owner_user_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("email", name="uq_stores_email"),
            sa.UniqueConstraint("owner_user_id", name="uq_stores_owner_user_id"),
        )
        existing_tables.add("stores")

    if "stores" in existing_tables:
        for idx_name, cols in (
            ("idx_stores_name", ["name"]),
            ("idx_stores_created_at", ["created_at"]),
        ):
            if not _has_index("stores", idx_name):
                op.create_index(idx_name, "stores", cols)

    if "ratings" not in existing_tables:
        op.create_table(
            "ratings",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("store_id", sa.Integer(), nullable=False),
            sa.Column("rating", sa.Integer(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_id", "store_id", name="uq_ratings_user_store"),
            sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_rating_range"),
        )
        existing_tables.add("ratings")

    if "ratings" in existing_tables and not _has_index("ratings", "idx_ratings_store_id"):
        op.create_index("idx_ratings_store_id", "ratings", ["store_id"])


def downgrade() -> None:
    op.drop_index("idx_ratings_store_id", table_name="ratings")
    op.drop_table("ratings")

    op.drop_index("idx_stores_created_at", table_name="stores")
    op.drop_index("idx_stores_name", table_name="stores")
    op.drop_table("stores")
