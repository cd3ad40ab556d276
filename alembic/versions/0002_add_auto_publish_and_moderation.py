"""add auto-publish scheduling, moderation fields and warning status

Revision ID: 0002
Revises: 0001
Create Date: 2026-01-18 00:10:00.000000

"""
from alembic import op
import sqlalchemy as sa


revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("posts") as batch_op:
        batch_op.add_column(sa.Column("publish_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("moderation_checked_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("moderation_reason", sa.Text(), nullable=True))
        batch_op.create_check_constraint(
            "ck_posts_status",
            "status IN ('draft', 'published', 'archived', 'warning')",
        )
    op.create_index("ix_posts_publish_at", "posts", ["publish_at"])

    with op.batch_alter_table("users") as batch_op:
        batch_op.add_column(
            sa.Column("auto_publish_enabled", sa.Boolean(), nullable=False, server_default=sa.false())
        )


def downgrade() -> None:
    with op.batch_alter_table("users") as batch_op:
        batch_op.drop_column("auto_publish_enabled")

    op.drop_index("ix_posts_publish_at", table_name="posts")
    op.execute("UPDATE posts SET status = 'draft' WHERE status = 'warning'")
    with op.batch_alter_table("posts") as batch_op:
        if op.get_bind().dialect.name != "sqlite":
            batch_op.drop_constraint("ck_posts_status", type_="check")
        batch_op.drop_column("moderation_reason")
        batch_op.drop_column("moderation_checked_at")
        batch_op.drop_column("publish_at")
