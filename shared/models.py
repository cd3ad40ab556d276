from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.sql import expression, func

POST_STATUSES = ("draft", "published", "archived", "warning")

metadata = MetaData()

posts = Table(
    "posts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("slug", String, nullable=False, unique=True),
    Column("title", Text, nullable=True),
    Column("text", Text, nullable=False),
    Column("summary", Text, nullable=True),
    Column("status", String, nullable=False, server_default="draft"),
    Column("version", Integer, nullable=False, server_default="1"),
    Column("pub_date", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column("source", String, nullable=True),
    Column("ext_id", String, nullable=True),
    Column("tag", String, nullable=True),
    Column("link", Text, nullable=True),
    Column("client_key", String, nullable=True),
    Column("publish_at", DateTime(timezone=True), nullable=True),
    Column("moderation_checked_at", DateTime(timezone=True), nullable=True),
    Column("moderation_reason", Text, nullable=True),
    CheckConstraint(
        "status IN ('draft', 'published', 'archived', 'warning')",
        name="ck_posts_status",
    ),
    Index("ix_posts_status", "status"),
    Index("ix_posts_pub_date", "pub_date"),
    Index("ix_posts_client_key", "client_key"),
    Index("ix_posts_publish_at", "publish_at"),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String, nullable=False, unique=True),
    Column("role", String, nullable=False, server_default="editor"),
    Column("client_key", String, nullable=True, unique=True),
    Column("auto_publish_enabled", Boolean, nullable=False, server_default=expression.false()),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

audit_log = Table(
    "audit_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("post_id", Integer, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True),
    Column("actor", String, nullable=False),
    Column("action", String, nullable=False),
    Column("payload", JSON, nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index("ix_audit_log_post_id", "post_id"),
    Index("ix_audit_log_action", "action"),
)
