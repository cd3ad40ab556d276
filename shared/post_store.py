from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine

from shared.db import db_session
from shared.models import audit_log, posts, users

SYSTEM_ACTOR = "system"


def now_ts() -> datetime:
    return datetime.now(timezone.utc)


def _as_dict(row: Any) -> dict[str, Any] | None:
    if row is None:
        return None
    return dict(row._mapping)


class PostStore:
    """Durable post rows plus the audit trail written alongside them.

    Every method opens its own short transaction, so each per-post mutation
    is a single committed statement.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_post(
        self,
        *,
        slug: str,
        text: str,
        summary: str | None = None,
        title: str | None = None,
        source: str | None = None,
        ext_id: str | None = None,
        tag: str | None = None,
        link: str | None = None,
        client_key: str | None = None,
    ) -> int:
        now = now_ts()
        with db_session(self.engine) as connection:
            result = connection.execute(
                insert(posts).values(
                    slug=slug,
                    title=title,
                    text=text,
                    summary=summary,
                    status="draft",
                    source=source,
                    ext_id=ext_id,
                    tag=tag,
                    link=link,
                    client_key=client_key,
                    created_at=now,
                    updated_at=now,
                )
            )
            return int(result.inserted_primary_key[0])

    def get_post(self, post_id: int) -> dict[str, Any] | None:
        with db_session(self.engine) as connection:
            row = connection.execute(select(posts).where(posts.c.id == post_id)).fetchone()
        return _as_dict(row)

    def slug_exists(self, slug: str) -> bool:
        with db_session(self.engine) as connection:
            found = connection.execute(select(posts.c.id).where(posts.c.slug == slug)).scalar_one_or_none()
        return found is not None

    def select_pending_moderation(self, limit: int) -> list[dict[str, Any]]:
        query = (
            select(posts.c.id, posts.c.text, posts.c.client_key)
            .where(
                posts.c.publish_at.is_not(None),
                posts.c.moderation_checked_at.is_(None),
                posts.c.status == "draft",
            )
            .order_by(posts.c.publish_at, posts.c.id)
            .limit(limit)
        )
        with db_session(self.engine) as connection:
            return [dict(row._mapping) for row in connection.execute(query)]

    def select_pending_publish(self, limit: int, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or now_ts()
        query = (
            select(posts.c.id)
            .where(
                posts.c.status == "draft",
                posts.c.publish_at.is_not(None),
                posts.c.publish_at <= now,
                posts.c.moderation_checked_at.is_not(None),
            )
            .order_by(posts.c.publish_at, posts.c.id)
            .limit(limit)
        )
        with db_session(self.engine) as connection:
            return [dict(row._mapping) for row in connection.execute(query)]

    def update_post_fields(self, post_id: int, fields: dict[str, Any], *, touch: bool = True) -> bool:
        if not fields:
            return False
        payload = dict(fields)
        if touch:
            payload.setdefault("updated_at", now_ts())
        with db_session(self.engine) as connection:
            result = connection.execute(update(posts).where(posts.c.id == post_id).values(**payload))
        return result.rowcount > 0

    def mark_published(self, post_id: int, now: datetime | None = None) -> bool:
        now = now or now_ts()
        with db_session(self.engine) as connection:
            result = connection.execute(
                update(posts)
                .where(posts.c.id == post_id)
                .values(
                    status="published",
                    pub_date=func.coalesce(posts.c.pub_date, now),
                    updated_at=now,
                )
            )
        return result.rowcount > 0

    def unpublish(self, post_id: int) -> bool:
        return self.update_post_fields(post_id, {"status": "draft"})

    def list_published(self, limit: int) -> list[dict[str, Any]]:
        query = (
            select(posts)
            .where(posts.c.status == "published")
            .order_by(posts.c.pub_date.desc(), posts.c.id.desc())
            .limit(limit)
        )
        with db_session(self.engine) as connection:
            return [dict(row._mapping) for row in connection.execute(query)]

    def log_audit(
        self,
        post_id: int | None,
        actor: str,
        action: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        with db_session(self.engine) as connection:
            connection.execute(
                insert(audit_log).values(
                    post_id=post_id,
                    actor=actor,
                    action=action,
                    payload=payload,
                    created_at=now_ts(),
                )
            )

    def list_audit(
        self,
        *,
        post_id: int | None = None,
        action: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        query = select(audit_log)
        if post_id is not None:
            query = query.where(audit_log.c.post_id == post_id)
        if action:
            query = query.where(audit_log.c.action == action)
        query = query.order_by(audit_log.c.id.desc()).limit(limit).offset(offset)
        with db_session(self.engine) as connection:
            return [dict(row._mapping) for row in connection.execute(query)]


class UserStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(
        self,
        email: str,
        *,
        role: str = "editor",
        client_key: str | None = None,
        auto_publish_enabled: bool = False,
    ) -> int:
        with db_session(self.engine) as connection:
            result = connection.execute(
                insert(users).values(
                    email=email,
                    role=role,
                    client_key=client_key or None,
                    auto_publish_enabled=auto_publish_enabled,
                    created_at=now_ts(),
                )
            )
            return int(result.inserted_primary_key[0])

    def get_user_by_id(self, user_id: int) -> dict[str, Any] | None:
        with db_session(self.engine) as connection:
            row = connection.execute(select(users).where(users.c.id == user_id)).fetchone()
        return _as_dict(row)

    def get_user_by_client_key(self, client_key: str) -> dict[str, Any] | None:
        if not client_key:
            return None
        with db_session(self.engine) as connection:
            row = connection.execute(
                select(users.c.id, users.c.email, users.c.auto_publish_enabled).where(
                    users.c.client_key == client_key
                )
            ).fetchone()
        return _as_dict(row)

    def set_auto_publish_enabled(self, user_id: int, enabled: bool) -> bool:
        with db_session(self.engine) as connection:
            result = connection.execute(
                update(users).where(users.c.id == user_id).values(auto_publish_enabled=enabled)
            )
        return result.rowcount > 0
