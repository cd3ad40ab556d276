from __future__ import annotations

import hmac
import logging
from datetime import timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from shared.auto_publish import AutoPublishWorker
from shared.db import db_session, get_engine
from shared.feed import FeedCache, build_rss
from shared.logging import configure_logging
from shared.notifications import build_rejection_notifier
from shared.openai_client import OpenAIModerator
from shared.post_store import PostStore, UserStore
from shared.prompts import PromptStore
from shared.settings import settings

logger = logging.getLogger("publisher")
app = FastAPI()


def _posts() -> PostStore:
    return PostStore(get_engine())


def _users() -> UserStore:
    return UserStore(get_engine())


def _prompt_store() -> PromptStore:
    return PromptStore(settings.moderation_prompt_path)


def _build_feed() -> FeedCache:
    posts = _posts()
    return FeedCache(
        lambda: build_rss(
            posts.list_published(settings.rss_feed_size),
            base_url=settings.base_url,
            title=settings.rss_feed_title,
        )
    )


def _build_worker(feed: FeedCache) -> AutoPublishWorker:
    return AutoPublishWorker(
        _posts(),
        _users(),
        OpenAIModerator(_prompt_store()),
        build_rejection_notifier(settings),
        feed_invalidate=feed.invalidate,
        moderation_batch_size=settings.moderation_batch_size,
        publish_batch_size=settings.publish_batch_size,
    )


def _require_admin(x_admin_token: str | None) -> str:
    if not settings.admin_token:
        raise HTTPException(status_code=503, detail="admin token not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin token")
    return "admin"


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except Exception:  # noqa: BLE001 - any unparsable body is a 400
        body = None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid request body")
    return body


@app.on_event("startup")
async def startup() -> None:
    configure_logging()
    feed = _build_feed()
    worker = _build_worker(feed)
    app.state.feed = feed
    app.state.worker = worker
    if settings.auto_publish_enabled:
        worker.start(settings.auto_publish_interval_seconds)
    else:
        logger.info("auto_publish_worker_disabled")
    logger.info("Publisher service starting up")


@app.on_event("shutdown")
async def shutdown() -> None:
    worker: AutoPublishWorker | None = getattr(app.state, "worker", None)
    if worker is not None:
        worker.stop()
        await worker.join()
    logger.info("Publisher service shut down")


@app.get("/healthz")
def healthz() -> JSONResponse:
    checks = {"database": False, "auto_publish_worker": False}
    status = "ok"
    try:
        with db_session() as connection:
            connection.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:  # noqa: BLE001 - reported as unhealthy
        status = "error"
        logger.error("healthz_database_failed", extra={"error": str(exc)})
    worker: AutoPublishWorker | None = getattr(app.state, "worker", None)
    checks["auto_publish_worker"] = bool(worker and worker.running)
    return JSONResponse(status_code=200 if status == "ok" else 503, content={"status": status, "checks": checks})


@app.get("/rss.xml")
def rss(
    request: Request,
    if_none_match: str | None = Header(default=None),
    if_modified_since: str | None = Header(default=None),
) -> Response:
    snapshot = request.app.state.feed.get()
    last_modified = format_datetime(snapshot.last_modified, usegmt=True)
    headers = {
        "ETag": snapshot.etag,
        "Last-Modified": last_modified,
        "Cache-Control": "public, max-age=60",
    }
    if if_none_match is not None:
        if if_none_match == snapshot.etag:
            return Response(status_code=304, headers=headers)
    elif if_modified_since:
        try:
            since = parsedate_to_datetime(if_modified_since)
        except (TypeError, ValueError):
            since = None
        if since is not None and since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        if since is not None and since >= snapshot.last_modified:
            return Response(status_code=304, headers=headers)
    return Response(
        content=snapshot.xml,
        media_type="application/rss+xml; charset=utf-8",
        headers=headers,
    )


@app.get("/admin/users/{user_id}/auto-publish")
def get_auto_publish(user_id: int, x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    _require_admin(x_admin_token)
    user = _users().get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user_id": user_id, "enabled": bool(user["auto_publish_enabled"])}


def _apply_auto_publish(user_id: int, enabled: bool, actor: str) -> bool:
    users = _users()
    user = users.get_user_by_id(user_id)
    if not user:
        return False
    users.set_auto_publish_enabled(user_id, enabled)
    _posts().log_audit(
        None,
        actor,
        "auto_publish_set_by_admin",
        {"target_user_id": user_id, "target_email": user["email"], "enabled": enabled},
    )
    return True


@app.post("/admin/users/{user_id}/auto-publish")
async def set_auto_publish(
    user_id: int,
    request: Request,
    x_admin_token: str | None = Header(default=None),
) -> dict[str, Any]:
    actor = _require_admin(x_admin_token)
    body = await _json_body(request)
    enabled = bool(body.get("enabled"))
    if not await run_in_threadpool(_apply_auto_publish, user_id, enabled, actor):
        raise HTTPException(status_code=404, detail="User not found")
    logger.info("auto_publish_set_by_admin", extra={"target_user_id": user_id, "enabled": enabled})
    return {"success": True, "enabled": enabled}


@app.get("/admin/moderation-prompt")
def get_moderation_prompt(x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    _require_admin(x_admin_token)
    store = _prompt_store()
    return {"content": store.load(), "custom": store.exists()}


def _save_moderation_prompt(content: str, actor: str) -> None:
    _prompt_store().save(content)
    _posts().log_audit(None, actor, "moderation_prompt_updated", {"content_length": len(content)})


@app.put("/admin/moderation-prompt")
async def update_moderation_prompt(request: Request, x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    actor = _require_admin(x_admin_token)
    body = await _json_body(request)
    content = body.get("content")
    if not isinstance(content, str) or not content.strip():
        raise HTTPException(status_code=400, detail="Content is required")
    await run_in_threadpool(_save_moderation_prompt, content, actor)
    return {"success": True}


@app.post("/admin/posts/{post_id}/publish")
def publish_post(post_id: int, request: Request, x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    actor = _require_admin(x_admin_token)
    posts = _posts()
    post = posts.get_post(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    posts.mark_published(post_id)
    updated = posts.get_post(post_id) or post
    posts.log_audit(
        post_id,
        actor,
        "post_published",
        {"previous_status": post["status"], "pub_date_set": post["pub_date"] is None},
    )
    request.app.state.feed.invalidate()
    logger.info("post_published", extra={"post_id": post_id, "previous_status": post["status"]})
    return {"published": True, "id": post_id, "pub_date": updated["pub_date"]}


@app.post("/admin/posts/{post_id}/unpublish")
def unpublish_post(post_id: int, request: Request, x_admin_token: str | None = Header(default=None)) -> dict[str, Any]:
    actor = _require_admin(x_admin_token)
    posts = _posts()
    post = posts.get_post(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    posts.unpublish(post_id)
    posts.log_audit(post_id, actor, "post_unpublished", {"previous_status": post["status"]})
    request.app.state.feed.invalidate()
    logger.info("post_unpublished", extra={"post_id": post_id, "previous_status": post["status"]})
    return {"unpublished": True, "id": post_id, "pub_date": post["pub_date"]}


@app.get("/admin/audit")
def audit(
    post_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
    x_admin_token: str | None = Header(default=None),
) -> dict[str, Any]:
    _require_admin(x_admin_token)
    limit = max(1, min(limit, 500))
    entries = _posts().list_audit(post_id=post_id, action=action, limit=limit, offset=max(0, offset))
    return {"entries": entries}
