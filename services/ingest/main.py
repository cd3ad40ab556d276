from __future__ import annotations

import hmac
import logging
import uuid

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from shared.auto_publish import AutoPublishSchedule, schedule_if_enabled
from shared.db import get_engine
from shared.logging import configure_logging
from shared.post_store import PostStore, UserStore
from shared.settings import settings
from shared.validation import (
    IngestPayload,
    ValidationError,
    generate_summary,
    generate_unique_slug,
    validate_ingest_request,
)

logger = logging.getLogger("ingest")
app = FastAPI()


def _verify_ingest_token(authorization: str | None) -> None:
    if not settings.ingest_token:
        raise HTTPException(status_code=503, detail="ingest token not configured")
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing authorization header")
    token = authorization.split(" ", 1)[1].strip()
    if not hmac.compare_digest(token, settings.ingest_token):
        raise HTTPException(status_code=401, detail="Invalid token")


def _store_post(payload: IngestPayload) -> tuple[int, str, AutoPublishSchedule]:
    engine = get_engine()
    posts = PostStore(engine)
    users = UserStore(engine)

    slug = generate_unique_slug(payload.title or payload.text, posts.slug_exists)
    post_id = posts.create_post(
        slug=slug,
        text=payload.text,
        summary=generate_summary(payload.text),
        title=payload.title,
        source=payload.source,
        ext_id=payload.ext_id,
        tag=payload.tag,
        link=payload.link,
        client_key=payload.client_key,
    )
    schedule = schedule_if_enabled(
        posts,
        users,
        post_id,
        payload.client_key,
        settings.auto_publish_delay_hours,
    )
    return post_id, slug, schedule


@app.on_event("startup")
def startup() -> None:
    configure_logging()
    logger.info("Ingest service starting up")


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/ingest/text")
async def ingest_text(request: Request, authorization: str | None = Header(default=None)) -> JSONResponse:
    _verify_ingest_token(authorization)
    trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex

    try:
        body = await request.json()
    except Exception:  # noqa: BLE001 - any unparsable body is a 400
        body = None

    try:
        payload = validate_ingest_request(body, settings.max_text_length)
    except ValidationError as exc:
        logger.warning(
            "ingest_reject",
            extra={"event": "ingest_reject", "code": exc.code, "trace_id": trace_id},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    post_id, slug, schedule = await run_in_threadpool(_store_post, payload)

    logger.info(
        "post_ingested",
        extra={
            "event": "post_ingested",
            "post_id": post_id,
            "slug": slug,
            "source": payload.source,
            "ext_id": payload.ext_id,
            "auto_publish": schedule.scheduled,
            "trace_id": trace_id,
        },
    )

    return JSONResponse(
        status_code=201,
        content={
            "id": post_id,
            "slug": slug,
            "status": "draft",
            "auto_publish_scheduled": schedule.scheduled,
            "publish_at": schedule.publish_at.isoformat() if schedule.publish_at else None,
            "edit_url": f"{settings.base_url.rstrip('/')}/admin/posts/{post_id}",
        },
    )
