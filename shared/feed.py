from __future__ import annotations

import hashlib
import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from feedgen.feed import FeedGenerator

logger = logging.getLogger("feed")

TITLE_MAX_CHARS = 80
DESCRIPTION_FALLBACK_CHARS = 300


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _item_title(post: dict[str, Any]) -> str:
    title = (post.get("title") or "").strip()
    if title:
        return title
    text = re.sub(r"\s+", " ", post.get("text") or "").strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[: TITLE_MAX_CHARS - 3] + "…"
    return text or "Untitled"


def build_rss(posts: Iterable[dict[str, Any]], *, base_url: str, title: str) -> str:
    """Render published posts as RSS 2.0, keeping the order they are given in."""
    base = base_url.rstrip("/")
    fg = FeedGenerator()
    fg.title(title)
    fg.link(href=base_url, rel="alternate")
    fg.description("Recent posts")
    fg.language("en-us")
    fg.lastBuildDate(datetime.now(timezone.utc))

    for post in posts:
        published = post.get("pub_date") or post.get("updated_at") or datetime.now(timezone.utc)
        fe = fg.add_entry(order="append")
        fe.title(_item_title(post))
        fe.link(href=post.get("link") or f"{base}/posts/{post['slug']}")
        fe.guid(post["slug"], permalink=False)
        fe.pubDate(_as_utc(published))
        fe.description(post.get("summary") or (post.get("text") or "")[:DESCRIPTION_FALLBACK_CHARS] or " ")

    return fg.rss_str(pretty=True).decode("utf-8")


@dataclass(frozen=True)
class FeedSnapshot:
    xml: str
    etag: str
    last_modified: datetime


class FeedCache:
    """Lazily built feed document; ``invalidate`` forces a rebuild on the next read.

    ``get`` runs in the request threadpool while the worker invalidates from
    the event loop, so a build that overlaps an invalidation is served once
    but never cached.
    """

    def __init__(self, builder: Callable[[], str]) -> None:
        self._builder = builder
        self._snapshot: FeedSnapshot | None = None
        self._generation = 0
        self._lock = threading.Lock()

    def get(self) -> FeedSnapshot:
        with self._lock:
            snapshot = self._snapshot
            generation = self._generation
        if snapshot is not None:
            return snapshot

        xml = self._builder()
        etag = 'W/"' + hashlib.md5(xml.encode("utf-8")).hexdigest() + '"'
        snapshot = FeedSnapshot(
            xml=xml,
            etag=etag,
            last_modified=datetime.now(timezone.utc).replace(microsecond=0),
        )
        with self._lock:
            if self._generation == generation:
                self._snapshot = snapshot
                logger.info("feed_rebuilt", extra={"etag": etag})
            else:
                logger.info("feed_rebuild_superseded", extra={"etag": etag})
        return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1
            self._snapshot = None
        logger.debug("feed_invalidated")
