from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

from shared.openai_client import ModerationVerdict
from shared.post_store import SYSTEM_ACTOR, PostStore, UserStore, now_ts

logger = logging.getLogger("auto_publish")

DEFAULT_DELAY_HOURS = 6
DEFAULT_INTERVAL_SECONDS = 60.0
MODERATION_BATCH_SIZE = 5
PUBLISH_BATCH_SIZE = 10
UNKNOWN_AUTHOR = "Unknown"


class Moderator(Protocol):
    def moderate(self, text: str, prompt_override: str | None = None) -> ModerationVerdict:
        ...


class Notifier(Protocol):
    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        ...


@dataclass(frozen=True)
class AutoPublishSchedule:
    scheduled: bool
    publish_at: datetime | None


@dataclass
class TickResult:
    approved: int = 0
    rejected: int = 0
    errored: int = 0
    published: int = 0


def schedule_auto_publish(
    posts: PostStore,
    post_id: int,
    delay_hours: float = DEFAULT_DELAY_HOURS,
    *,
    now: datetime | None = None,
) -> datetime:
    publish_at = (now or now_ts()) + timedelta(hours=delay_hours)
    posts.update_post_fields(post_id, {"publish_at": publish_at}, touch=False)
    return publish_at


def schedule_if_enabled(
    posts: PostStore,
    users: UserStore,
    post_id: int,
    client_key: str | None,
    delay_hours: float = DEFAULT_DELAY_HOURS,
) -> AutoPublishSchedule:
    """Stamp ``publish_at`` on a fresh draft when its owner opted into auto-publish."""
    if not client_key:
        return AutoPublishSchedule(scheduled=False, publish_at=None)
    user = users.get_user_by_client_key(client_key)
    if not user or not user.get("auto_publish_enabled"):
        return AutoPublishSchedule(scheduled=False, publish_at=None)
    publish_at = schedule_auto_publish(posts, post_id, delay_hours)
    logger.info(
        "post_scheduled_for_auto_publish",
        extra={"post_id": post_id, "user_id": user.get("id"), "publish_at": publish_at.isoformat()},
    )
    return AutoPublishSchedule(scheduled=True, publish_at=publish_at)


class AutoPublishWorker:
    """Moderates scheduled drafts and publishes them once their deadline passes.

    Each tick runs two sweeps over the post table. The moderation sweep calls
    the LLM once per draft that has ``publish_at`` set and no
    ``moderation_checked_at``; approval leaves the draft for the publish sweep,
    rejection moves it to ``warning`` and clears ``publish_at``, an adapter
    failure only records the error. ``moderation_checked_at`` is written in
    every branch, so a draft is never moderated twice. The publish sweep then
    flips due, moderated drafts to ``published``.

    ``stop()`` only prevents future ticks; await ``join()`` to let an in-flight
    tick finish. It detaches the feed invalidation hook but keeps the stores
    and adapters, so the same worker can be started again once ``join()``
    returns.

    All state lives in the database. Only one worker may run against a
    database at a time.
    """

    def __init__(
        self,
        posts: PostStore,
        users: UserStore,
        moderator: Moderator,
        notifier: Notifier,
        *,
        feed_invalidate: Callable[[], Any] | None = None,
        moderation_batch_size: int = MODERATION_BATCH_SIZE,
        publish_batch_size: int = PUBLISH_BATCH_SIZE,
        clock: Callable[[], datetime] = now_ts,
    ) -> None:
        self.posts = posts
        self.users = users
        self.moderator = moderator
        self.notifier = notifier
        self.feed_invalidate = feed_invalidate
        self.moderation_batch_size = moderation_batch_size
        self.publish_batch_size = publish_batch_size
        self.clock = clock
        self._task: asyncio.Task | None = None
        self._stop: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._stop is not None and not self._stop.is_set()

    def start(
        self,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        *,
        feed_invalidate: Callable[[], Any] | None = None,
    ) -> None:
        # Also covers a stopped worker whose last tick is still in flight.
        if self._task is not None and not self._task.done():
            logger.warning("auto_publish_worker_already_running", extra={"stopping": not self.running})
            return
        if feed_invalidate is not None:
            self.feed_invalidate = feed_invalidate
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(interval_seconds, self._stop))
        logger.info("auto_publish_worker_started", extra={"interval_seconds": interval_seconds})

    def stop(self) -> None:
        # An in-flight tick finishes; only future ticks are cancelled.
        if self._stop is None:
            return
        self._stop.set()
        self._stop = None
        self.feed_invalidate = None
        logger.info("auto_publish_worker_stopped")

    async def join(self) -> None:
        task = self._task
        if task is not None:
            await task

    async def _run(self, interval_seconds: float, stop: asyncio.Event) -> None:
        while True:
            await self.tick()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
                return
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> TickResult | None:
        try:
            result = await self.process_pending_moderation()
            result.published = self.process_scheduled_publishing()
        except Exception as exc:  # noqa: BLE001 - the loop must survive a bad tick
            logger.error("auto_publish_tick_failed", extra={"error": str(exc)}, exc_info=True)
            return None
        if result.approved or result.rejected or result.errored or result.published:
            logger.info(
                "auto_publish_tick_done",
                extra={
                    "approved": result.approved,
                    "rejected": result.rejected,
                    "errored": result.errored,
                    "published": result.published,
                },
            )
        return result

    async def process_pending_moderation(self) -> TickResult:
        result = TickResult()
        pending = self.posts.select_pending_moderation(self.moderation_batch_size)
        for post in pending:
            try:
                outcome = await self._moderate_post(post)
            except Exception as exc:  # noqa: BLE001 - one post must not abort the batch
                logger.error(
                    "post_moderation_failed",
                    extra={"post_id": post["id"], "error": str(exc)},
                    exc_info=True,
                )
                continue
            if outcome == "approved":
                result.approved += 1
            elif outcome == "rejected":
                result.rejected += 1
            else:
                result.errored += 1
        return result

    async def _moderate_post(self, post: dict[str, Any]) -> str:
        post_id = post["id"]
        try:
            verdict = await asyncio.to_thread(self.moderator.moderate, post["text"])
        except Exception as exc:  # noqa: BLE001 - recorded on the post, never retried
            reason = f"Moderation error: {exc}"
            self.posts.update_post_fields(
                post_id,
                {"moderation_checked_at": self.clock(), "moderation_reason": reason},
            )
            self.posts.log_audit(post_id, SYSTEM_ACTOR, "post_moderation_error", {"error": str(exc)})
            logger.error("post_moderation_error", extra={"post_id": post_id, "error": str(exc)})
            return "error"

        if verdict.is_approved:
            reason = verdict.reason or "Approved"
            self.posts.update_post_fields(
                post_id,
                {"moderation_checked_at": self.clock(), "moderation_reason": reason},
            )
            self.posts.log_audit(post_id, SYSTEM_ACTOR, "post_moderation_approved", {"reason": verdict.reason})
            logger.info("post_moderation_approved", extra={"post_id": post_id})
            return "approved"

        self.posts.update_post_fields(
            post_id,
            {
                "status": "warning",
                "moderation_checked_at": self.clock(),
                "moderation_reason": verdict.reason,
                "publish_at": None,
            },
        )
        self.posts.log_audit(post_id, SYSTEM_ACTOR, "post_moderation_rejected", {"reason": verdict.reason})
        logger.warning("post_moderation_rejected", extra={"post_id": post_id, "reason": verdict.reason})
        await self._notify_rejection(post, verdict.reason)
        return "rejected"

    async def _notify_rejection(self, post: dict[str, Any], reason: str) -> None:
        post_id = post["id"]
        client_key = post.get("client_key")
        try:
            user = self.users.get_user_by_client_key(client_key) if client_key else None
            user_email = (user or {}).get("email") or client_key or UNKNOWN_AUTHOR
            sent = await asyncio.to_thread(
                self.notifier.notify_rejection,
                post_id=post_id,
                post_text=post.get("text"),
                user_email=user_email,
                reason=reason,
            )
        except Exception as exc:  # noqa: BLE001 - notification is best effort
            logger.warning("rejection_notify_failed", extra={"post_id": post_id, "error": str(exc)})
            return
        if not sent:
            logger.warning("rejection_notify_not_sent", extra={"post_id": post_id})

    def process_scheduled_publishing(self) -> int:
        now = self.clock()
        due = self.posts.select_pending_publish(self.publish_batch_size, now)
        for post in due:
            self.posts.mark_published(post["id"], now)
            self.posts.log_audit(post["id"], SYSTEM_ACTOR, "post_auto_published", {})
            logger.info("post_auto_published", extra={"post_id": post["id"]})
            if self.feed_invalidate is not None:
                self.feed_invalidate()
        return len(due)
