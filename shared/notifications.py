from __future__ import annotations

import logging
from typing import Protocol, Sequence

from shared.email import EmailNotifier
from shared.settings import Settings
from shared.telegram import TelegramBot, TelegramNotifier

logger = logging.getLogger("notifications")


class RejectionNotifier(Protocol):
    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        ...


class FanoutNotifier:
    """Delivers to every configured channel; True when at least one succeeded."""

    def __init__(self, notifiers: Sequence[RejectionNotifier]) -> None:
        self.notifiers = list(notifiers)

    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        if not self.notifiers:
            logger.info("rejection_notifier_unconfigured", extra={"post_id": post_id})
            return False
        delivered = False
        for notifier in self.notifiers:
            try:
                sent = notifier.notify_rejection(
                    post_id=post_id,
                    post_text=post_text,
                    user_email=user_email,
                    reason=reason,
                )
            except Exception as exc:  # noqa: BLE001 - one channel must not block the others
                logger.warning(
                    "rejection_notify_failed",
                    extra={"post_id": post_id, "notifier": type(notifier).__name__, "error": str(exc)},
                )
                sent = False
            delivered = delivered or sent
        return delivered


def build_rejection_notifier(config: Settings) -> FanoutNotifier:
    notifiers: list[RejectionNotifier] = []
    if config.smtp_configured():
        notifiers.append(EmailNotifier(config))
    if config.telegram_configured():
        notifiers.append(TelegramNotifier(config.admin_chat_id, TelegramBot(config.tg_bot_token)))
    return FanoutNotifier(notifiers)
