from __future__ import annotations

import html
import logging
from typing import Any

import requests

from shared.settings import settings

logger = logging.getLogger("telegram_bot")

POST_PREVIEW_CHARS = 700


class TelegramAPIError(RuntimeError):
    def __init__(self, method: str, status_code: int, response: Any) -> None:
        super().__init__(f"Telegram API error {status_code} on {method}")
        self.method = method
        self.status_code = status_code
        self.response = response


class TelegramBot:
    def __init__(self, token: str | None = None) -> None:
        self.token = token or settings.tg_bot_token
        if not self.token:
            raise RuntimeError("TG_BOT_TOKEN is required")
        self.base_url = f"https://api.telegram.org/bot{self.token}"

    def send_message(self, chat_id: int | str, text: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        return self._post("sendMessage", payload)

    def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = requests.post(f"{self.base_url}/{method}", json=payload, timeout=30)
        except requests.RequestException as exc:
            logger.warning("telegram_request_failed", extra={"method": method, "error": str(exc)})
            raise
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            response_data: Any
            try:
                response_data = response.json()
            except ValueError:
                response_data = {"text": response.text}
            logger.warning(
                "telegram_api_error",
                extra={"method": method, "status_code": response.status_code, "response": response_data},
            )
            raise TelegramAPIError(method, response.status_code, response_data) from exc
        return response.json()


def format_rejection_text(post_id: int, post_text: str | None, user_email: str, reason: str) -> str:
    preview = (post_text or "").strip()
    if len(preview) > POST_PREVIEW_CHARS:
        preview = preview[:POST_PREVIEW_CHARS] + "…"
    return (
        f"<b>Post {post_id} rejected by moderation</b>\n"
        f"Author: {html.escape(user_email)}\n"
        f"Reason: {html.escape(reason)}\n\n"
        f"<pre>{html.escape(preview or '(no text)')}</pre>"
    )


class TelegramNotifier:
    """Posts moderation rejections to the admin chat."""

    def __init__(self, chat_id: int | str, bot: TelegramBot | None = None) -> None:
        self.chat_id = chat_id
        self.bot = bot or TelegramBot()

    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        text = format_rejection_text(post_id, post_text, user_email, reason)
        try:
            response = self.bot.send_message(self.chat_id, text)
        except Exception as exc:  # noqa: BLE001 - notification is best effort
            logger.warning(
                "telegram_send_failed",
                extra={"chat_id": self.chat_id, "post_id": post_id, "error": str(exc)},
            )
            return False
        message_id = response.get("result", {}).get("message_id")
        logger.info(
            "telegram_rejection_sent",
            extra={"chat_id": self.chat_id, "post_id": post_id, "telegram_message_id": message_id},
        )
        return True
