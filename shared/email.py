from __future__ import annotations

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from shared.settings import Settings, settings as default_settings

logger = logging.getLogger("email")

POST_PREVIEW_CHARS = 500


def _preview(text: str | None) -> str:
    text = (text or "").strip()
    if len(text) <= POST_PREVIEW_CHARS:
        return text
    return text[:POST_PREVIEW_CHARS] + "…"


def build_rejection_message(
    *,
    post_id: int,
    post_text: str | None,
    user_email: str,
    reason: str,
    base_url: str,
) -> tuple[str, str, str]:
    edit_url = f"{base_url.rstrip('/')}/admin/posts/{post_id}"
    subject = f"Post #{post_id} rejected by moderation"
    preview = _preview(post_text)
    text = (
        f"Post #{post_id} was rejected by automatic moderation and will not be published.\n\n"
        f"Author: {user_email}\n"
        f"Reason: {reason}\n\n"
        f"Text:\n{preview}\n\n"
        f"Review it here: {edit_url}\n"
    )
    body = (
        "<html><body>"
        f"<h2>Post #{post_id} rejected by moderation</h2>"
        f"<p><strong>Author:</strong> {html.escape(user_email)}</p>"
        f"<p><strong>Reason:</strong> {html.escape(reason)}</p>"
        f"<pre style=\"white-space: pre-wrap\">{html.escape(preview)}</pre>"
        f"<p><a href=\"{html.escape(edit_url)}\">Open post</a></p>"
        "</body></html>"
    )
    return subject, text, body


class EmailNotifier:
    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def configured(self) -> bool:
        return self.config.smtp_configured()

    def _send(self, to: str, subject: str, text: str, body: str) -> None:
        from_email = self.config.smtp_user or ""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self.config.email_from_name} <{from_email}>"
        message["To"] = to
        message.attach(MIMEText(text, "plain", "utf-8"))
        message.attach(MIMEText(body, "html", "utf-8"))

        port = self.config.smtp_port
        timeout = self.config.smtp_timeout
        if port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.config.smtp_host, port, timeout=timeout)
        else:
            server = smtplib.SMTP(self.config.smtp_host, port, timeout=timeout)
        with server:
            if port != 465 and self.config.smtp_use_tls:
                server.starttls()
            if self.config.smtp_password:
                server.login(from_email, self.config.smtp_password)
            server.sendmail(from_email, [to], message.as_string())

    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        if not self.configured():
            logger.warning("email_not_configured", extra={"post_id": post_id})
            return False
        recipient = self.config.moderation_notify_email or self.config.smtp_user
        if not recipient:
            logger.warning("email_recipient_missing", extra={"post_id": post_id})
            return False
        subject, text, body = build_rejection_message(
            post_id=post_id,
            post_text=post_text,
            user_email=user_email,
            reason=reason,
            base_url=self.config.base_url,
        )
        try:
            self._send(recipient, subject, text, body)
        except Exception as exc:  # noqa: BLE001 - notification is best effort
            logger.warning("email_send_failed", extra={"post_id": post_id, "error": str(exc)})
            return False
        logger.info("email_rejection_sent", extra={"post_id": post_id, "to": recipient})
        return True
