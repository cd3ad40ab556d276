from __future__ import annotations

import pytest

import shared.email
from conftest import FakeNotifier
from shared.email import EmailNotifier, build_rejection_message
from shared.notifications import FanoutNotifier, build_rejection_notifier
from shared.settings import Settings
from shared.telegram import TelegramNotifier, format_rejection_text

REJECTION = {"post_id": 7, "post_text": "Buy <cheap> watches", "user_email": "owner@example.com", "reason": "spam"}


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


class RecordingSMTP:
    instances: list["RecordingSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.started_tls = False
        self.logged_in = None
        RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def sendmail(self, from_addr, to_addrs, message):
        self.sent.append((from_addr, to_addrs, message))


class BrokenSMTP(RecordingSMTP):
    def sendmail(self, from_addr, to_addrs, message):
        raise OSError("connection refused")


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.messages = []

    def send_message(self, chat_id, text):
        self.messages.append((chat_id, text))
        if self.error is not None:
            raise self.error
        return {"ok": True, "result": {"message_id": 99}}


class TestEmailNotifier:
    def test_unconfigured_returns_false(self):
        notifier = EmailNotifier(_settings())

        assert notifier.notify_rejection(**REJECTION) is False

    def test_sends_to_moderation_address(self, monkeypatch):
        RecordingSMTP.instances = []
        monkeypatch.setattr(shared.email.smtplib, "SMTP", RecordingSMTP)
        config = _settings(
            SMTP_HOST="smtp.example.com",
            SMTP_USER="bot@example.com",
            SMTP_PASSWORD="secret",
            MODERATION_NOTIFY_EMAIL="mods@example.com",
        )

        assert EmailNotifier(config).notify_rejection(**REJECTION) is True

        server = RecordingSMTP.instances[0]
        assert (server.host, server.port) == ("smtp.example.com", 587)
        assert server.started_tls
        assert server.logged_in == ("bot@example.com", "secret")
        from_addr, to_addrs, _ = server.sent[0]
        assert from_addr == "bot@example.com"
        assert to_addrs == ["mods@example.com"]

    def test_smtp_failure_returns_false(self, monkeypatch):
        monkeypatch.setattr(shared.email.smtplib, "SMTP", BrokenSMTP)
        config = _settings(SMTP_HOST="smtp.example.com", SMTP_USER="bot@example.com")

        assert EmailNotifier(config).notify_rejection(**REJECTION) is False

    def test_message_escapes_html(self):
        subject, text, body = build_rejection_message(base_url="https://example.com/", **REJECTION)

        assert subject == "Post #7 rejected by moderation"
        assert "Reason: spam" in text
        assert "https://example.com/admin/posts/7" in text
        assert "&lt;cheap&gt;" in body


class TestTelegramNotifier:
    def test_sends_to_admin_chat(self):
        bot = FakeBot()

        assert TelegramNotifier(123, bot=bot).notify_rejection(**REJECTION) is True
        chat_id, text = bot.messages[0]
        assert chat_id == 123
        assert text == format_rejection_text(7, "Buy <cheap> watches", "owner@example.com", "spam")
        assert "&lt;cheap&gt;" in text

    def test_bot_error_returns_false(self):
        bot = FakeBot(error=RuntimeError("429 Too Many Requests"))

        assert TelegramNotifier(123, bot=bot).notify_rejection(**REJECTION) is False


class TestFanoutNotifier:
    def test_no_channels(self):
        assert FanoutNotifier([]).notify_rejection(**REJECTION) is False

    def test_any_success_counts(self):
        failing = FakeNotifier(error=RuntimeError("down"))
        declining = FakeNotifier(result=False)
        working = FakeNotifier()

        assert FanoutNotifier([failing, declining, working]).notify_rejection(**REJECTION) is True
        assert len(working.calls) == 1

    def test_all_failing(self):
        notifiers = [FakeNotifier(error=RuntimeError("down")), FakeNotifier(result=False)]

        assert FanoutNotifier(notifiers).notify_rejection(**REJECTION) is False


@pytest.mark.parametrize(
    "overrides, expected",
    [
        ({}, []),
        ({"SMTP_HOST": "smtp.example.com", "SMTP_USER": "bot@example.com"}, [EmailNotifier]),
        ({"TG_BOT_TOKEN": "123:abc", "ADMIN_CHAT_ID": 55}, [TelegramNotifier]),
        (
            {"SMTP_HOST": "smtp.example.com", "SMTP_USER": "bot@example.com", "TG_BOT_TOKEN": "123:abc", "ADMIN_CHAT_ID": 55},
            [EmailNotifier, TelegramNotifier],
        ),
    ],
)
def test_build_rejection_notifier_channels(overrides, expected):
    notifier = build_rejection_notifier(_settings(**overrides))

    assert [type(n) for n in notifier.notifiers] == expected
