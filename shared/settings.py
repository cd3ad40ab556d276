from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="sqlite:///./data/square.db", alias="DATABASE_URL")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_text_model: str = Field(default="gpt-4o-mini", alias="OPENAI_TEXT_MODEL")

    moderation_prompt_path: str = Field(default="prompts/moderation.txt", alias="MODERATION_PROMPT_PATH")
    moderation_max_chars: int = Field(default=3000, alias="MODERATION_MAX_CHARS")

    auto_publish_enabled: bool = Field(default=True, alias="AUTO_PUBLISH_ENABLED")
    auto_publish_interval_seconds: float = Field(default=60.0, alias="AUTO_PUBLISH_INTERVAL_SECONDS")
    auto_publish_delay_hours: float = Field(default=6.0, alias="AUTO_PUBLISH_DELAY_HOURS")
    moderation_batch_size: int = Field(default=5, alias="MODERATION_BATCH_SIZE")
    publish_batch_size: int = Field(default=10, alias="PUBLISH_BATCH_SIZE")

    ingest_token: str | None = Field(default=None, alias="INGEST_TOKEN")
    admin_token: str | None = Field(default=None, alias="ADMIN_TOKEN")
    max_text_length: int = Field(default=50000, alias="MAX_TEXT_LENGTH")

    base_url: str = Field(default="http://localhost:3000", alias="BASE_URL")
    rss_feed_size: int = Field(default=50, alias="RSS_FEED_SIZE")
    rss_feed_title: str = Field(default="Square Publisher Feed", alias="RSS_FEED_TITLE")

    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    smtp_timeout: float = Field(default=10.0, alias="SMTP_TIMEOUT")
    email_from_name: str = Field(default="Square Publisher", alias="EMAIL_FROM_NAME")
    moderation_notify_email: str | None = Field(default=None, alias="MODERATION_NOTIFY_EMAIL")

    tg_bot_token: str | None = Field(default=None, alias="TG_BOT_TOKEN")
    admin_chat_id: int | None = Field(default=None, alias="ADMIN_CHAT_ID")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user)

    def telegram_configured(self) -> bool:
        return bool(self.tg_bot_token and self.admin_chat_id)


settings = Settings()
