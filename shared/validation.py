from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass
from typing import Any, Callable

SLUG_ALPHABET = string.digits + string.ascii_lowercase
SLUG_MAX_LENGTH = 50
SUMMARY_MAX_LENGTH = 300
SOURCE_MAX_LENGTH = 100
EXT_ID_MAX_LENGTH = 255
TAG_MAX_LENGTH = 100
TITLE_MAX_LENGTH = 300
LINK_MAX_LENGTH = 2048
CLIENT_KEY_MAX_LENGTH = 255


class ValidationError(ValueError):
    status_code = 400

    def __init__(self, message: str, code: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


@dataclass(frozen=True)
class IngestPayload:
    text: str
    title: str | None = None
    source: str | None = None
    ext_id: str | None = None
    tag: str | None = None
    link: str | None = None
    client_key: str | None = None


def validate_text(text: Any, max_length: int) -> str:
    if not isinstance(text, str):
        raise ValidationError("Text must be a string", "INVALID_TYPE")
    trimmed = text.strip()
    if not trimmed:
        raise ValidationError("Text cannot be empty", "EMPTY_TEXT")
    if len(trimmed) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length of {max_length} characters",
            "TEXT_TOO_LONG",
            {"length": len(trimmed), "max_length": max_length},
        )
    return trimmed


def normalize_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def generate_summary(text: str, max_length: int = SUMMARY_MAX_LENGTH) -> str:
    normalized = re.sub(r"\s+", " ", text).strip()
    if len(normalized) <= max_length:
        return normalized

    truncated = normalized[:max_length]
    sentence_end = max(truncated.rfind("."), truncated.rfind("?"), truncated.rfind("!"))
    if sentence_end > max_length * 0.7:
        return truncated[: sentence_end + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "…"
    return truncated + "…"


def _random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    slug = slug.strip("-")[:max_length].strip("-")
    if len(slug) < 3:
        return f"post-{_random_suffix()}"
    return slug


def generate_unique_slug(text: str, exists: Callable[[str], bool]) -> str:
    slug = slugify(text)
    if exists(slug):
        slug = f"{slug}-{_random_suffix()}"
    return slug


def _optional_string(body: dict[str, Any], key: str, max_length: int, code: str, *, allow_number: bool = False) -> str | None:
    value = body.get(key)
    if value is None:
        return None
    if allow_number and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", f"INVALID_{code}")
    cleaned = value.strip()
    if len(cleaned) > max_length:
        raise ValidationError(
            f"{key} exceeds maximum length of {max_length} characters",
            f"{code}_TOO_LONG",
        )
    return cleaned or None


def validate_ingest_request(body: Any, max_text_length: int) -> IngestPayload:
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body", "INVALID_BODY")

    text = normalize_text(validate_text(body.get("text"), max_text_length))
    return IngestPayload(
        text=text,
        title=_optional_string(body, "title", TITLE_MAX_LENGTH, "TITLE"),
        source=_optional_string(body, "source", SOURCE_MAX_LENGTH, "SOURCE"),
        ext_id=_optional_string(body, "ext_id", EXT_ID_MAX_LENGTH, "EXT_ID", allow_number=True),
        tag=_optional_string(body, "tag", TAG_MAX_LENGTH, "TAG"),
        link=_optional_string(body, "link", LINK_MAX_LENGTH, "LINK"),
        client_key=_optional_string(body, "client_key", CLIENT_KEY_MAX_LENGTH, "CLIENT_KEY"),
    )
