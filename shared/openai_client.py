from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from shared.prompts import PromptStore, render_prompt
from shared.settings import settings

logger = logging.getLogger("openai_client")

INVALID_JSON_REASON = "Invalid JSON response from moderation LLM"
MISSING_REASON = "Rejected without a reason"


class ModerationConfigError(RuntimeError):
    """Raised when the moderation call cannot be made at all (no credentials)."""


@dataclass(frozen=True)
class ModerationVerdict:
    is_approved: bool
    reason: str


def extract_json_object(raw: str) -> dict[str, Any] | None:
    """Return the first balanced ``{...}`` span in ``raw`` that parses as a JSON object.

    Models like to wrap JSON in prose or code fences, so the text is scanned
    brace by brace instead of handed to ``json.loads`` whole. Braces inside
    string literals are ignored.
    """
    start = raw.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(raw)):
            char = raw[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(raw[start : index + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(parsed, dict):
                        return parsed
                    break
        start = raw.find("{", start + 1)
    return None


def parse_verdict(raw: str | None) -> ModerationVerdict:
    parsed = extract_json_object(raw or "")
    if parsed is None or not isinstance(parsed.get("is_approved"), bool):
        logger.warning(
            "moderation_invalid_json",
            extra={"content": (raw or "")[:500]},
        )
        return ModerationVerdict(is_approved=False, reason=INVALID_JSON_REASON)

    reason = parsed.get("reason")
    reason = reason.strip() if isinstance(reason, str) else ""
    if not parsed["is_approved"] and not reason:
        reason = MISSING_REASON
    return ModerationVerdict(is_approved=parsed["is_approved"], reason=reason)


class OpenAIModerator:
    def __init__(
        self,
        prompt_store: PromptStore,
        *,
        api_key: str | None = None,
        model: str | None = None,
        max_chars: int | None = None,
        client: Any = None,
    ) -> None:
        self.prompt_store = prompt_store
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_text_model
        self.max_chars = max_chars or settings.moderation_max_chars
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        if not self.api_key:
            raise ModerationConfigError("OPENAI_API_KEY is not configured")
        self._client = OpenAI(api_key=self.api_key)
        return self._client

    def build_prompt(self, text: str, prompt_override: str | None = None) -> str:
        template = prompt_override or self.prompt_store.load()
        return render_prompt(template, (text or "")[: self.max_chars])

    def moderate(self, text: str, prompt_override: str | None = None) -> ModerationVerdict:
        client = self._get_client()
        prompt = self.build_prompt(text, prompt_override)
        response = client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0,
        )
        content = response.choices[0].message.content if response.choices else None
        verdict = parse_verdict(content)
        logger.info(
            "moderation_verdict",
            extra={
                "model": getattr(response, "model", self.model),
                "is_approved": verdict.is_approved,
                "tokens": response.usage.total_tokens if getattr(response, "usage", None) else None,
            },
        )
        return verdict
