from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger("prompts")

TEXT_PLACEHOLDER = "{{text}}"

DEFAULT_MODERATION_PROMPT = """You are a content moderator for a professional news feed.
Decide whether the following article may be published automatically.

Reject the article if it contains hate speech, harassment, explicit sexual content,
calls to violence, personal data of private individuals, obvious spam or advertising,
or content that is clearly off-topic for a professional audience.

Reply with a single JSON object and nothing else:
{"is_approved": true or false, "reason": "short explanation"}

Article:
{{text}}
"""


def render_prompt(template: str, text: str) -> str:
    return template.replace(TEXT_PLACEHOLDER, text).strip()


class PromptStore:
    """Admin-editable moderation prompt kept in a text file.

    The file is read on every ``load()`` so edits take effect on the next
    moderation call without a restart.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> str:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("moderation_prompt_missing", extra={"path": str(self.path)})
            return DEFAULT_MODERATION_PROMPT
        if not content.strip():
            logger.warning("moderation_prompt_empty", extra={"path": str(self.path)})
            return DEFAULT_MODERATION_PROMPT
        return content

    def save(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(content, encoding="utf-8")
        logger.info("moderation_prompt_saved", extra={"path": str(self.path), "content_length": len(content)})
