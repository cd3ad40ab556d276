from __future__ import annotations

from shared.prompts import DEFAULT_MODERATION_PROMPT, TEXT_PLACEHOLDER, PromptStore, render_prompt


def test_render_prompt_substitutes_text():
    assert render_prompt("Check:\n{{text}}\n", "hello") == "Check:\nhello"


def test_missing_file_falls_back_to_default(tmp_path):
    store = PromptStore(tmp_path / "missing.txt")

    assert not store.exists()
    assert store.load() == DEFAULT_MODERATION_PROMPT
    assert TEXT_PLACEHOLDER in DEFAULT_MODERATION_PROMPT


def test_blank_file_falls_back_to_default(tmp_path):
    path = tmp_path / "blank.txt"
    path.write_text("   \n", encoding="utf-8")

    assert PromptStore(path).load() == DEFAULT_MODERATION_PROMPT


def test_save_creates_parent_directories(tmp_path):
    store = PromptStore(tmp_path / "nested" / "dir" / "prompt.txt")

    store.save("Custom {{text}}")

    assert store.exists()
    assert store.load() == "Custom {{text}}"
