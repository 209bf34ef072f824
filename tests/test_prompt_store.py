from __future__ import annotations

import pytest

from rynk.services import prompt_store
from rynk.services.prompt_store import prompt_keys, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt("mermaid.fix_user", code="graph TD")
    assert prompt.endswith("graph TD")


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_reports_missing_value():
    with pytest.raises(KeyError, match="instructions"):
        render_prompt("chat.project_instructions")


def test_section_keys_are_not_templates():
    with pytest.raises(TypeError):
        render_prompt("chat")


def test_every_text_tool_has_a_prompt():
    keys = prompt_keys("tools")
    for name in (
        "summarizer",
        "paraphraser",
        "grammar",
        "ai_detector",
        "blog_title",
        "email_subject",
        "instagram_caption",
        "devils_advocate",
        "humanizer",
    ):
        assert f"tools.{name}" in keys
    assert "chat.system_identity" not in keys
    assert "chat.system_identity" in prompt_keys()


def test_clear_prompt_cache_forces_reload():
    render_prompt("mermaid.fix_user", code="x")
    assert prompt_store._catalog is not None
    prompt_store.clear_prompt_cache()
    assert prompt_store._catalog is None
    assert render_prompt("mermaid.fix_user", code="y").endswith("y")
