"""Tests for Handlebars prompt rendering: helpers, default phase templates,
and error handling."""

import pytest

from fantasy_diary.pipeline.templates import DEFAULT_TEMPLATES
from fantasy_diary.prompts import PromptError, render_prompt


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "Eun-ji"}) == "Hello Eun-ji!"


def test_render_triple_stash_is_not_escaped():
    assert render_prompt("{{{text}}}", {"text": "<b>&</b>"}) == "<b>&</b>"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── helpers ──────────────────────────────────────────────────


def test_excerpt_helper_cuts_long_text():
    result = render_prompt("{{{excerpt text 5}}}", {"text": "abcdefghij"})
    assert result == "abcde…"


def test_excerpt_helper_keeps_short_text():
    assert render_prompt("{{{excerpt text 50}}}", {"text": "short"}) == "short"


def test_join_helper():
    assert render_prompt('{{{join names ", "}}}', {"names": ["A", "B"]}) == "A, B"


# ── default templates ────────────────────────────────────────


def _context(**overrides):
    ctx = {
        "now": "2025-03-01T09:30:00+00:00",
        "installment_id": "202503010930",
        "previous": None,
        "characters": [],
        "places": [],
        "plan": "",
        "prewriting": "",
        "content": "",
    }
    ctx.update(overrides)
    return ctx


@pytest.mark.parametrize("key", sorted(DEFAULT_TEMPLATES))
def test_default_templates_render(key):
    assert render_prompt(DEFAULT_TEMPLATES[key], _context()).strip()


def test_planning_lists_references_and_previous():
    ctx = _context(
        previous={"id": "202502280930", "content": "Yesterday it rained.", "created_at": ""},
        characters=[{"name": "Eun-ji", "current_status": "injured", "current_place": "", "personality": ""}],
        places=[{"name": "Seoul Station", "current_situation": "", "last_weather_condition": "fog"}],
    )
    text = render_prompt(DEFAULT_TEMPLATES["planning"], ctx)
    assert "Previous installment (202502280930)" in text
    assert "Yesterday it rained." in text
    assert "- Eun-ji (injured)" in text
    assert "- Seoul Station [fog]" in text
    assert "keyCharacters" in text


def test_first_installment_without_references():
    text = render_prompt(DEFAULT_TEMPLATES["planning"], _context())
    assert "This is the first installment." in text
    assert "- none yet" in text


def test_reconcile_asks_for_sentinel():
    text = render_prompt(DEFAULT_TEMPLATES["reconcile"], _context(content="The end."))
    assert "The end." in text
    assert "answer exactly: OK" in text
