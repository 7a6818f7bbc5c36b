"""Handlebars rendering for phase instructions."""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_excerpt(this, text, length=200):
    """{{excerpt text N}} — first N characters, with an ellipsis when cut."""
    text = str(text or "")
    limit = int(length)
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


def _helper_join(this, items, separator=", "):
    """{{join list ", "}} — join a list of strings."""
    return str(separator).join(str(item) for item in (items or []))


_HELPERS: dict[str, Callable] = {
    "excerpt": _helper_excerpt,
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e
