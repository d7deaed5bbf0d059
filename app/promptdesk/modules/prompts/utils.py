"""
Placeholder handling for prompt templates.

Templates mark slots as {{name}}; whitespace inside the braces is ignored and names are
letters, digits and underscores. Rendering is plain substitution, no expressions.
"""
from __future__ import annotations

import re

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def extract_placeholders(template_text: str | None) -> list[str]:
    """Placeholder names in first-seen order, without duplicates."""
    seen: list[str] = []
    for m in PLACEHOLDER_RE.finditer(template_text or ""):
        name = m.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def render_template_text(template_text: str, values: dict[str, object]) -> tuple[str | None, list[str]]:
    """
    Fill every placeholder from `values`.
    Returns (rendered, []) on success, (None, missing_names) when any slot has no value.
    """
    missing = [name for name in extract_placeholders(template_text) if _blank(values.get(name))]
    if missing:
        return None, missing
    rendered = PLACEHOLDER_RE.sub(lambda m: str(values[m.group(1)]).strip(), template_text)
    return rendered, []


def _blank(value: object) -> bool:
    return value is None or str(value).strip() == ""
