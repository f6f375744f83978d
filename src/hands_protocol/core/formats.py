"""Heuristic input format detection."""

import re

JSON = "json"
YAML = "yaml"
MARKDOWN = "markdown"
NATURAL_LANGUAGE = "natural_language"

FORMATS = (JSON, YAML, MARKDOWN, NATURAL_LANGUAGE)

_KEY_VALUE_LINE = re.compile(r"^(---|[A-Za-z_][\w-]*\s*:)", re.MULTILINE)
_JSON_FENCE = re.compile(r"```\s*json\b", re.IGNORECASE)
_SECTION_MARKERS = ("### Directive", "## Step")


def detect(text: str) -> str:
    """Classify raw input. Never fails; unknown input is natural language.

    Checks run from most to least specific and the first match wins. Text
    that merely has a ``word:`` line counts as key/value input; that
    ambiguity is accepted.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return NATURAL_LANGUAGE
    if trimmed[0] in "{[":
        return JSON
    if "```" not in trimmed and _KEY_VALUE_LINE.search(trimmed):
        return YAML
    if _JSON_FENCE.search(trimmed) or any(m in trimmed for m in _SECTION_MARKERS):
        return MARKDOWN
    return NATURAL_LANGUAGE
