"""Utility functions for the daynote journal."""

import html
import re

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_note_text(text: str) -> str:
    """Reduce a rich-text payload to the plain text that gets embedded.

    Markup tags become spaces (so ``<p>a</p><p>b</p>`` keeps the words
    apart), character entities are decoded and runs of whitespace collapse
    to a single space.

    Examples:
        "<p>Hello</p>" -> "Hello"
        "<p></p>" -> ""
        "<h1>Plan</h1>\\n<p>Ship &amp; rest</p>" -> "Plan Ship & rest"

    Args:
        text: Editor payload, possibly empty or None.

    Returns:
        The cleaned text; empty when nothing but markup remains.
    """
    if not text:
        return ""
    stripped = _TAG_RE.sub(" ", text)
    stripped = html.unescape(stripped)
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def truncate_snippet(text: str, max_length: int) -> str:
    """Truncate text to ``max_length`` characters, marking the cut.

    The ellipsis counts towards the limit, so the result is never longer
    than ``max_length``.
    """
    if max_length <= 0:
        return ""
    if len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[: max_length - 3].rstrip() + "..."
