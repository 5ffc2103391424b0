"""
Text Processing Utilities

Slugs, word counts and excerpts.
"""

from __future__ import annotations

import re
import unicodedata

_WORD_PATTERN = re.compile(r"[\w'-]+", re.UNICODE)


def slugify(text: str) -> str:
    """
    Convert free text to a URL slug.

    Args:
        text: e.g., "Hello, World! (draft)"

    Returns:
        Lowercase ASCII slug e.g., "hello-world-draft"
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    # Replace anything that isn't alphanumeric with a hyphen
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", ascii_text).strip("-").lower()
    return slug or "untitled"


def word_count(text: str) -> int:
    """Count words in plain text."""
    return len(_WORD_PATTERN.findall(text))


def excerpt(text: str, max_chars: int = 280) -> str:
    """First paragraph of plain text, cut on a word boundary."""
    first = next((p.strip() for p in text.split("\n\n") if p.strip()), "")
    first = re.sub(r"\s+", " ", first)
    if len(first) <= max_chars:
        return first
    cut = first[:max_chars].rsplit(" ", 1)[0]
    return f"{cut}..."


def collapse_whitespace(text: str) -> str:
    """Collapse runs of blank lines and trailing spaces."""
    lines = [line.rstrip() for line in text.split("\n")]
    collapsed = re.sub(r"\n{3,}", "\n\n", "\n".join(lines))
    return collapsed.strip()
