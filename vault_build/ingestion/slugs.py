"""
Slug Assignment

Rules, in priority order:
    1. Frontmatter `slug` (slugified)
    2. `index.md` takes its parent folder name
    3. The filename stem

Conflicts receive a numeric suffix starting at 2 ("notes", "notes-2", ...).
Callers must assign in sorted path order for suffixes to be reproducible.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from vault_build.utils.issues import IssueCollector
from vault_build.utils.text import slugify


def base_slug(path: str, frontmatter: dict[str, Any]) -> str:
    """Unsuffixed slug for a document at a vault-relative path."""
    explicit = frontmatter.get("slug")
    if isinstance(explicit, str) and explicit.strip():
        return slugify(explicit)

    p = PurePosixPath(path)
    if p.stem.lower() == "index" and p.parent.name:
        return slugify(p.parent.name)
    return slugify(p.stem)


class SlugManager:
    """Hands out unique slugs and reports conflicts."""

    def __init__(self, issues: IssueCollector | None = None) -> None:
        self._taken: set[str] = set()
        self._issues = issues

    def assign(self, path: str, frontmatter: dict[str, Any]) -> str:
        """Reserve and return a unique slug for the document."""
        slug = base_slug(path, frontmatter)
        if slug not in self._taken:
            self._taken.add(slug)
            return slug

        n = 2
        while f"{slug}-{n}" in self._taken:
            n += 1
        resolved = f"{slug}-{n}"
        self._taken.add(resolved)
        if self._issues is not None:
            self._issues.add_slug_conflict(path, slug, resolved)
        return resolved

    def __contains__(self, slug: str) -> bool:
        return slug in self._taken
