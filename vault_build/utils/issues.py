"""
Issue Collector

Append-only, thread-safe sink for build issues.

Every stage and plugin receives the same collector. Appends happen from
concurrent tasks and worker threads, so they go through a lock; the ledger is
sorted when the report is built, so completion order never leaks into output.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from typing import Any

from vault_build.types.issues import Issue, IssueReport, IssueSummary, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class IssueCollector:
    """Accumulates issues for one build run."""

    def __init__(self) -> None:
        self._issues: list[Issue] = []
        self._lock = threading.Lock()
        self._stage = "pending"

    @property
    def stage(self) -> str:
        """Stage label attached to issues that don't name one."""
        return self._stage

    def set_stage(self, stage: str) -> None:
        self._stage = stage

    def add(
        self,
        severity: Severity | str,
        category: str,
        message: str,
        *,
        subject_hash: str | None = None,
        path: str | None = None,
        stage: str | None = None,
        **context: Any,
    ) -> Issue:
        """Record one issue and log it at the matching level."""
        issue = Issue(
            severity=Severity(severity),
            stage=stage or self._stage,
            category=category,
            message=message,
            subject_hash=subject_hash,
            path=path,
            context=context,
        )
        with self._lock:
            self._issues.append(issue)
        where = f" [{path}]" if path else ""
        logger.log(_LOG_LEVELS[issue.severity], f"{category}{where}: {message}")
        return issue

    # -------------------------------------------------------------------------
    # Typed helpers
    # -------------------------------------------------------------------------

    def add_ingest_error(self, path: str, message: str) -> Issue:
        return self.add(Severity.ERROR, "ingest", message, path=path)

    def add_broken_link(self, path: str, target: str, subject_hash: str | None = None) -> Issue:
        return self.add(
            Severity.WARNING,
            "broken-link",
            f"Unresolved link target: {target}",
            path=path,
            subject_hash=subject_hash,
            target=target,
        )

    def add_missing_media(self, path: str, target: str, subject_hash: str | None = None) -> Issue:
        return self.add(
            Severity.WARNING,
            "missing-media",
            f"Referenced media not found: {target}",
            path=path,
            subject_hash=subject_hash,
            target=target,
        )

    def add_slug_conflict(self, path: str, slug: str, resolved: str) -> Issue:
        return self.add(
            Severity.INFO,
            "slug-conflict",
            f"Slug '{slug}' already taken, using '{resolved}'",
            path=path,
            slug=slug,
            resolved=resolved,
        )

    def add_duplicate_content(self, path: str, original: str, subject_hash: str) -> Issue:
        return self.add(
            Severity.WARNING,
            "duplicate-content",
            f"Identical content to {original}; kept as alias",
            path=path,
            subject_hash=subject_hash,
            original=original,
        )

    def add_media_processing_error(
        self,
        path: str,
        message: str,
        subject_hash: str | None = None,
    ) -> Issue:
        return self.add(
            Severity.WARNING,
            "media-processing",
            message,
            path=path,
            subject_hash=subject_hash,
        )

    def add_embedding_error(
        self,
        message: str,
        *,
        subject_hash: str | None = None,
        path: str | None = None,
        plugin: str | None = None,
    ) -> Issue:
        return self.add(
            Severity.WARNING,
            "embedding",
            message,
            subject_hash=subject_hash,
            path=path,
            plugin=plugin,
        )

    def add_frontmatter_schema(
        self,
        key: str,
        message: str,
        kind: str,
        severity: Severity = Severity.WARNING,
    ) -> Issue:
        return self.add(severity, "frontmatter-schema", message, property=key, kind=kind)

    def add_plugin_error(
        self,
        plugin: str,
        message: str,
        severity: Severity = Severity.ERROR,
    ) -> Issue:
        return self.add(severity, "plugin", message, plugin=plugin)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    @property
    def issues(self) -> list[Issue]:
        """Snapshot of recorded issues in deterministic order."""
        with self._lock:
            snapshot = list(self._issues)
        return sorted(snapshot, key=Issue.sort_key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._issues)

    def count_at_least(self, severity: Severity | str) -> int:
        """Number of issues at or above the given severity."""
        floor = Severity(severity).rank
        with self._lock:
            return sum(1 for i in self._issues if i.severity.rank >= floor)

    def report(self) -> IssueReport:
        """Build the ledger with summary counts."""
        issues = self.issues
        summary = IssueSummary(
            total=len(issues),
            by_severity=dict(sorted(Counter(i.severity.value for i in issues).items())),
            by_category=dict(sorted(Counter(i.category for i in issues).items())),
            by_stage=dict(sorted(Counter(i.stage for i in issues).items())),
        )
        return IssueReport(summary=summary, issues=issues)
