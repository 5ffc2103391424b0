"""
Issue Types

Issues are non-fatal problems found during a build (broken links, missing
media, per-item plugin failures). They accumulate in an IssueCollector and are
written to the issue ledger (processor-issues.json).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Issue severity, ordered info < warning < error."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.ERROR: 2}


class Issue(BaseModel):
    """
    A single recorded problem.

    Attributes:
        severity: error, warning or info
        stage: Build state the issue was raised in (e.g. "ingesting")
        category: Machine-readable kind (e.g. "broken-link", "embedding")
        message: Human-readable description
        subject_hash: Content hash of the affected document or media, if known
        path: Vault-relative path of the affected file, if known
        context: Extra structured detail (link target, plugin name, ...)
    """

    severity: Severity
    stage: str
    category: str
    message: str
    subject_hash: str | None = None
    path: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    def sort_key(self) -> tuple[str, str, str, str, str]:
        """Deterministic ledger order independent of completion order."""
        return (
            self.stage,
            self.path or "",
            self.category,
            self.subject_hash or "",
            self.message,
        )


class IssueSummary(BaseModel):
    """Counts of issues by severity, category and stage."""

    total: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_stage: dict[str, int] = Field(default_factory=dict)


class IssueReport(BaseModel):
    """The issue ledger written with every build."""

    summary: IssueSummary = Field(default_factory=IssueSummary)
    issues: list[Issue] = Field(default_factory=list)
