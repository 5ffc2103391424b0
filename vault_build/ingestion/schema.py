"""
Frontmatter Schema Scan

Infers a type for every frontmatter key across the published documents and
reports keys whose values disagree.

Detected types:
    null, boolean, number, string
    date:YYYY-MM-DD, date:ISO8601   - strings in those shapes (YAML dates are
                                      already ISO strings after parsing)
    array:empty, array<T>, array<mixed>
    object

The schema drives the typed frontmatter tables in the database; the report
lists conflicts, SQL reserved words and rarely used keys.

Example:
    >>> schema, report = scan_frontmatter_schema(snapshot.documents, issues)
    >>> schema.properties["date"].recommended_type
    'date:YYYY-MM-DD'
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any

from vault_build.types.documents import Document
from vault_build.types.issues import Severity
from vault_build.types.schema import (
    FrontmatterSchema,
    PropertySchema,
    SchemaConflict,
    SchemaReport,
    SchemaStatistics,
    SchemaWarning,
)
from vault_build.utils.issues import IssueCollector

logger = logging.getLogger(__name__)

RESERVED_WORDS = frozenset({
    "order", "group", "index", "key", "table", "column",
    "update", "delete", "insert", "select", "where", "from", "to",
    "limit", "offset", "join", "union", "having", "exists",
})

# A key set by fewer than this share of documents with frontmatter is "rare"
RARE_THRESHOLD = 0.1

SAMPLE_LIMIT = 3

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}")
_COLUMN_PATTERN = re.compile(r"[^a-zA-Z0-9_]")

_COLUMN_TYPES = {
    "boolean": "BOOLEAN",
    "number": "DOUBLE",
    "string": "VARCHAR",
    "date:YYYY-MM-DD": "DATE",
    "date:ISO8601": "TIMESTAMP",
    "object": "JSON",
}


def detect_type(value: Any) -> str:
    if value is None:
        return "null"
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        if _DATE_PATTERN.match(value):
            return "date:YYYY-MM-DD"
        if _DATETIME_PATTERN.match(value):
            return "date:ISO8601"
        return "string"
    if isinstance(value, list):
        if not value:
            return "array:empty"
        element_types = {detect_type(v) for v in value}
        if len(element_types) == 1:
            return f"array<{element_types.pop()}>"
        return "array<mixed>"
    if isinstance(value, dict):
        return "object"
    return "unknown"


def recommend_type(types: list[str], distribution: dict[str, int]) -> str:
    """
    Pick one type to normalise a key on.

    Rules, in order:
        - A single type wins
        - Any date type wins, ISO8601 over YYYY-MM-DD
        - A string/array mix resolves to the array type (e.g. tags)
        - Otherwise the most common type, ties broken by name
    """
    if len(types) == 1:
        return types[0]
    dates = sorted(t for t in types if t.startswith("date:"))
    if dates:
        return "date:ISO8601" if "date:ISO8601" in dates else dates[0]
    arrays = sorted(t for t in types if t.startswith("array<"))
    if "string" in types and arrays:
        return arrays[0]
    return min(types, key=lambda t: (-distribution.get(t, 0), t))


def column_type(detected: str) -> str:
    """DuckDB column type for a detected type; arrays are stored as JSON."""
    if detected.startswith("array"):
        return "JSON"
    return _COLUMN_TYPES.get(detected, "VARCHAR")


def column_name(key: str) -> str:
    return _COLUMN_PATTERN.sub("_", key).lower()


class _KeyStats:
    """Running type information for one key."""

    def __init__(self) -> None:
        self.distribution: Counter[str] = Counter()
        self.occurrences = 0
        self.nullable = False
        self.samples: list[Any] = []
        self.object_shape: dict[str, set[str]] | None = None

    def add(self, value: Any) -> None:
        detected = detect_type(value)
        self.distribution[detected] += 1
        self.occurrences += 1
        if value is None:
            self.nullable = True
        elif len(self.samples) < SAMPLE_LIMIT:
            self.samples.append(value)
        if isinstance(value, dict):
            if self.object_shape is None:
                self.object_shape = {}
            for sub_key, sub_value in value.items():
                self.object_shape.setdefault(sub_key, set()).add(detect_type(sub_value))


def scan_frontmatter_schema(
    documents: list[Document],
    issues: IssueCollector | None = None,
) -> tuple[FrontmatterSchema, SchemaReport]:
    """
    Infer the frontmatter schema and build the conflict report.

    Documents are scanned in path order, so samples are deterministic.

    Args:
        documents: Published documents
        issues: Optional sink; conflicts are recorded as warnings, reserved
            words and rare keys as info

    Returns:
        (schema, report)
    """
    keys: dict[str, _KeyStats] = {}
    with_frontmatter = 0
    for doc in sorted(documents, key=lambda d: d.path):
        if not doc.frontmatter:
            continue
        with_frontmatter += 1
        for key, value in doc.frontmatter.items():
            keys.setdefault(key, _KeyStats()).add(value)

    statistics = SchemaStatistics(
        total_posts=len(documents),
        posts_with_frontmatter=with_frontmatter,
        unique_properties=len(keys),
    )
    schema = FrontmatterSchema(statistics=statistics)
    report = SchemaReport(statistics=statistics)

    for key in sorted(keys):
        stats = keys[key]
        types = sorted(stats.distribution)
        distribution = dict(sorted(stats.distribution.items()))
        recommended = recommend_type(types, distribution)
        reserved = key.lower() in RESERVED_WORDS

        schema.properties[key] = PropertySchema(
            types=types,
            occurrences=stats.occurrences,
            nullable=stats.nullable,
            recommended_type=recommended,
            column_type=column_type(recommended),
            column_name=column_name(key),
            needs_quoting=reserved,
            distribution=distribution if len(types) > 1 else {},
            object_shape=(
                {k: "|".join(sorted(v)) for k, v in sorted(stats.object_shape.items())}
                if stats.object_shape is not None
                else None
            ),
        )

        if reserved:
            report.reserved_words.append(key)
            report.warnings.append(
                SchemaWarning(
                    kind="reserved-word",
                    property=key,
                    message=f"Property '{key}' is an SQL reserved word and must be quoted in queries",
                )
            )
        if len(types) > 1:
            report.conflicts.append(
                SchemaConflict(
                    property=key,
                    types=types,
                    occurrences=stats.occurrences,
                    distribution=distribution,
                    recommendation=recommended,
                    samples=stats.samples,
                )
            )
            report.suggested_types[key] = recommended
            report.warnings.append(
                SchemaWarning(
                    kind="type-conflict",
                    property=key,
                    message=f"Property '{key}' has conflicting types: {', '.join(types)}",
                )
            )
        if stats.occurrences < with_frontmatter * RARE_THRESHOLD:
            report.warnings.append(
                SchemaWarning(
                    kind="rare-property",
                    property=key,
                    message=f"Property '{key}' appears in less than 10% of posts",
                )
            )

    report.properties_with_conflicts = len(report.conflicts)

    if issues is not None:
        for warning in report.warnings:
            severity = Severity.WARNING if warning.kind == "type-conflict" else Severity.INFO
            issues.add_frontmatter_schema(warning.property, warning.message, warning.kind, severity)

    logger.info(
        f"Frontmatter schema: {statistics.unique_properties} properties across "
        f"{with_frontmatter} documents, {report.properties_with_conflicts} with conflicts"
    )
    return schema, report
