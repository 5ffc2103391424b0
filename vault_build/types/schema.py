"""
Frontmatter Schema Types

The inferred shape of frontmatter across all published documents.

Models:
    - PropertySchema: Inferred type and column mapping for one frontmatter key
    - SchemaStatistics: Document and property counts
    - FrontmatterSchema: Written to posts-schema.json
    - SchemaConflict, SchemaWarning, SchemaReport: Written to schema-report.json
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class PropertySchema(BaseModel):
    """
    Inferred schema of one frontmatter key.

    Attributes:
        types: Every detected type, sorted (e.g. ["array<string>", "string"])
        occurrences: Documents that set the key
        nullable: True if any document sets it to null
        recommended_type: Single type to normalise on
        column_type: DuckDB column type for recommended_type
        column_name: Key lowercased with non [a-z0-9_] characters replaced
        needs_quoting: Key is an SQL reserved word
        distribution: Count per detected type, only when types conflict
        object_shape: Sub-key -> "|"-joined types, for object values
    """

    types: list[str]
    occurrences: int
    nullable: bool = False
    recommended_type: str
    column_type: str
    column_name: str
    needs_quoting: bool = False
    distribution: dict[str, int] = Field(default_factory=dict)
    object_shape: dict[str, str] | None = None


class SchemaStatistics(BaseModel):
    total_posts: int = 0
    posts_with_frontmatter: int = 0
    unique_properties: int = 0


class FrontmatterSchema(BaseModel):
    """Schema of every frontmatter key, sorted by key."""

    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    statistics: SchemaStatistics = Field(default_factory=SchemaStatistics)


class SchemaConflict(BaseModel):
    """A key whose values disagree on type."""

    property: str
    types: list[str]
    occurrences: int
    distribution: dict[str, int]
    recommendation: str
    samples: list[Any] = Field(default_factory=list)


class SchemaWarning(BaseModel):
    """
    Attributes:
        kind: "type-conflict", "reserved-word" or "rare-property"
        property: Frontmatter key
        message: Human-readable description
    """

    kind: str
    property: str
    message: str


class SchemaReport(BaseModel):
    """Conflicts and normalisation hints for authors."""

    statistics: SchemaStatistics = Field(default_factory=SchemaStatistics)
    properties_with_conflicts: int = 0
    conflicts: list[SchemaConflict] = Field(default_factory=list)
    reserved_words: list[str] = Field(default_factory=list)
    warnings: list[SchemaWarning] = Field(default_factory=list)
    suggested_types: dict[str, str] = Field(default_factory=dict)
