"""
Type Definitions

Pydantic models for all data structures.

Ingest Models:
    - Document, TocEntry - Parsed markdown documents
    - MediaSource, VaultSnapshot - Raw ingest output

Media Models:
    - MediaAsset, MediaVariant - Processed media and generated variants
    - ImageMetadata, ProcessOptions, VariantResult, SizeSpec - Processor contract
    - CacheStats - Cache hit/miss counters

Result Models:
    - EmbeddingVector, EmbeddingSet - Embedding output
    - SimilarityMap, Neighbor - Similarity output
    - DatabaseInputs, DatabaseBuildResult - Database contract
    - BuildManifest, ManifestEntry - Integrity manifest
    - BuildState, BuildStats, BuildResult - Orchestrator output

Schema Models:
    - FrontmatterSchema, PropertySchema, SchemaReport - Frontmatter schema scan

Issue Models:
    - Issue, Severity, IssueReport, IssueSummary
"""

from vault_build.types.documents import Document, MediaSource, TocEntry, VaultSnapshot
from vault_build.types.issues import Issue, IssueReport, IssueSummary, Severity
from vault_build.types.media import (
    CacheStats,
    ImageMetadata,
    MediaAsset,
    MediaVariant,
    ProcessOptions,
    SizeSpec,
    VariantResult,
)
from vault_build.types.results import (
    BuildManifest,
    BuildResult,
    BuildState,
    BuildStats,
    DatabaseBuildResult,
    DatabaseInputs,
    EmbeddingSet,
    EmbeddingVector,
    ManifestEntry,
    Neighbor,
    SimilarityMap,
)
from vault_build.types.schema import FrontmatterSchema, PropertySchema, SchemaReport

__all__ = [
    # Ingest
    "Document",
    "MediaSource",
    "TocEntry",
    "VaultSnapshot",
    # Media
    "CacheStats",
    "ImageMetadata",
    "MediaAsset",
    "MediaVariant",
    "ProcessOptions",
    "SizeSpec",
    "VariantResult",
    # Results
    "BuildManifest",
    "BuildResult",
    "BuildState",
    "BuildStats",
    "DatabaseBuildResult",
    "DatabaseInputs",
    "EmbeddingSet",
    "EmbeddingVector",
    "ManifestEntry",
    "Neighbor",
    "SimilarityMap",
    # Schema
    "FrontmatterSchema",
    "PropertySchema",
    "SchemaReport",
    # Issues
    "Issue",
    "IssueReport",
    "IssueSummary",
    "Severity",
]
