"""
Result Types

Models produced by the later stages and returned to callers:

    - EmbeddingVector, EmbeddingSet: Embedding Pipeline output
    - Neighbor, SimilarityMap: Similarity Engine output
    - DatabaseInputs, DatabaseBuildResult: Database Builder contract
    - ManifestEntry, BuildManifest: Output Writer output
    - BuildState, BuildStats, BuildResult: Orchestrator output
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from vault_build.types.documents import Document
from vault_build.types.issues import Issue
from vault_build.types.media import MediaAsset
from vault_build.types.schema import FrontmatterSchema


class EmbeddingVector(BaseModel):
    """One embedding owned by a document or media asset."""

    owner_hash: str
    model: str
    dimensions: int
    values: list[float]


class EmbeddingSet(BaseModel):
    """Vectors from one embedder, keyed by owner hash."""

    model: str
    dimensions: int
    vectors: dict[str, EmbeddingVector] = Field(default_factory=dict)

    def as_map(self) -> dict[str, list[float]]:
        return {h: self.vectors[h].values for h in sorted(self.vectors)}


# -----------------------------------------------------------------------------
# Similarity
# -----------------------------------------------------------------------------


class Neighbor(BaseModel):
    hash: str
    score: float


class SimilarityMap(BaseModel):
    """
    Pairwise scores and per-document neighbor lists.

    pair_scores keys are "{hash_a}-{hash_b}" with the hashes sorted.
    neighbors lists are sorted by descending score and never contain the
    owning document.
    """

    pair_scores: dict[str, float] = Field(default_factory=dict)
    neighbors: dict[str, list[Neighbor]] = Field(default_factory=dict)

    def score(self, a: str, b: str) -> float | None:
        lo, hi = sorted((a, b))
        return self.pair_scores.get(f"{lo}-{hi}")


# -----------------------------------------------------------------------------
# Database
# -----------------------------------------------------------------------------


class DatabaseInputs(BaseModel):
    """Everything the database builder assembles."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    documents: list[Document]
    media: list[MediaAsset]
    embeddings: EmbeddingSet | None = None
    frontmatter_schema: FrontmatterSchema | None = None
    output_dir: Path


class DatabaseBuildResult(BaseModel):
    artifact_path: str
    table_names: list[str]
    row_counts: dict[str, int]


# -----------------------------------------------------------------------------
# Manifest and build result
# -----------------------------------------------------------------------------


class ManifestEntry(BaseModel):
    path: str
    hash: str
    size: int


class BuildManifest(BaseModel):
    """Integrity listing of every published artifact, sorted by hash."""

    version: int = 1
    entries: list[ManifestEntry] = Field(default_factory=list)

    def find(self, path: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None

    @property
    def paths(self) -> list[str]:
        return sorted(e.path for e in self.entries)


class BuildState(str, Enum):
    """Orchestrator states, in the order a successful build visits them."""

    PENDING = "pending"
    INGESTING = "ingesting"
    PLUGIN_INIT = "plugin_init"
    PROCESSING_MEDIA = "processing_media"
    COMPUTING_EMBEDDINGS = "computing_embeddings"
    COMPUTING_SIMILARITY = "computing_similarity"
    BUILDING_DATABASE = "building_database"
    WRITING_MANIFEST = "writing_manifest"
    DONE = "done"
    FAILED = "failed"


class BuildStats(BaseModel):
    documents: int = 0
    media: int = 0
    variants: int = 0
    text_embeddings: int = 0
    image_embeddings: int = 0
    similarity_pairs: int = 0
    cache_hits: int = 0
    cache_misses: int = 0


class BuildResult(BaseModel):
    """
    Outcome of one build run.

    A non-strict run can succeed with issues present. Only a successful run
    carries a manifest.
    """

    success: bool
    state: BuildState
    manifest: BuildManifest | None = None
    issues: list[Issue] = Field(default_factory=list)
    error: str | None = None
    output_dir: str | None = None
    duration_seconds: float = 0.0
    stats: BuildStats = Field(default_factory=BuildStats)
