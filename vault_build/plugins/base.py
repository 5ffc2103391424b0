"""
Plugin Interfaces

Base class and per-capability contracts for pipeline plugins.

Each plugin implements exactly one capability, identified by its `name`,
and declares dependencies on other capabilities. A dependency is either
required (missing => build-fatal ConfigurationError) or optional (missing =>
the plugin degrades and sees None from get_plugin()).

Capabilities:
    imageProcessor - ImageProcessorPlugin
    textEmbedder   - TextEmbeddingPlugin
    imageEmbedder  - ImageEmbeddingPlugin
    similarity     - SimilarityPlugin (requires textEmbedder)
    database       - DatabasePlugin (optionally uses textEmbedder)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

if TYPE_CHECKING:
    from vault_build.config import BuildConfig
    from vault_build.types.documents import Document
    from vault_build.types.media import ImageMetadata, ProcessOptions, VariantResult
    from vault_build.types.results import DatabaseBuildResult, DatabaseInputs, SimilarityMap
    from vault_build.utils.concurrency import CancellationToken
    from vault_build.utils.issues import IssueCollector

IMAGE_PROCESSOR = "imageProcessor"
TEXT_EMBEDDER = "textEmbedder"
IMAGE_EMBEDDER = "imageEmbedder"
SIMILARITY = "similarity"
DATABASE = "database"

P = TypeVar("P", bound="Plugin")


class PluginState(str, Enum):
    REGISTERED = "registered"
    RESOLVED = "resolved"
    INITIALIZED = "initialized"
    FAILED = "failed"


@dataclass(frozen=True)
class PluginDependency:
    """A dependency on another capability."""

    name: str
    required: bool = True


@dataclass(frozen=True)
class PluginContext:
    """
    What a plugin sees during initialize().

    Attributes:
        output_dir: Staging root of the current build
        issues: Issue sink
        config: Build configuration
        get_plugin: Read-only capability lookup (None when absent or failed)
        logger: Logger named after the plugin
    """

    output_dir: Path
    issues: "IssueCollector"
    config: "BuildConfig"
    get_plugin: Callable[[str], "Plugin | None"]
    logger: logging.Logger


class Plugin(ABC):
    """Base class for all plugins."""

    name: ClassVar[str]
    """Capability key, unique within a build"""

    dependencies: ClassVar[tuple[PluginDependency, ...]] = ()

    @property
    def requires(self) -> frozenset[str]:
        """Capabilities this plugin cannot run without."""
        return frozenset(d.name for d in self.dependencies if d.required)

    @property
    def optional(self) -> frozenset[str]:
        """Capabilities this plugin uses when present."""
        return frozenset(d.name for d in self.dependencies if not d.required)

    async def initialize(self, context: PluginContext) -> None:
        """Called once per build, after every dependency has initialized."""

    async def dispose(self) -> None:
        """Called once per build, in reverse initialization order."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ImageProcessorPlugin(Plugin):
    """Resizes and transcodes images."""

    name: ClassVar[str] = IMAGE_PROCESSOR

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        """Whether this processor can decode the file."""
        ...

    @abstractmethod
    async def get_metadata(self, path: Path) -> "ImageMetadata":
        """Width, height and format of the source image."""
        ...

    @abstractmethod
    async def process(
        self,
        input_path: Path,
        output_path: Path,
        options: "ProcessOptions",
    ) -> "VariantResult":
        """Write one resized/transcoded variant."""
        ...

    @abstractmethod
    async def copy(self, input_path: Path, output_path: Path) -> None:
        """Copy the source verbatim."""
        ...


class TextEmbeddingPlugin(Plugin):
    """Embeds document text."""

    name: ClassVar[str] = TEXT_EMBEDDER

    @property
    @abstractmethod
    def model(self) -> str:
        """Model name."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Embedding dimensions."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...

    @abstractmethod
    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for texts (same order as input)."""
        ...


class ImageEmbeddingPlugin(Plugin):
    """Embeds images."""

    name: ClassVar[str] = IMAGE_EMBEDDER

    @property
    @abstractmethod
    def model(self) -> str:
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        ...

    @abstractmethod
    async def embed_file(self, path: Path) -> list[float]:
        ...

    @abstractmethod
    async def embed_buffer(self, data: bytes, mime_type: str) -> list[float]:
        ...


class SimilarityPlugin(Plugin):
    """Pairwise document similarity. Cannot run without a text embedder."""

    name: ClassVar[str] = SIMILARITY
    dependencies: ClassVar[tuple[PluginDependency, ...]] = (
        PluginDependency(TEXT_EMBEDDER, required=True),
    )

    @abstractmethod
    def compute_similarity(self, a: list[float], b: list[float]) -> float:
        ...

    @abstractmethod
    async def generate_similarity_map(
        self,
        documents: list["Document"],
        token: "CancellationToken | None" = None,
    ) -> "SimilarityMap":
        ...


class DatabasePlugin(Plugin):
    """Assembles the queryable database artifact."""

    name: ClassVar[str] = DATABASE
    dependencies: ClassVar[tuple[PluginDependency, ...]] = (
        PluginDependency(TEXT_EMBEDDER, required=False),
    )

    @abstractmethod
    async def build(self, inputs: "DatabaseInputs") -> "DatabaseBuildResult":
        ...


def describe(plugin: Plugin) -> dict[str, Any]:
    """Summary used by the CLI and logs."""
    return {
        "name": plugin.name,
        "class": type(plugin).__name__,
        "requires": sorted(plugin.requires),
        "optional": sorted(plugin.optional),
    }
