"""
Plugins

Capability contracts, the plugin manager and built-in implementations.

Modules:
    base: Plugin ABCs and capability keys
    manager: Registration, dependency resolution and lifecycle
    factory: Plugin list from a BuildConfig
    image: Pillow processor and histogram image embedder
    embedding: Hashing and OpenAI text embedders
    similarity: Cosine similarity plugin
"""

from vault_build.plugins.base import (
    DATABASE,
    IMAGE_EMBEDDER,
    IMAGE_PROCESSOR,
    SIMILARITY,
    TEXT_EMBEDDER,
    DatabasePlugin,
    ImageEmbeddingPlugin,
    ImageProcessorPlugin,
    Plugin,
    PluginContext,
    PluginDependency,
    PluginState,
    SimilarityPlugin,
    TextEmbeddingPlugin,
)
from vault_build.plugins.factory import plugins_from_config
from vault_build.plugins.manager import PluginManager

__all__ = [
    "IMAGE_PROCESSOR",
    "TEXT_EMBEDDER",
    "IMAGE_EMBEDDER",
    "SIMILARITY",
    "DATABASE",
    "Plugin",
    "PluginContext",
    "PluginDependency",
    "PluginState",
    "ImageProcessorPlugin",
    "TextEmbeddingPlugin",
    "ImageEmbeddingPlugin",
    "SimilarityPlugin",
    "DatabasePlugin",
    "PluginManager",
    "plugins_from_config",
]
