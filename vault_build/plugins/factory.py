"""
Plugin Factory

Builds the plugin list described by a BuildConfig.

Registration order is image processor, text embedder, image embedder,
similarity, database. That order breaks ties during dependency resolution.
"""

from __future__ import annotations

from vault_build.config import BuildConfig
from vault_build.errors import ConfigurationError
from vault_build.plugins.base import Plugin

IMAGE_PROCESSORS = ("none", "pillow")
TEXT_EMBEDDERS = ("none", "hashing", "openai")
IMAGE_EMBEDDERS = ("none", "histogram")


def plugins_from_config(config: BuildConfig) -> list[Plugin]:
    """
    Instantiate the configured plugins.

    Similarity without a text embedder is returned as configured; resolve()
    then rejects it with MissingDependencyError.

    Raises:
        ConfigurationError: If a plugin name is unknown
    """
    plugins: list[Plugin] = []

    processor = config.image_processor.lower()
    if processor not in IMAGE_PROCESSORS:
        raise ConfigurationError(f"Unknown image processor: {config.image_processor}")
    if processor == "pillow":
        from vault_build.plugins.image import PillowImageProcessor

        plugins.append(PillowImageProcessor())

    provider = config.embedding_provider.lower()
    if provider not in TEXT_EMBEDDERS:
        raise ConfigurationError(f"Unknown embedding provider: {config.embedding_provider}")
    if provider == "hashing":
        from vault_build.plugins.embedding import HashingTextEmbedder

        plugins.append(HashingTextEmbedder(dimensions=config.embedding_dimensions))
    elif provider == "openai":
        from vault_build.plugins.embedding import OpenAITextEmbedder

        plugins.append(
            OpenAITextEmbedder(
                api_key=config.openai_api_key,
                model=config.embedding_model,
                dimensions=config.embedding_dimensions,
            )
        )

    image_embedder = config.image_embedder.lower()
    if image_embedder not in IMAGE_EMBEDDERS:
        raise ConfigurationError(f"Unknown image embedder: {config.image_embedder}")
    if image_embedder == "histogram":
        from vault_build.plugins.image import ColorHistogramImageEmbedder

        plugins.append(ColorHistogramImageEmbedder())

    if config.similarity_enabled:
        from vault_build.plugins.similarity import CosineSimilarityPlugin

        plugins.append(CosineSimilarityPlugin())

    if config.database_enabled:
        from vault_build.storage.database import ParquetDatabasePlugin

        plugins.append(ParquetDatabasePlugin())

    return plugins
