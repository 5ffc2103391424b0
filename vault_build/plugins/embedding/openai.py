"""
OpenAI Text Embedder

TextEmbeddingPlugin backed by langchain-openai's OpenAIEmbeddings.

The text-embedding-3 models accept a `dimensions` argument and return
shortened vectors; ada-002 always returns its native 1536. The client is
created in initialize(), so a missing package or key marks the plugin
Failed before any document is embedded.

Example:
    >>> embedder = OpenAITextEmbedder(model="text-embedding-3-small", dimensions=256)
    >>> vectors = await embedder.batch_embed(["Hello world", "Goodbye world"])
    >>> len(vectors[0])
    256
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from vault_build.errors import PluginExecutionError
from vault_build.plugins.base import PluginContext, TextEmbeddingPlugin

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings


NATIVE_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

# Models that honour the `dimensions` request parameter
SHORTENABLE = {"text-embedding-3-large", "text-embedding-3-small"}

DEFAULT_MODEL = "text-embedding-3-small"


def _create_client(
    api_key: str | None,
    model: str,
    dimensions: int | None,
) -> "OpenAIEmbeddings":
    """
    OpenAIEmbeddings with a lazy import.

    Raises:
        ImportError: If langchain-openai is not installed
    """
    try:
        from langchain_openai import OpenAIEmbeddings
    except ImportError as e:
        raise ImportError(
            "The openai embedder requires the 'langchain-openai' package. "
            "Install with: pip install vault-build[openai]"
        ) from e

    kwargs: dict[str, object] = {"model": model}
    if dimensions is not None:
        kwargs["dimensions"] = dimensions
    if api_key:
        from pydantic import SecretStr

        kwargs["api_key"] = SecretStr(api_key)
    return OpenAIEmbeddings(**kwargs)


class OpenAITextEmbedder(TextEmbeddingPlugin):
    """
    Args:
        api_key: OpenAI API key (default: OPENAI_API_KEY)
        model: Embedding model
        dimensions: Requested vector size. Ignored for models that cannot
            shorten their output.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        dimensions: int | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        native = NATIVE_DIMENSIONS.get(model, 1536)
        if dimensions is not None and model in SHORTENABLE:
            if not 0 < dimensions <= native:
                raise ValueError(f"{model} supports 1..{native} dimensions, got {dimensions}")
            self._requested: int | None = dimensions
        else:
            self._requested = None
        self._dimensions = self._requested or native
        self._client: OpenAIEmbeddings | None = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def initialize(self, context: PluginContext) -> None:
        if self._api_key is None:
            self._api_key = context.config.openai_api_key
        self._client = _create_client(self._api_key, self._model, self._requested)
        context.logger.info(f"OpenAI embeddings: {self._model} ({self._dimensions} dims)")

    async def dispose(self) -> None:
        self._client = None

    def _require_client(self) -> "OpenAIEmbeddings":
        if self._client is None:
            self._client = _create_client(self._api_key, self._model, self._requested)
        return self._client

    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        client = self._require_client()
        # embed_documents blocks on HTTP
        vectors = await asyncio.to_thread(client.embed_documents, texts)
        if len(vectors) != len(texts):
            raise PluginExecutionError(
                self.name, f"batch of {len(texts)}", ValueError(f"got {len(vectors)} vectors")
            )
        return vectors

    async def embed(self, text: str) -> list[float]:
        client = self._require_client()
        return await asyncio.to_thread(client.embed_query, text)
