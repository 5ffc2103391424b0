"""
Cosine Similarity Plugin

SimilarityPlugin backed by the similarity engine. Requires a text embedder;
resolve() refuses a configuration without one.
"""

from __future__ import annotations

from vault_build.plugins.base import PluginContext, SimilarityPlugin
from vault_build.similarity.engine import compute_similarity_map, cosine_similarity
from vault_build.types.documents import Document
from vault_build.types.results import SimilarityMap
from vault_build.utils.concurrency import CancellationToken


class CosineSimilarityPlugin(SimilarityPlugin):
    """
    Args:
        top_k: Neighbors per document (default from config)
        min_score: Neighbor score floor (default from config)
        chunk_size: Rows per work item (default from config)
        concurrency: Max chunks in flight (default from config)
    """

    def __init__(
        self,
        top_k: int | None = None,
        min_score: float | None = None,
        chunk_size: int | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.top_k = top_k if top_k is not None else 10
        self.min_score = min_score
        self.chunk_size = chunk_size if chunk_size is not None else 256
        self.concurrency = concurrency if concurrency is not None else 4
        self._explicit = {
            "top_k": top_k is not None,
            "min_score": min_score is not None,
            "chunk_size": chunk_size is not None,
            "concurrency": concurrency is not None,
        }

    async def initialize(self, context: PluginContext) -> None:
        config = context.config
        if not self._explicit["top_k"]:
            self.top_k = config.similarity_top_k
        if not self._explicit["min_score"]:
            self.min_score = config.similarity_min_score
        if not self._explicit["chunk_size"]:
            self.chunk_size = config.similarity_chunk_size
        if not self._explicit["concurrency"]:
            self.concurrency = config.similarity_concurrency

    def compute_similarity(self, a: list[float], b: list[float]) -> float:
        return cosine_similarity(a, b)

    async def generate_similarity_map(
        self,
        documents: list[Document],
        token: CancellationToken | None = None,
    ) -> SimilarityMap:
        embedded = [d for d in documents if d.embedding is not None]
        return await compute_similarity_map(
            [d.hash for d in embedded],
            [d.embedding for d in embedded if d.embedding is not None],
            top_k=self.top_k,
            min_score=self.min_score,
            chunk_size=self.chunk_size,
            concurrency=self.concurrency,
            token=token,
        )
