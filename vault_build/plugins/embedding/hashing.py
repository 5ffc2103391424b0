"""
Hashing Text Embedder

Deterministic bag-of-words embeddings via the hashing trick: each token
(and each adjacent token pair) is hashed to a signed bucket, and the bucket
counts are L2-normalized. Needs no network access, so it is the default
embedder for offline builds and tests.

Texts with no tokens embed to the zero vector.
"""

from __future__ import annotations

import asyncio
import hashlib
import re

import numpy as np

from vault_build.plugins.base import TextEmbeddingPlugin

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


class HashingTextEmbedder(TextEmbeddingPlugin):
    """
    Feature-hashing text embedder.

    Args:
        dimensions: Vector size
        bigrams: Also hash adjacent token pairs
    """

    def __init__(self, dimensions: int = 256, bigrams: bool = True) -> None:
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self._dimensions = dimensions
        self._bigrams = bigrams

    @property
    def model(self) -> str:
        suffix = "-bigram" if self._bigrams else ""
        return f"hashing-{self._dimensions}{suffix}"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._embed_sync, text)

    async def batch_embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(lambda: [self._embed_sync(t) for t in texts])

    def _embed_sync(self, text: str) -> list[float]:
        tokens = _TOKEN_PATTERN.findall(text.lower())
        features = list(tokens)
        if self._bigrams:
            features.extend(f"{a} {b}" for a, b in zip(tokens, tokens[1:]))

        vector = np.zeros(self._dimensions, dtype=np.float64)
        for feature in features:
            digest = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
            value = int.from_bytes(digest, "little")
            sign = 1.0 if value & 1 else -1.0
            vector[(value >> 1) % self._dimensions] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()
