"""
Color Histogram Image Embedder

ImageEmbeddingPlugin computing a joint RGB histogram (4 bins per channel,
64 dimensions), L2-normalized. Needs no model download or network access and
gives identical vectors for identical pixels.
"""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import numpy as np
from PIL import Image

from vault_build.plugins.base import ImageEmbeddingPlugin

_BINS_PER_CHANNEL = 4
_THUMBNAIL_SIZE = (64, 64)


class ColorHistogramImageEmbedder(ImageEmbeddingPlugin):
    """Joint RGB histogram embeddings."""

    @property
    def model(self) -> str:
        return f"rgb-histogram-{_BINS_PER_CHANNEL ** 3}"

    @property
    def dimensions(self) -> int:
        return _BINS_PER_CHANNEL ** 3

    async def embed_file(self, path: Path) -> list[float]:
        def _embed() -> list[float]:
            with Image.open(path) as im:
                return _histogram(im)

        return await asyncio.to_thread(_embed)

    async def embed_buffer(self, data: bytes, mime_type: str) -> list[float]:
        def _embed() -> list[float]:
            with Image.open(io.BytesIO(data)) as im:
                return _histogram(im)

        return await asyncio.to_thread(_embed)


def _histogram(im: Image.Image) -> list[float]:
    rgb = im.convert("RGB").resize(_THUMBNAIL_SIZE, resample=Image.Resampling.BILINEAR)
    pixels = np.asarray(rgb, dtype=np.uint16).reshape(-1, 3)
    bins = pixels * _BINS_PER_CHANNEL // 256
    index = bins[:, 0] * _BINS_PER_CHANNEL**2 + bins[:, 1] * _BINS_PER_CHANNEL + bins[:, 2]
    counts = np.bincount(index, minlength=_BINS_PER_CHANNEL**3).astype(np.float64)
    norm = np.linalg.norm(counts)
    if norm > 0:
        counts /= norm
    return counts.tolist()
