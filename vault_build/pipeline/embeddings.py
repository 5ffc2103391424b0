"""
Embedding Pipeline

Attaches text embeddings to documents and image embeddings to media assets.

Text:
    Documents are embedded in batches of `embedding_batch_size` on the
    bounded pool. The input is the title, a blank line, then the plain text,
    truncated to `embedding_max_chars`. A failed batch falls back to one
    embed() call per document; a document that still fails, or whose vector
    has the wrong length, records an `embedding` issue and stays unembedded.

Images:
    Each raster asset is embedded from its source file with embed_file().

Vectors from the previously published embedding map are reused when the
model and dimensions match, so unchanged content is never re-embedded.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

from vault_build.config import BuildConfig
from vault_build.errors import BuildCancelledError
from vault_build.plugins.base import ImageEmbeddingPlugin, TextEmbeddingPlugin
from vault_build.types.documents import Document
from vault_build.types.media import MediaAsset
from vault_build.types.results import EmbeddingSet, EmbeddingVector
from vault_build.utils.concurrency import CancellationToken, chunked, run_bounded
from vault_build.utils.issues import IssueCollector

logger = logging.getLogger(__name__)

# Formats an image embedder is not expected to decode
_SKIP_MIME_TYPES = {"image/svg+xml"}


def document_text(doc: Document, max_chars: int) -> str:
    """Text sent to the embedder for one document."""
    text = f"{doc.title}\n\n{doc.plain_text}".strip()
    return text[:max_chars]


def reusable_vectors(
    previous: dict[str, Any] | None,
    model: str,
    dimensions: int,
) -> dict[str, list[float]]:
    """Vectors from a previous embedding map, if it came from the same model."""
    if not previous:
        return {}
    if previous.get("model") != model or previous.get("dimensions") != dimensions:
        logger.info("Previous embeddings used a different model; re-embedding everything")
        return {}
    vectors = previous.get("vectors") or {}
    return {
        h: v for h, v in vectors.items()
        if isinstance(v, list) and len(v) == dimensions
    }


def embedding_map(embeddings: EmbeddingSet) -> dict[str, Any]:
    """Serializable {model, dimensions, vectors} form keyed by hash."""
    return {
        "model": embeddings.model,
        "dimensions": embeddings.dimensions,
        "vectors": embeddings.as_map(),
    }


class EmbeddingPipeline:
    """
    Runs the configured embedders.

    Args:
        config: Build configuration
        issues: Issue sink
        text_embedder: Text embedder, or None
        image_embedder: Image embedder, or None
        source_dir: Vault root (image embeddings read source files)
        previous_text: Previous posts embedding map
        previous_image: Previous media embedding map
        token: Cancellation token
    """

    def __init__(
        self,
        *,
        config: BuildConfig,
        issues: IssueCollector,
        text_embedder: TextEmbeddingPlugin | None = None,
        image_embedder: ImageEmbeddingPlugin | None = None,
        source_dir: Path | None = None,
        previous_text: dict[str, Any] | None = None,
        previous_image: dict[str, Any] | None = None,
        token: CancellationToken | None = None,
    ):
        self.config = config
        self.issues = issues
        self.text_embedder = text_embedder
        self.image_embedder = image_embedder
        self.source_dir = Path(source_dir) if source_dir is not None else None
        self.previous_text = previous_text
        self.previous_image = previous_image
        self.token = token or CancellationToken()
        self.reused = 0

    # -------------------------------------------------------------------------
    # Text
    # -------------------------------------------------------------------------

    async def embed_documents(
        self,
        documents: list[Document],
    ) -> tuple[list[Document], EmbeddingSet | None]:
        """
        Embed documents.

        Returns:
            (documents with `embedding` attached where available, vectors)
            The vectors are None when no text embedder is configured.
        """
        embedder = self.text_embedder
        if embedder is None:
            return documents, None

        model, dimensions = embedder.model, embedder.dimensions
        cached = reusable_vectors(self.previous_text, model, dimensions)
        vectors: dict[str, list[float]] = {
            d.hash: cached[d.hash] for d in documents if d.hash in cached
        }
        self.reused += len(vectors)

        pending = sorted((d for d in documents if d.hash not in vectors), key=lambda d: d.hash)
        batches = chunked(pending, self.config.embedding_batch_size) if pending else []

        async def embed_batch(batch: list[Document]) -> list[list[float] | None]:
            texts = [document_text(d, self.config.embedding_max_chars) for d in batch]
            try:
                result = await embedder.batch_embed(texts)
                if len(result) != len(batch):
                    raise ValueError(f"expected {len(batch)} vectors, got {len(result)}")
                return [self._checked(v, d, dimensions) for v, d in zip(result, batch)]
            except BuildCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Batch embedding failed ({e}); retrying {len(batch)} items singly")

            out: list[list[float] | None] = []
            for doc, text in zip(batch, texts):
                self.token.raise_if_cancelled()
                try:
                    vector = await embedder.embed(text)
                except BuildCancelledError:
                    raise
                except Exception as e:
                    self.issues.add_embedding_error(
                        f"Embedding failed: {e}",
                        subject_hash=doc.hash,
                        path=doc.path,
                        plugin=embedder.name,
                    )
                    out.append(None)
                    continue
                out.append(self._checked(vector, doc, dimensions))
            return out

        results = await run_bounded(
            batches,
            embed_batch,
            concurrency=self.config.embedding_concurrency,
            token=self.token,
        )
        for batch, batch_vectors in zip(batches, results):
            for doc, vector in zip(batch, batch_vectors):
                if vector is not None:
                    vectors[doc.hash] = vector

        embeddings = EmbeddingSet(
            model=model,
            dimensions=dimensions,
            vectors={
                h: EmbeddingVector(owner_hash=h, model=model, dimensions=dimensions, values=vectors[h])
                for h in sorted(vectors)
            },
        )
        embedded = [
            d.model_copy(update={"embedding": vectors[d.hash]}) if d.hash in vectors else d
            for d in documents
        ]
        logger.info(
            f"Text embeddings: {len(vectors)}/{len(documents)} documents "
            f"({self.reused} reused, model={model})"
        )
        return embedded, embeddings

    def _checked(
        self,
        vector: list[float],
        owner: Document | MediaAsset,
        dimensions: int,
    ) -> list[float] | None:
        """The vector as floats, or None (with an issue) if it is malformed."""
        path = owner.path if isinstance(owner, Document) else owner.original_path
        values = [float(x) for x in vector]
        if len(values) != dimensions:
            self.issues.add_embedding_error(
                f"Embedding has {len(values)} dimensions, expected {dimensions}",
                subject_hash=owner.hash,
                path=path,
            )
            return None
        if not all(math.isfinite(x) for x in values):
            self.issues.add_embedding_error(
                "Embedding contains non-finite values",
                subject_hash=owner.hash,
                path=path,
            )
            return None
        return values

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    async def embed_media(
        self,
        assets: list[MediaAsset],
    ) -> tuple[list[MediaAsset], EmbeddingSet | None]:
        """Embed raster media assets from their source files."""
        embedder = self.image_embedder
        if embedder is None or self.source_dir is None:
            return assets, None

        model, dimensions = embedder.model, embedder.dimensions
        cached = reusable_vectors(self.previous_image, model, dimensions)
        vectors: dict[str, list[float]] = {
            a.hash: cached[a.hash] for a in assets if a.hash in cached
        }
        pending = [
            a for a in assets
            if a.hash not in vectors and a.mime_type.startswith("image/")
            and a.mime_type not in _SKIP_MIME_TYPES
        ]
        source_dir = self.source_dir

        async def embed_one(asset: MediaAsset) -> list[float] | None:
            try:
                vector = await embedder.embed_file(source_dir / asset.original_path)
            except BuildCancelledError:
                raise
            except Exception as e:
                self.issues.add_embedding_error(
                    f"Image embedding failed: {e}",
                    subject_hash=asset.hash,
                    path=asset.original_path,
                    plugin=embedder.name,
                )
                return None
            return self._checked(vector, asset, dimensions)

        results = await run_bounded(
            pending,
            embed_one,
            concurrency=self.config.embedding_concurrency,
            token=self.token,
        )
        for asset, vector in zip(pending, results):
            if vector is not None:
                vectors[asset.hash] = vector

        embeddings = EmbeddingSet(
            model=model,
            dimensions=dimensions,
            vectors={
                h: EmbeddingVector(owner_hash=h, model=model, dimensions=dimensions, values=vectors[h])
                for h in sorted(vectors)
            },
        )
        embedded = [
            a.model_copy(update={"embedding": vectors[a.hash]}) if a.hash in vectors else a
            for a in assets
        ]
        logger.info(f"Image embeddings: {len(vectors)}/{len(assets)} assets (model={model})")
        return embedded, embeddings
