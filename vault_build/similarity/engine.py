"""
Similarity Engine

All-pairs cosine similarity between document embeddings.

Algorithm:
    1. Order documents by hash (reproducible row order)
    2. Compute row chunks of 1 - cosine distance with scipy's cdist on the
       bounded worker pool
    3. Zero-norm vectors score 0 against everything
    4. Mirror the strict upper triangle so sim(a, b) == sim(b, a) exactly
    5. Build descending neighbor lists (self excluded, ties by hash)

Example:
    >>> result = await compute_similarity_map(hashes, vectors, top_k=10)
    >>> result.neighbors[hashes[0]][0].hash
"""

from __future__ import annotations

import asyncio
import logging

import numpy as np
from scipy.spatial.distance import cdist

from vault_build.types.results import Neighbor, SimilarityMap
from vault_build.utils.concurrency import CancellationToken, run_bounded

logger = logging.getLogger(__name__)

SCORE_DECIMALS = 6
"""Scores are rounded so serialized maps are compact and stable"""


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 if either vector has zero norm.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector shapes differ: {va.shape} vs {vb.shape}")
    na = np.linalg.norm(va)
    nb = np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (na * nb), -1.0, 1.0))


def _chunk_block(arr: np.ndarray, zero: np.ndarray, start: int, stop: int) -> np.ndarray:
    """Similarity rows [start, stop) against every row."""
    with np.errstate(invalid="ignore", divide="ignore"):
        block = 1.0 - cdist(arr[start:stop], arr, metric="cosine")
    block = np.nan_to_num(block, nan=0.0, posinf=0.0, neginf=0.0)
    block[:, zero] = 0.0
    block[zero[start:stop], :] = 0.0
    return np.clip(block, -1.0, 1.0)


async def compute_similarity_matrix(
    vectors: list[list[float]],
    *,
    chunk_size: int = 256,
    concurrency: int = 4,
    token: CancellationToken | None = None,
) -> np.ndarray:
    """
    Symmetric n x n similarity matrix with a zero diagonal.

    Args:
        vectors: n embedding vectors of equal length
        chunk_size: Rows per work item
        concurrency: Max chunks computed at once
        token: Cancellation token checked before each chunk

    Returns:
        Matrix S with S[i, j] == S[j, i] and S[i, i] == 0
    """
    n = len(vectors)
    if n == 0:
        return np.zeros((0, 0), dtype=np.float64)

    arr = np.asarray(vectors, dtype=np.float64)
    if arr.ndim != 2:
        raise ValueError("All vectors must have the same dimensions")
    zero = np.linalg.norm(arr, axis=1) == 0

    bounds = [(s, min(s + chunk_size, n)) for s in range(0, n, chunk_size)]

    async def compute(bound: tuple[int, int]) -> np.ndarray:
        start, stop = bound
        return await asyncio.to_thread(_chunk_block, arr, zero, start, stop)

    blocks = await run_bounded(bounds, compute, concurrency=concurrency, token=token)
    matrix = np.vstack(blocks)

    # Mirror the upper triangle so both orderings read the same float
    upper = np.triu(matrix, k=1)
    return upper + upper.T


def build_similarity_map(
    hashes: list[str],
    matrix: np.ndarray,
    *,
    top_k: int = 10,
    min_score: float | None = None,
) -> SimilarityMap:
    """
    Pair scores and neighbor lists from a symmetric matrix.

    Args:
        hashes: Row labels, sorted ascending
        matrix: Output of compute_similarity_matrix
        top_k: Neighbors kept per document (0 keeps pair scores only)
        min_score: Optional floor for neighbor scores
    """
    if top_k < 0:
        raise ValueError(f"top_k must be >= 0, got {top_k}")
    n = len(hashes)
    rounded = np.round(matrix, SCORE_DECIMALS)

    pair_scores: dict[str, float] = {}
    for i in range(n):
        for j in range(i + 1, n):
            pair_scores[f"{hashes[i]}-{hashes[j]}"] = float(rounded[i, j])

    neighbors: dict[str, list[Neighbor]] = {}
    for i in range(n):
        scores = rounded[i]
        # Stable sort on -score keeps hash order for ties
        order = np.argsort(-scores, kind="stable")
        row: list[Neighbor] = []
        for j in order:
            if len(row) >= top_k:
                break
            if j == i:
                continue
            score = float(scores[j])
            if min_score is not None and score < min_score:
                break
            row.append(Neighbor(hash=hashes[j], score=score))
        neighbors[hashes[i]] = row

    return SimilarityMap(pair_scores=pair_scores, neighbors=neighbors)


async def compute_similarity_map(
    hashes: list[str],
    vectors: list[list[float]],
    *,
    top_k: int = 10,
    min_score: float | None = None,
    chunk_size: int = 256,
    concurrency: int = 4,
    token: CancellationToken | None = None,
) -> SimilarityMap:
    """Full similarity map for labelled vectors (any input order)."""
    if len(hashes) != len(vectors):
        raise ValueError(
            f"hash/vector count mismatch: {len(hashes)} hashes, {len(vectors)} vectors"
        )
    pairs = sorted(zip(hashes, vectors), key=lambda p: p[0])
    ordered_hashes = [h for h, _ in pairs]
    matrix = await compute_similarity_matrix(
        [v for _, v in pairs],
        chunk_size=chunk_size,
        concurrency=concurrency,
        token=token,
    )
    result = build_similarity_map(ordered_hashes, matrix, top_k=top_k, min_score=min_score)
    logger.info(
        f"Similarity: {len(ordered_hashes)} documents, {len(result.pair_scores)} pairs"
    )
    return result
