"""
Similarity

Cosine similarity maps over document embeddings.

Modules:
    engine: Chunked all-pairs computation and neighbor lists
"""

from vault_build.similarity.engine import (
    build_similarity_map,
    compute_similarity_map,
    compute_similarity_matrix,
    cosine_similarity,
)

__all__ = [
    "cosine_similarity",
    "compute_similarity_matrix",
    "build_similarity_map",
    "compute_similarity_map",
]
