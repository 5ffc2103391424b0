"""
Utility Functions

Core helpers used throughout the package.

Modules:
    hashing: Content identity (SHA-256 digests, variant cache keys)
    concurrency: Bounded worker pool and cancellation token
    issues: Thread-safe issue collector
    text: Slugs, word counts and excerpts
"""

from vault_build.utils.concurrency import CancellationToken, chunked, run_bounded
from vault_build.utils.hashing import compute_hash, hash_file, short_hash, variant_cache_key
from vault_build.utils.issues import IssueCollector
from vault_build.utils.text import excerpt, slugify, word_count

__all__ = [
    "CancellationToken",
    "run_bounded",
    "chunked",
    "compute_hash",
    "hash_file",
    "short_hash",
    "variant_cache_key",
    "IssueCollector",
    "slugify",
    "word_count",
    "excerpt",
]
