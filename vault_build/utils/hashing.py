"""
Content Identity

SHA-256 digests over raw bytes. The hex digest is the primary key for every
document, media asset and derived artifact.

Example:
    >>> compute_hash(b"hello")
    '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    >>> short_hash(compute_hash(b"hello"))
    '2cf24dba5fb0a30e'
"""

from __future__ import annotations

import hashlib
from pathlib import Path

SHORT_HASH_LENGTH = 16
"""Hex characters kept for output filenames"""

_READ_BLOCK = 1024 * 1024


def compute_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest of data."""
    return hashlib.sha256(data).hexdigest()


def hash_file(path: str | Path) -> str:
    """Return the SHA-256 hex digest of a file, streamed in 1 MiB blocks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while block := f.read(_READ_BLOCK):
            digest.update(block)
    return digest.hexdigest()


def short_hash(content_hash: str, length: int = SHORT_HASH_LENGTH) -> str:
    """Truncate a content hash for use in filenames."""
    if length <= 0:
        raise ValueError(f"length must be positive, got {length}")
    return content_hash[:length]


def variant_cache_key(
    content_hash: str,
    width: int | None,
    fmt: str,
    quality: int | None,
) -> str:
    """
    Cache key for a derived media variant.

    A variant already produced under the same key is never regenerated.
    """
    return f"{content_hash}:{width or 0}:{fmt.lower()}:{quality or 0}"
