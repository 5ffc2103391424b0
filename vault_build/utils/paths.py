"""
Output Path Conventions

Content-addressed filenames shared by ingest (for rendered media URLs) and
the media pipeline (for the files themselves).

    {media_dir}/{short}{ext}                 verbatim copy
    {media_dir}/{short}-{suffix}.{ext}       generated variant
    {media_dir}/{hash[:2]}/...               when sharding is enabled
"""

from __future__ import annotations

from pathlib import PurePosixPath

from vault_build.utils.hashing import short_hash

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": "image/svg+xml",
}

FORMAT_EXTENSIONS = {
    "jpeg": "jpg",
    "jpg": "jpg",
    "png": "png",
    "webp": "webp",
    "avif": "avif",
    "gif": "gif",
}


def guess_mime(path: str) -> str:
    return MIME_TYPES.get(PurePosixPath(path).suffix.lower(), "application/octet-stream")


def format_extension(fmt: str) -> str:
    """File extension for an output format ("jpeg" -> "jpg")."""
    return FORMAT_EXTENSIONS.get(fmt.lower(), fmt.lower())


def _shard(content_hash: str, name: str, shard: bool) -> str:
    return f"{content_hash[:2]}/{name}" if shard else name


def media_copy_name(content_hash: str, source_path: str, *, shard: bool = False) -> str:
    """Relative name (inside the media dir) of the verbatim copy."""
    ext = PurePosixPath(source_path).suffix.lower()
    return _shard(content_hash, f"{short_hash(content_hash)}{ext}", shard)


def media_variant_name(
    content_hash: str,
    suffix: str,
    fmt: str,
    *,
    shard: bool = False,
) -> str:
    """Relative name (inside the media dir) of a generated variant."""
    name = f"{short_hash(content_hash)}-{suffix}.{format_extension(fmt)}"
    return _shard(content_hash, name, shard)
