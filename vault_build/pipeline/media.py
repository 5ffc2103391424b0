"""
Media Pipeline

Copies media into the build and generates resized variants.

Algorithm (per MediaSource, on the bounded pool):
    1. Copy the source verbatim to {media_dir}/{short}{ext}
    2. If an image processor can decode it, read the metadata and produce
       one variant per configured size narrower than the source
    3. Look each variant up in the cache (hash, width, format, quality)
       before generating it
    4. Group sources by hash into MediaAssets, sorted by hash

Cache:
    - In-run: a per-hash lock serialises files with identical bytes, so the
      second one finds the first one's variants
    - Cross-run: variants listed in the previously published medias.json
      whose files are still intact are copied instead of regenerated

Per-item failures (corrupt or unsupported images) are recorded as
`media-processing` issues; the asset keeps its verbatim copy.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vault_build.config import BuildConfig
from vault_build.errors import BuildCancelledError, FatalBuildError
from vault_build.plugins.base import ImageProcessorPlugin
from vault_build.types.documents import MediaSource
from vault_build.types.media import CacheStats, MediaAsset, MediaVariant, ProcessOptions
from vault_build.utils.concurrency import CancellationToken, run_bounded
from vault_build.utils.hashing import variant_cache_key
from vault_build.utils.issues import IssueCollector
from vault_build.utils.paths import media_copy_name, media_variant_name

logger = logging.getLogger(__name__)


@dataclass
class _Derived:
    """What processing one hash produced, shared by every path with those bytes."""

    width: int | None = None
    height: int | None = None
    variants: dict[str, MediaVariant] = field(default_factory=dict)


class MediaPipeline:
    """
    Processes media sources into MediaAssets inside a staging directory.

    Args:
        source_dir: Vault root
        staging_dir: Build staging root
        config: Build configuration
        issues: Issue sink
        processor: Image processor, or None for copy-only
        previous_dir: Previously published output (cross-run cache)
        previous_media: Parsed medias.json of the previous build
        token: Cancellation token
    """

    def __init__(
        self,
        *,
        source_dir: Path,
        staging_dir: Path,
        config: BuildConfig,
        issues: IssueCollector,
        processor: ImageProcessorPlugin | None = None,
        previous_dir: Path | None = None,
        previous_media: list[dict[str, Any]] | None = None,
        token: CancellationToken | None = None,
    ):
        self.source_dir = Path(source_dir)
        self.staging_dir = Path(staging_dir)
        self.config = config
        self.issues = issues
        self.processor = processor
        self.token = token or CancellationToken()
        self.stats = CacheStats()
        self._locks: dict[str, asyncio.Lock] = {}
        self._derived: dict[str, _Derived] = {}
        self._previous = self._index_previous(previous_dir, previous_media or [])

    @staticmethod
    def _index_previous(
        previous_dir: Path | None,
        previous_media: list[dict[str, Any]],
    ) -> dict[str, tuple[MediaVariant, Path]]:
        """Cache key -> (variant, file in the previous output)."""
        if previous_dir is None:
            return {}
        index: dict[str, tuple[MediaVariant, Path]] = {}
        for asset in previous_media:
            content_hash = asset.get("hash")
            for raw in (asset.get("variants") or {}).values():
                try:
                    variant = MediaVariant.model_validate(raw)
                except ValueError:
                    continue
                key = variant_cache_key(content_hash, variant.width, variant.format, variant.quality)
                index[key] = (variant, Path(previous_dir) / variant.path)
        return index

    # -------------------------------------------------------------------------
    # Public
    # -------------------------------------------------------------------------

    async def run(self, sources: list[MediaSource]) -> list[MediaAsset]:
        """
        Process every source and return assets sorted by hash.

        Raises:
            BuildCancelledError: If the token is tripped
            FatalBuildError: If the staging directory cannot be written
        """
        ordered = sorted(sources, key=lambda s: s.path)
        results = await run_bounded(
            ordered,
            self._process_one,
            concurrency=self.config.media_concurrency,
            token=self.token,
        )

        by_hash: dict[str, list[MediaSource]] = {}
        for source, ok in zip(ordered, results):
            if ok:
                by_hash.setdefault(source.hash, []).append(source)

        assets: list[MediaAsset] = []
        for content_hash in sorted(by_hash):
            group = sorted(by_hash[content_hash], key=lambda s: s.path)
            first = group[0]
            derived = self._derived.get(content_hash, _Derived())
            assets.append(
                MediaAsset(
                    hash=content_hash,
                    original_path=first.path,
                    paths=[s.path for s in group],
                    mime_type=first.mime_type,
                    filename=self._copy_path(first),
                    size=first.size,
                    width=derived.width,
                    height=derived.height,
                    variants=dict(sorted(derived.variants.items())),
                )
            )

        logger.info(
            f"Media: {len(assets)} assets, "
            f"{sum(len(a.variants) for a in assets)} variants "
            f"(cache hits={self.stats.hits}, misses={self.stats.misses})"
        )
        return assets

    # -------------------------------------------------------------------------
    # Per item
    # -------------------------------------------------------------------------

    def _copy_path(self, source: MediaSource) -> str:
        name = media_copy_name(source.hash, source.path, shard=self.config.media_shard)
        return f"{self.config.media_dir}/{name}"

    async def _process_one(self, source: MediaSource) -> bool:
        """Copy and derive one source. Returns False when the source was dropped."""
        src = self.source_dir / source.path
        lock = self._locks.setdefault(source.hash, asyncio.Lock())
        async with lock:
            try:
                await self._copy(src, self.staging_dir / self._copy_path(source))
            except FileNotFoundError as e:
                self.issues.add_media_processing_error(
                    source.path, f"Media file disappeared during build: {e}", source.hash
                )
                return False
            except OSError as e:
                raise FatalBuildError(f"Failed to copy {source.path} to staging: {e}") from e

            cached = self._derived.get(source.hash)
            if cached is not None:
                self.stats.hits += len(cached.variants)
                logger.debug(f"Cache hit for {source.path} ({source.hash[:12]})")
                return True
            self._derived[source.hash] = await self._derive(source, src)
        return True

    async def _copy(self, src: Path, dest: Path) -> None:
        if dest.exists():
            return
        if self.processor is not None:
            await self.processor.copy(src, dest)
            return

        def _copy_file() -> None:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)

        await asyncio.to_thread(_copy_file)

    async def _derive(self, source: MediaSource, src: Path) -> _Derived:
        processor = self.processor
        if processor is None or not processor.can_process(src):
            return _Derived()

        fmt = self.config.media_format.lower()
        quality = self.config.media_quality
        written: list[Path] = []
        try:
            meta = await processor.get_metadata(src)
        except Exception as e:
            self.issues.add_media_processing_error(
                source.path, f"Cannot read image metadata: {e}", source.hash
            )
            return _Derived()

        derived = _Derived(width=meta.width, height=meta.height)
        try:
            for spec in self.config.size_specs():
                # Never upscale
                if spec.width >= meta.width:
                    continue
                self.token.raise_if_cancelled()
                rel = (
                    f"{self.config.media_dir}/"
                    f"{media_variant_name(source.hash, spec.suffix, fmt, shard=self.config.media_shard)}"
                )
                key = variant_cache_key(source.hash, spec.width, fmt, quality)
                variant = await self._reuse(key, rel)
                if variant is not None:
                    self.stats.hits += 1
                else:
                    output = self.staging_dir / rel
                    written.append(output)
                    result = await processor.process(
                        src, output, ProcessOptions(width=spec.width, format=fmt, quality=quality)
                    )
                    variant = MediaVariant(
                        path=rel,
                        width=result.width,
                        height=result.height,
                        format=result.format,
                        size=result.size,
                        quality=quality,
                    )
                    self.stats.misses += 1
                derived.variants[spec.suffix] = variant
        except BuildCancelledError:
            raise
        except Exception as e:
            self.issues.add_media_processing_error(
                source.path, f"Variant generation failed: {e}", source.hash
            )
            for path in written:
                path.unlink(missing_ok=True)
            return _Derived(width=meta.width, height=meta.height)

        return derived

    async def _reuse(self, key: str, rel: str) -> MediaVariant | None:
        """Copy a variant from the previous build if it is still intact."""
        previous = self._previous.get(key)
        if previous is None:
            return None
        variant, path = previous

        def _copy_previous() -> bool:
            if not path.is_file() or path.stat().st_size != variant.size:
                return False
            dest = self.staging_dir / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, dest)
            return True

        if not await asyncio.to_thread(_copy_previous):
            return None
        return variant.model_copy(update={"path": rel})
