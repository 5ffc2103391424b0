"""
Build Orchestrator

Drives one build through its stages and owns the only global control flow.

States:
    pending -> ingesting -> plugin_init -> processing_media
    -> computing_embeddings -> computing_similarity -> building_database
    -> writing_manifest -> done

    `failed` is reachable from every state. Entering it discards the staging
    directory; the previously published output stays as it was.

Plugin resolution happens in `pending`, so a broken plugin graph fails the
build before a single file is read.

Example:
    >>> config = BuildConfig(embedding_provider="hashing", similarity_enabled=True)
    >>> result = await BuildOrchestrator("./vault", "./dist", config=config).run()
    >>> result.success, len(result.manifest.entries)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from vault_build.config import BuildConfig
from vault_build.errors import (
    BuildCancelledError,
    ConfigurationError,
    FatalBuildError,
)
from vault_build.ingestion import VaultIngest, scan_frontmatter_schema
from vault_build.output import writer as artifacts
from vault_build.output.writer import OutputWriter
from vault_build.pipeline.embeddings import EmbeddingPipeline, embedding_map
from vault_build.pipeline.media import MediaPipeline
from vault_build.plugins.base import (
    DATABASE,
    IMAGE_EMBEDDER,
    IMAGE_PROCESSOR,
    SIMILARITY,
    TEXT_EMBEDDER,
    DatabasePlugin,
    ImageEmbeddingPlugin,
    ImageProcessorPlugin,
    Plugin,
    SimilarityPlugin,
    TextEmbeddingPlugin,
)
from vault_build.plugins.factory import plugins_from_config
from vault_build.plugins.manager import PluginManager
from vault_build.types.documents import Document, VaultSnapshot
from vault_build.types.issues import Severity
from vault_build.types.media import MediaAsset
from vault_build.types.results import (
    BuildManifest,
    BuildResult,
    BuildState,
    BuildStats,
    DatabaseInputs,
    EmbeddingSet,
    SimilarityMap,
)
from vault_build.types.schema import FrontmatterSchema, SchemaReport
from vault_build.utils.concurrency import CancellationToken
from vault_build.utils.issues import IssueCollector

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """
    One build of a vault into an output directory.

    Args:
        source_dir: Vault root
        output_dir: Published output location
        config: Build configuration (default: BuildConfig() from environment)
        plugins: Plugins to register. Defaults to plugins_from_config(config).
        token: Cancellation token (one is created if omitted)
    """

    def __init__(
        self,
        source_dir: str | Path,
        output_dir: str | Path,
        config: BuildConfig | None = None,
        plugins: list[Plugin] | None = None,
        token: CancellationToken | None = None,
    ):
        self.source_dir = Path(source_dir).resolve()
        self.output_dir = Path(output_dir).resolve()
        self.config = config or BuildConfig()
        self.token = token or CancellationToken()
        self.issues = IssueCollector()
        self.stats = BuildStats()
        self.history: list[BuildState] = [BuildState.PENDING]
        self._plugins = plugins
        self._manager: PluginManager | None = None
        self._writer: OutputWriter | None = None

    @property
    def state(self) -> BuildState:
        return self.history[-1]

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Trip the cancellation token. The running stage aborts at its next check."""
        self.token.cancel(reason)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def _transition(self, state: BuildState) -> None:
        logger.info(f"Build state: {self.state.value} -> {state.value}")
        self.history.append(state)
        if state not in (BuildState.DONE, BuildState.FAILED):
            self.issues.set_stage(state.value)

    def _check(self) -> None:
        """Stage boundary: honour cancellation and strict mode."""
        self.token.raise_if_cancelled()
        if not self.config.strict:
            return
        count = self.issues.count_at_least(self.config.strict_min_severity)
        if count:
            raise FatalBuildError(
                f"Strict mode: {count} issue(s) at or above "
                f"'{self.config.strict_min_severity}' in stage {self.state.value}"
            )

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self) -> BuildResult:
        """
        Execute the build.

        Returns:
            BuildResult. success is False after a configuration error, a
            fatal stage error, or cancellation.

        Raises:
            Exception: Unexpected errors propagate after staging is discarded
        """
        if self.state is not BuildState.PENDING:
            raise RuntimeError("A BuildOrchestrator can only run once")

        start = time.perf_counter()
        try:
            manifest = await self._run_stages()
        except (ConfigurationError, FatalBuildError, BuildCancelledError) as e:
            self._discard()
            if isinstance(e, ConfigurationError):
                category = "configuration"
            elif isinstance(e, BuildCancelledError):
                category = "cancelled"
            else:
                category = "fatal"
            self.issues.add(Severity.ERROR, category, str(e))
            self._transition(BuildState.FAILED)
            return self._result(False, None, str(e), start)
        except Exception:
            self._discard()
            self._transition(BuildState.FAILED)
            logger.exception("Build failed with an unexpected error")
            raise
        finally:
            if self._manager is not None:
                await self._manager.dispose()

        self._transition(BuildState.DONE)
        result = self._result(True, manifest, None, start)
        logger.info(
            f"Build finished in {result.duration_seconds:.2f}s: "
            f"{self.stats.documents} documents, {self.stats.media} media, "
            f"{len(result.issues)} issue(s)"
        )
        return result

    def _discard(self) -> None:
        if self._writer is not None:
            self._writer.discard()

    def _result(
        self,
        success: bool,
        manifest: BuildManifest | None,
        error: str | None,
        start: float,
    ) -> BuildResult:
        return BuildResult(
            success=success,
            state=self.state,
            manifest=manifest,
            issues=self.issues.issues,
            error=error,
            output_dir=str(self.output_dir) if success else None,
            duration_seconds=round(time.perf_counter() - start, 3),
            stats=self.stats,
        )

    async def _run_stages(self) -> BuildManifest:
        config = self.config

        # pending: the plugin graph must be valid before any work starts
        plugins = self._plugins if self._plugins is not None else plugins_from_config(config)
        manager = PluginManager()
        for plugin in plugins:
            manager.register(plugin)
        self._manager = manager
        manager.resolve()
        self._check()

        self._transition(BuildState.INGESTING)
        snapshot = await VaultIngest(
            self.source_dir, config, self.issues, exclude=[self.output_dir]
        ).ingest(self.token)
        self.stats.documents = len(snapshot.documents)
        schema, schema_report = scan_frontmatter_schema(snapshot.documents, self.issues)
        self._check()

        self._transition(BuildState.PLUGIN_INIT)
        writer = OutputWriter(self.output_dir)
        self._writer = writer
        staging = writer.open()
        await manager.initialize(output_dir=staging, issues=self.issues, config=config)
        self._check()

        self._transition(BuildState.PROCESSING_MEDIA)
        previous_media = writer.read_published_json(artifacts.MEDIAS)
        media_pipeline = MediaPipeline(
            source_dir=self.source_dir,
            staging_dir=staging,
            config=config,
            issues=self.issues,
            processor=manager.get_plugin(IMAGE_PROCESSOR, ImageProcessorPlugin),
            previous_dir=self.output_dir if previous_media is not None else None,
            previous_media=previous_media if isinstance(previous_media, list) else None,
            token=self.token,
        )
        assets = await media_pipeline.run(snapshot.media)
        self.stats.media = len(assets)
        self.stats.variants = sum(len(a.variants) for a in assets)
        self.stats.cache_hits = media_pipeline.stats.hits
        self.stats.cache_misses = media_pipeline.stats.misses
        self._check()

        self._transition(BuildState.COMPUTING_EMBEDDINGS)
        embedding_pipeline = EmbeddingPipeline(
            config=config,
            issues=self.issues,
            text_embedder=manager.get_plugin(TEXT_EMBEDDER, TextEmbeddingPlugin),
            image_embedder=manager.get_plugin(IMAGE_EMBEDDER, ImageEmbeddingPlugin),
            source_dir=self.source_dir,
            previous_text=writer.read_published_json(artifacts.POSTS_EMBEDDING_HASH_MAP),
            previous_image=writer.read_published_json(artifacts.MEDIA_EMBEDDING_HASH_MAP),
            token=self.token,
        )
        documents, text_embeddings = await embedding_pipeline.embed_documents(snapshot.documents)
        assets, image_embeddings = await embedding_pipeline.embed_media(assets)
        self.stats.text_embeddings = len(text_embeddings.vectors) if text_embeddings else 0
        self.stats.image_embeddings = len(image_embeddings.vectors) if image_embeddings else 0
        self._check()

        self._transition(BuildState.COMPUTING_SIMILARITY)
        similarity: SimilarityMap | None = None
        similarity_plugin = manager.get_plugin(SIMILARITY, SimilarityPlugin)
        if similarity_plugin is not None:
            similarity = await similarity_plugin.generate_similarity_map(documents, self.token)
            self.stats.similarity_pairs = len(similarity.pair_scores)
        self._check()

        self._transition(BuildState.BUILDING_DATABASE)
        database_plugin = manager.get_plugin(DATABASE, DatabasePlugin)
        if database_plugin is not None:
            await database_plugin.build(
                DatabaseInputs(
                    documents=documents,
                    media=assets,
                    embeddings=text_embeddings,
                    frontmatter_schema=schema,
                    output_dir=staging,
                )
            )
        self._check()

        self._transition(BuildState.WRITING_MANIFEST)
        self._write_artifacts(
            writer,
            snapshot,
            documents,
            assets,
            text_embeddings,
            image_embeddings,
            similarity,
            schema,
            schema_report,
        )
        self._check()
        self.token.raise_if_cancelled()
        manifest = writer.write_manifest()
        writer.publish()
        return manifest

    # -------------------------------------------------------------------------
    # Artifacts
    # -------------------------------------------------------------------------

    def _write_artifacts(
        self,
        writer: OutputWriter,
        snapshot: VaultSnapshot,
        documents: list[Document],
        assets: list[MediaAsset],
        text_embeddings: EmbeddingSet | None,
        image_embeddings: EmbeddingSet | None,
        similarity: SimilarityMap | None,
        schema: FrontmatterSchema,
        schema_report: SchemaReport,
    ) -> None:
        by_path = sorted(documents, key=lambda d: d.path)
        writer.write_json(artifacts.POSTS, [d.model_dump(mode="json") for d in by_path])
        writer.write_json(artifacts.POSTS_SLUG_MAP, dict(sorted(snapshot.slug_index.items())))
        writer.write_json(artifacts.POSTS_PATH_MAP, dict(sorted(snapshot.path_index.items())))
        writer.write_json(
            artifacts.MEDIAS,
            [a.model_dump(mode="json") for a in sorted(assets, key=lambda a: a.hash)],
        )
        writer.write_json(artifacts.POSTS_SCHEMA, schema.model_dump(mode="json"))
        writer.write_json(artifacts.SCHEMA_REPORT, schema_report.model_dump(mode="json"))

        if text_embeddings is not None:
            writer.write_json(artifacts.POSTS_EMBEDDING_HASH_MAP, embedding_map(text_embeddings))
            slug_of = {d.hash: d.slug for d in documents}
            by_slug: dict[str, Any] = {
                slug_of[h]: v for h, v in text_embeddings.as_map().items() if h in slug_of
            }
            writer.write_json(
                artifacts.POSTS_EMBEDDING_SLUG_MAP,
                {
                    "model": text_embeddings.model,
                    "dimensions": text_embeddings.dimensions,
                    "vectors": dict(sorted(by_slug.items())),
                },
            )
        if image_embeddings is not None:
            writer.write_json(artifacts.MEDIA_EMBEDDING_HASH_MAP, embedding_map(image_embeddings))

        if similarity is not None:
            writer.write_json(artifacts.POSTS_SIMILARITY, similarity.pair_scores)
            writer.write_json(
                artifacts.POSTS_SIMILAR_HASH,
                {h: [n.hash for n in row] for h, row in sorted(similarity.neighbors.items())},
            )

        writer.write_json(artifacts.ISSUES, self.issues.report().model_dump(mode="json"))
