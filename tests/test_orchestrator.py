"""End-to-end tests for the build orchestrator."""

import asyncio
import json
import time
from pathlib import Path

import pytest
from PIL import Image

from vault_build import build_vault
from vault_build.config import BuildConfig
from vault_build.output import verify_manifest
from vault_build.output.manifest import MANIFEST_NAME
from vault_build.pipeline.orchestrator import BuildOrchestrator
from vault_build.plugins.embedding.hashing import HashingTextEmbedder
from vault_build.plugins.image.pillow import PillowImageProcessor
from vault_build.plugins.similarity import CosineSimilarityPlugin
from vault_build.types.media import VariantResult
from vault_build.types.results import BuildState


def make_vault(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "intro.md").write_text(
        "---\ntitle: Introduction\ntags: [start]\n---\n"
        "# Introduction\n\nWelcome. See [[Setup]] and ![[logo.png]].\n",
        encoding="utf-8",
    )
    (root / "guides").mkdir(exist_ok=True)
    (root / "guides" / "setup.md").write_text(
        "# Setup\n\nInstall python and run the build. Back to [[intro]].\n",
        encoding="utf-8",
    )
    (root / "img").mkdir(exist_ok=True)
    Image.new("RGB", (800, 400), "purple").save(root / "img" / "logo.png", format="PNG")
    return root


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def plain_config(**kwargs) -> BuildConfig:
    """Config with every plugin off unless asked for."""
    defaults = dict(
        image_processor="none",
        embedding_provider="none",
        image_embedder="none",
        similarity_enabled=False,
        database_enabled=False,
        strict=False,
    )
    defaults.update(kwargs)
    return BuildConfig(**defaults)


class TestPlainBuild:
    """Test a build with no plugins configured."""

    @pytest.mark.asyncio
    async def test_two_documents_no_plugins(self, tmp_path):
        """Documents and media are published with no issues and no embeddings."""
        vault = make_vault(tmp_path / "vault")
        out = tmp_path / "dist"

        orchestrator = BuildOrchestrator(vault, out, config=plain_config())
        result = await orchestrator.run()

        assert result.success, result.error
        assert result.state == BuildState.DONE
        assert result.issues == []
        assert result.output_dir == str(out.resolve())
        assert result.stats.documents == 2
        assert result.stats.media == 1

        posts = read_json(out / "posts.json")
        assert [p["path"] for p in posts] == ["guides/setup.md", "intro.md"]
        assert "embedding" not in posts[0]
        assert sorted(read_json(out / "posts-slug-map.json")) == ["intro", "setup"]
        assert not (out / "posts-embedding-hash-map.json").exists()
        assert not (out / "posts-similarity.json").exists()
        assert not (out / "database").exists()
        schema = read_json(out / "posts-schema.json")
        assert sorted(schema["properties"]) == ["tags", "title"]
        assert schema["statistics"]["posts_with_frontmatter"] == 1
        assert read_json(out / "schema-report.json")["conflicts"] == []
        assert read_json(out / "processor-issues.json")["summary"]["total"] == 0
        assert verify_manifest(out) == []

    @pytest.mark.asyncio
    async def test_mixed_frontmatter_types_reported(self, tmp_path):
        """A key with mixed value types lands in the schema report and the issue ledger."""
        vault = make_vault(tmp_path / "vault")
        (vault / "notes.md").write_text(
            "---\ntitle: Notes\ntags: notes\n---\n# Notes\n", encoding="utf-8"
        )
        out = tmp_path / "dist"

        result = await BuildOrchestrator(vault, out, config=plain_config()).run()

        assert result.success, result.error
        report = read_json(out / "schema-report.json")
        assert [c["property"] for c in report["conflicts"]] == ["tags"]
        assert report["suggested_types"] == {"tags": "array<string>"}
        schema_issues = [i for i in result.issues if i.category == "frontmatter-schema"]
        assert [(i.severity.value, i.context["property"]) for i in schema_issues] == [
            ("warning", "tags")
        ]
        assert read_json(out / "posts-schema.json")["properties"]["tags"]["types"] == [
            "array<string>",
            "string",
        ]

    @pytest.mark.asyncio
    async def test_visits_every_state_in_order(self, tmp_path):
        """A successful build walks the full state sequence."""
        vault = make_vault(tmp_path / "vault")
        orchestrator = BuildOrchestrator(vault, tmp_path / "dist", config=plain_config())
        await orchestrator.run()
        assert orchestrator.history == [
            BuildState.PENDING,
            BuildState.INGESTING,
            BuildState.PLUGIN_INIT,
            BuildState.PROCESSING_MEDIA,
            BuildState.COMPUTING_EMBEDDINGS,
            BuildState.COMPUTING_SIMILARITY,
            BuildState.BUILDING_DATABASE,
            BuildState.WRITING_MANIFEST,
            BuildState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_runs_only_once(self, tmp_path):
        """An orchestrator cannot be reused."""
        vault = make_vault(tmp_path / "vault")
        orchestrator = BuildOrchestrator(vault, tmp_path / "dist", config=plain_config())
        await orchestrator.run()
        with pytest.raises(RuntimeError):
            await orchestrator.run()

    @pytest.mark.asyncio
    async def test_output_inside_vault_not_ingested(self, tmp_path):
        """Building into a folder inside the vault does not re-ingest the output."""
        vault = make_vault(tmp_path / "vault")
        out = vault / "dist"
        (out).mkdir()
        (out / "old.md").write_text("# Stale")

        result = await BuildOrchestrator(vault, out, config=plain_config()).run()

        assert result.stats.documents == 2
        second = await BuildOrchestrator(vault, out, config=plain_config()).run()
        assert second.stats.documents == 2


class TestDeterminism:
    """Test that identical inputs give identical output bytes."""

    @pytest.mark.asyncio
    async def test_manifests_identical(self, tmp_path):
        """Two full builds of the same vault produce the same manifest."""
        vault = make_vault(tmp_path / "vault")
        config = plain_config(
            image_processor="pillow",
            embedding_provider="hashing",
            embedding_dimensions=32,
            similarity_enabled=True,
            database_enabled=True,
        )

        first = await BuildOrchestrator(vault, tmp_path / "one", config=config).run()
        second = await BuildOrchestrator(vault, tmp_path / "two", config=config).run()

        assert first.success and second.success
        assert (tmp_path / "one" / MANIFEST_NAME).read_bytes() == (
            tmp_path / "two" / MANIFEST_NAME
        ).read_bytes()


class TestFullBuild:
    """Test a build with every built-in plugin enabled."""

    @pytest.mark.asyncio
    async def test_all_artifacts_written(self, tmp_path):
        """Embeddings, similarity, variants and the database are published."""
        vault = make_vault(tmp_path / "vault")
        out = tmp_path / "dist"
        config = plain_config(
            image_processor="pillow",
            media_format="png",
            embedding_provider="hashing",
            embedding_dimensions=32,
            image_embedder="histogram",
            similarity_enabled=True,
            database_enabled=True,
        )

        result = await build_vault(vault, out, config=config)

        assert result.success, result.error
        assert result.stats.text_embeddings == 2
        assert result.stats.image_embeddings == 1
        assert result.stats.similarity_pairs == 1
        assert result.stats.variants == 2  # xs and sm are narrower than 800px

        hash_map = read_json(out / "posts-embedding-hash-map.json")
        assert hash_map["model"] == "hashing-32-bigram"
        assert hash_map["dimensions"] == 32
        slug_map = read_json(out / "posts-embedding-slug-map.json")
        assert sorted(slug_map["vectors"]) == sorted(read_json(out / "posts-slug-map.json"))

        similarity = read_json(out / "posts-similarity.json")
        (pair,) = similarity
        a, b = pair.split("-")
        assert a < b
        neighbors = read_json(out / "posts-similar-hash.json")
        assert neighbors[a] == [b]
        assert neighbors[b] == [a]

        medias = read_json(out / "medias.json")
        assert sorted(medias[0]["variants"]) == ["sm", "xs"]
        for variant in medias[0]["variants"].values():
            assert (out / variant["path"]).exists()
        assert (out / "media-embedding-hash-map.json").exists()

        assert (out / "database" / "posts.parquet").exists()
        assert verify_manifest(out) == []

    @pytest.mark.asyncio
    async def test_rebuild_reuses_cache(self, tmp_path):
        """A second build over the same output reuses variants and vectors."""
        vault = make_vault(tmp_path / "vault")
        out = tmp_path / "dist"
        config = plain_config(image_processor="pillow", embedding_provider="hashing")

        first = await BuildOrchestrator(vault, out, config=config).run()
        second = await BuildOrchestrator(vault, out, config=config).run()

        assert first.stats.cache_misses == 2
        assert second.stats.cache_misses == 0
        assert second.stats.cache_hits == 2


class TestFailures:
    """Test configuration errors, strict mode and cancellation."""

    @pytest.mark.asyncio
    async def test_similarity_without_embedder(self, tmp_path):
        """A missing text embedder fails before ingest starts."""
        vault = make_vault(tmp_path / "vault")
        orchestrator = BuildOrchestrator(
            vault, tmp_path / "dist", config=plain_config(), plugins=[CosineSimilarityPlugin()]
        )

        result = await orchestrator.run()

        assert not result.success
        assert "textEmbedder" in result.error
        assert orchestrator.history == [BuildState.PENDING, BuildState.FAILED]
        assert BuildState.INGESTING not in orchestrator.history
        assert [i.category for i in result.issues] == ["configuration"]
        assert not (tmp_path / "dist").exists()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, tmp_path):
        """An unknown embedder name is a configuration failure."""
        vault = make_vault(tmp_path / "vault")
        result = await BuildOrchestrator(
            vault, tmp_path / "dist", config=plain_config(embedding_provider="magic")
        ).run()
        assert not result.success
        assert "magic" in result.error

    @pytest.mark.asyncio
    async def test_strict_mode_fails_on_issue(self, tmp_path):
        """Strict mode turns a broken link into a failed build."""
        vault = make_vault(tmp_path / "vault")
        (vault / "broken.md").write_text("[[Nowhere]]")

        lenient = await BuildOrchestrator(vault, tmp_path / "lenient", config=plain_config()).run()
        strict = await BuildOrchestrator(
            vault, tmp_path / "strict", config=plain_config(strict=True)
        ).run()

        assert lenient.success
        assert [i.category for i in lenient.issues] == ["broken-link"]
        assert not strict.success
        assert strict.state == BuildState.FAILED
        assert "Strict mode" in strict.error
        assert not (tmp_path / "strict").exists()
        assert not list(tmp_path.glob(".strict.staging-*"))

    @pytest.mark.asyncio
    async def test_strict_threshold(self, tmp_path):
        """Issues below strict_min_severity do not fail the build."""
        vault = make_vault(tmp_path / "vault")
        (vault / "broken.md").write_text("[[Nowhere]]")
        result = await BuildOrchestrator(
            vault,
            tmp_path / "dist",
            config=plain_config(strict=True, strict_min_severity="error"),
        ).run()
        assert result.success

    @pytest.mark.asyncio
    async def test_cancellation_keeps_previous_output(self, tmp_path):
        """Cancelling mid-build discards staging and leaves the last build alone."""
        vault = make_vault(tmp_path / "vault")
        out = tmp_path / "dist"
        await BuildOrchestrator(vault, out, config=plain_config()).run()
        before = (out / MANIFEST_NAME).read_bytes()

        (vault / "new.md").write_text("# New page")

        class CancellingEmbedder(HashingTextEmbedder):
            async def batch_embed(self, texts):
                orchestrator.cancel("user pressed ctrl-c")
                return await super().batch_embed(texts)

        orchestrator = BuildOrchestrator(
            vault, out, config=plain_config(), plugins=[CancellingEmbedder(dimensions=8)]
        )
        result = await orchestrator.run()

        assert not result.success
        assert result.state == BuildState.FAILED
        assert "ctrl-c" in result.error
        assert result.issues[-1].category == "cancelled"
        assert (out / MANIFEST_NAME).read_bytes() == before
        assert not (out / "posts-embedding-hash-map.json").exists()
        assert not list(tmp_path.glob(".dist.staging-*"))
        assert verify_manifest(out) == []

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, tmp_path):
        """A pre-tripped token fails immediately."""
        vault = make_vault(tmp_path / "vault")
        orchestrator = BuildOrchestrator(vault, tmp_path / "dist", config=plain_config())
        orchestrator.cancel()
        result = await orchestrator.run()
        assert not result.success
        assert orchestrator.history == [BuildState.PENDING, BuildState.FAILED]

    @pytest.mark.asyncio
    async def test_cancel_waits_for_running_image_work(self, tmp_path):
        """Staging stays removed when a resize thread outlives the cancel request."""
        vault = make_vault(tmp_path / "vault")
        Image.new("RGB", (800, 400), "orange").save(vault / "img" / "banner.png", format="PNG")
        out = tmp_path / "dist"

        class SlowProcessor(PillowImageProcessor):
            async def process(self, input_path, output_path, options):
                if input_path.name == "banner.png":
                    await asyncio.sleep(0.05)
                    orchestrator.cancel("stop")
                    return await super().process(input_path, output_path, options)

                def slow_write():
                    time.sleep(0.4)
                    output_path.parent.mkdir(parents=True, exist_ok=True)
                    output_path.write_bytes(b"late")

                await asyncio.to_thread(slow_write)
                return VariantResult(
                    width=options.width, height=options.width // 2, format=options.format, size=4
                )

        orchestrator = BuildOrchestrator(
            vault, out, config=plain_config(media_concurrency=2), plugins=[SlowProcessor()]
        )
        result = await orchestrator.run()

        assert not result.success
        assert "cancelled" in [i.category for i in result.issues]
        assert not list(tmp_path.glob(".dist.staging-*"))
        await asyncio.sleep(0.5)
        assert not list(tmp_path.glob(".dist.staging-*"))
        assert not out.exists()
