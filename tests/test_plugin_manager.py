"""Tests for plugin registration, dependency resolution and lifecycle."""

from typing import ClassVar

import pytest

from vault_build.config import BuildConfig
from vault_build.errors import (
    ConfigurationError,
    CyclicDependencyError,
    DuplicateCapabilityError,
    FatalBuildError,
    MissingDependencyError,
)
from vault_build.plugins import (
    DATABASE,
    SIMILARITY,
    TEXT_EMBEDDER,
    PluginManager,
    TextEmbeddingPlugin,
)
from vault_build.plugins.base import Plugin, PluginContext, PluginDependency, PluginState
from vault_build.plugins.embedding.hashing import HashingTextEmbedder
from vault_build.plugins.similarity import CosineSimilarityPlugin
from vault_build.storage.database import ParquetDatabasePlugin
from vault_build.utils.issues import IssueCollector


def make_plugin(name: str, requires=(), optional=(), fail: bool = False, log=None):
    """Build a throwaway plugin class with the given capability and deps."""

    class _Custom(Plugin):
        dependencies: ClassVar[tuple[PluginDependency, ...]] = tuple(
            [PluginDependency(d, required=True) for d in requires]
            + [PluginDependency(d, required=False) for d in optional]
        )

        async def initialize(self, context: PluginContext) -> None:
            if log is not None:
                log.append(("init", self.name))
            if fail:
                raise RuntimeError(f"{self.name} exploded")

        async def dispose(self) -> None:
            if log is not None:
                log.append(("dispose", self.name))

    _Custom.name = name
    return _Custom()


async def initialize(manager: PluginManager, tmp_path) -> IssueCollector:
    issues = IssueCollector()
    await manager.initialize(output_dir=tmp_path, issues=issues, config=BuildConfig())
    return issues


class TestRegistration:
    """Test the capability registry."""

    def test_duplicate_capability_rejected(self):
        """Two plugins with the same name cannot both register."""
        manager = PluginManager([HashingTextEmbedder()])
        with pytest.raises(DuplicateCapabilityError, match=TEXT_EMBEDDER):
            manager.register(HashingTextEmbedder(dimensions=8))

    @pytest.mark.asyncio
    async def test_register_after_initialize_rejected(self, tmp_path):
        """The registry is read-only once initialization starts."""
        manager = PluginManager([HashingTextEmbedder()])
        await initialize(manager, tmp_path)
        with pytest.raises(RuntimeError):
            manager.register(CosineSimilarityPlugin())


class TestResolve:
    """Test dependency validation and ordering."""

    def test_empty_registry(self):
        """No plugins resolves to an empty order."""
        assert PluginManager().resolve() == []

    def test_dependencies_come_first(self):
        """Dependents are ordered after their dependencies regardless of registration."""
        manager = PluginManager(
            [ParquetDatabasePlugin(), CosineSimilarityPlugin(), HashingTextEmbedder()]
        )
        names = [p.name for p in manager.resolve()]
        assert names.index(TEXT_EMBEDDER) < names.index(SIMILARITY)
        assert names.index(TEXT_EMBEDDER) < names.index(DATABASE)
        # Ready plugins keep registration order
        assert names == [TEXT_EMBEDDER, DATABASE, SIMILARITY]

    def test_order_reproducible(self):
        """The same registration sequence always yields the same order."""
        def build():
            return [
                p.name
                for p in PluginManager(
                    [make_plugin("c"), make_plugin("a"), make_plugin("b", requires=["c"])]
                ).resolve()
            ]

        assert build() == build() == ["c", "a", "b"]

    def test_missing_required_dependency(self):
        """similarity without a text embedder fails naming the capability."""
        manager = PluginManager([CosineSimilarityPlugin()])
        with pytest.raises(MissingDependencyError) as exc_info:
            manager.resolve()
        assert exc_info.value.missing == [TEXT_EMBEDDER]
        assert TEXT_EMBEDDER in str(exc_info.value)

    def test_missing_optional_dependency_is_fine(self):
        """The database plugin resolves without an embedder."""
        manager = PluginManager([ParquetDatabasePlugin()])
        assert [p.name for p in manager.resolve()] == [DATABASE]

    def test_cycle_detected(self):
        """A dependency cycle names the plugins involved."""
        manager = PluginManager(
            [
                make_plugin("a", requires=["b"]),
                make_plugin("b", requires=["a"]),
                make_plugin("c"),
            ]
        )
        with pytest.raises(CyclicDependencyError) as exc_info:
            manager.resolve()
        assert exc_info.value.unresolved == ["a", "b"]

    def test_optional_cycle_detected(self):
        """Optional edges between present plugins also count toward cycles."""
        manager = PluginManager(
            [make_plugin("a", optional=["b"]), make_plugin("b", optional=["a"])]
        )
        with pytest.raises(CyclicDependencyError):
            manager.resolve()

    def test_configured_subset(self):
        """Only configured capabilities are resolved."""
        manager = PluginManager([HashingTextEmbedder(), ParquetDatabasePlugin()])
        assert [p.name for p in manager.resolve([DATABASE])] == [DATABASE]

    def test_unknown_configured_name(self):
        """Configuring an unregistered capability is a configuration error."""
        manager = PluginManager([HashingTextEmbedder()])
        with pytest.raises(ConfigurationError, match="bogus"):
            manager.resolve([TEXT_EMBEDDER, "bogus"])

    def test_states_after_resolve(self):
        """Resolved plugins move to RESOLVED."""
        manager = PluginManager([HashingTextEmbedder()])
        assert manager.state(TEXT_EMBEDDER) == PluginState.REGISTERED
        manager.resolve()
        assert manager.state(TEXT_EMBEDDER) == PluginState.RESOLVED
        assert manager.resolved_names == [TEXT_EMBEDDER]


class TestLifecycle:
    """Test initialize, lookup and dispose."""

    @pytest.mark.asyncio
    async def test_initialize_in_order_and_dispose_reversed(self, tmp_path):
        """initialize follows dependency order and dispose runs it backwards."""
        log: list[tuple[str, str]] = []
        manager = PluginManager(
            [make_plugin("b", requires=["a"], log=log), make_plugin("a", log=log)]
        )
        await initialize(manager, tmp_path)
        await manager.dispose()
        assert log == [("init", "a"), ("init", "b"), ("dispose", "b"), ("dispose", "a")]

    @pytest.mark.asyncio
    async def test_get_plugin_typed(self, tmp_path):
        """get_plugin returns the instance and checks its type."""
        embedder = HashingTextEmbedder()
        manager = PluginManager([embedder])
        await initialize(manager, tmp_path)
        assert manager.get_plugin(TEXT_EMBEDDER, TextEmbeddingPlugin) is embedder
        assert manager.get_plugin(SIMILARITY) is None
        with pytest.raises(TypeError):
            manager.get_plugin(TEXT_EMBEDDER, CosineSimilarityPlugin)

    @pytest.mark.asyncio
    async def test_optional_dependency_failure_degrades(self, tmp_path):
        """A failing plugin nobody requires is recorded and treated as absent."""
        manager = PluginManager(
            [make_plugin("a", fail=True), make_plugin("b", optional=["a"])]
        )
        issues = await initialize(manager, tmp_path)
        assert manager.state("a") == PluginState.FAILED
        assert manager.get_plugin("a") is None
        assert manager.get_plugin("b") is not None
        assert [(i.category, i.context.get("plugin")) for i in issues.issues] == [
            ("plugin", "a")
        ]

    @pytest.mark.asyncio
    async def test_required_dependency_failure_is_fatal(self, tmp_path):
        """A failing plugin that another requires aborts the build."""
        manager = PluginManager(
            [make_plugin("a", fail=True), make_plugin("b", requires=["a"])]
        )
        with pytest.raises(FatalBuildError, match="required by: b"):
            await initialize(manager, tmp_path)

    @pytest.mark.asyncio
    async def test_dispose_errors_do_not_raise(self, tmp_path):
        """A dispose failure becomes a warning issue."""

        class Broken(Plugin):
            name = "broken"

            async def dispose(self) -> None:
                raise RuntimeError("cleanup failed")

        manager = PluginManager([Broken()])
        issues = await initialize(manager, tmp_path)
        await manager.dispose()
        assert [i.severity.value for i in issues.issues] == ["warning"]
