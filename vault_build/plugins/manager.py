"""
Plugin Manager

Registers plugins, validates and orders their dependency graph, and runs
their lifecycle hooks.

Lifecycle:
    manager = PluginManager()
    manager.register(HashingTextEmbedder())
    manager.register(CosineSimilarityPlugin())
    order = manager.resolve()          # ConfigurationError if invalid
    await manager.initialize(output_dir=..., issues=..., config=...)
    embedder = manager.get_plugin("textEmbedder", TextEmbeddingPlugin)
    ...
    await manager.dispose()

Ordering:
    Kahn's algorithm over edges dependency -> dependent. Whenever several
    plugins are ready at once, the one registered first goes first, so the
    order is reproducible for a given registration sequence.

The registry is write-once: register() is rejected after initialize() has
started, and the lookup table is only read afterwards.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar, overload

from vault_build.errors import (
    ConfigurationError,
    CyclicDependencyError,
    DuplicateCapabilityError,
    FatalBuildError,
    MissingDependencyError,
)
from vault_build.plugins.base import Plugin, PluginContext, PluginState
from vault_build.types.issues import Severity

if TYPE_CHECKING:
    from vault_build.config import BuildConfig
    from vault_build.utils.issues import IssueCollector

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=Plugin)


class PluginManager:
    """String-keyed plugin registry with dependency resolution."""

    def __init__(self, plugins: Iterable[Plugin] | None = None) -> None:
        self._plugins: dict[str, Plugin] = {}
        self._states: dict[str, PluginState] = {}
        self._resolved: list[Plugin] | None = None
        self._active: dict[str, Plugin] = {}
        self._initialized: list[Plugin] = []
        self._frozen = False
        self._issues: IssueCollector | None = None
        for plugin in plugins or ():
            self.register(plugin)

    # -------------------------------------------------------------------------
    # Registration & resolution
    # -------------------------------------------------------------------------

    def register(self, plugin: Plugin) -> None:
        """
        Add a plugin under its capability name.

        Raises:
            DuplicateCapabilityError: If the capability is already registered
            RuntimeError: If initialization has already started
        """
        if self._frozen:
            raise RuntimeError("Plugin registry is read-only after initialize()")
        if plugin.name in self._plugins:
            raise DuplicateCapabilityError(plugin.name)
        self._plugins[plugin.name] = plugin
        self._states[plugin.name] = PluginState.REGISTERED
        self._resolved = None
        logger.debug(f"Registered plugin {plugin!r}")

    def resolve(self, configured: Iterable[str] | None = None) -> list[Plugin]:
        """
        Validate dependencies and return plugins in initialization order.

        Args:
            configured: Capability names to use. Defaults to every registered
                plugin.

        Returns:
            Plugins ordered so every dependency precedes its dependents

        Raises:
            ConfigurationError: If a configured name was never registered
            MissingDependencyError: If a required capability is not configured
            CyclicDependencyError: If the dependency graph has a cycle
        """
        registered = list(self._plugins)
        if configured is None:
            selected = registered
        else:
            wanted = set(configured)
            unknown = sorted(wanted - set(registered))
            if unknown:
                raise ConfigurationError(f"Unknown plugin capability: {', '.join(unknown)}")
            selected = [name for name in registered if name in wanted]

        selected_set = set(selected)
        position = {name: i for i, name in enumerate(registered)}

        for name in selected:
            missing = sorted(self._plugins[name].requires - selected_set)
            if missing:
                raise MissingDependencyError(name, missing)

        # Edges dependency -> dependent (required and present optional deps)
        indegree = {name: 0 for name in selected}
        dependents: dict[str, list[str]] = {name: [] for name in selected}
        for name in selected:
            plugin = self._plugins[name]
            for dep in sorted(plugin.requires | plugin.optional):
                if dep in selected_set:
                    indegree[name] += 1
                    dependents[dep].append(name)

        ready = [(position[name], name) for name in selected if indegree[name] == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, name = heapq.heappop(ready)
            order.append(name)
            for dependent in dependents[name]:
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heapq.heappush(ready, (position[dependent], dependent))

        if len(order) != len(selected):
            unresolved = [name for name in selected if name not in set(order)]
            raise CyclicDependencyError(unresolved)

        for name in order:
            self._states[name] = PluginState.RESOLVED
        self._resolved = [self._plugins[name] for name in order]
        logger.info(f"Resolved plugin order: {order or '(none)'}")
        return list(self._resolved)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(
        self,
        *,
        output_dir: Path,
        issues: "IssueCollector",
        config: "BuildConfig",
    ) -> None:
        """
        Initialize resolved plugins in dependency order.

        A plugin that raises is marked FAILED, recorded as an issue and
        treated as absent afterwards.

        Raises:
            FatalBuildError: If a failed plugin is required by another
                resolved plugin
        """
        if self._resolved is None:
            self.resolve()
        assert self._resolved is not None

        self._frozen = True
        self._issues = issues

        for plugin in self._resolved:
            context = PluginContext(
                output_dir=output_dir,
                issues=issues,
                config=config,
                get_plugin=self._lookup,
                logger=logging.getLogger(f"vault_build.plugins.{plugin.name}"),
            )
            try:
                await plugin.initialize(context)
            except Exception as e:
                self._states[plugin.name] = PluginState.FAILED
                issues.add_plugin_error(plugin.name, f"Initialization failed: {e}")
                dependents = sorted(
                    p.name for p in self._resolved if plugin.name in p.requires
                )
                if dependents:
                    raise FatalBuildError(
                        f"Plugin '{plugin.name}' failed to initialize and is required by: "
                        f"{', '.join(dependents)}"
                    ) from e
                continue

            self._states[plugin.name] = PluginState.INITIALIZED
            self._active[plugin.name] = plugin
            self._initialized.append(plugin)
            logger.debug(f"Initialized plugin {plugin!r}")

    async def dispose(self) -> None:
        """Dispose initialized plugins in reverse order. Never raises."""
        for plugin in reversed(self._initialized):
            try:
                await plugin.dispose()
            except Exception as e:
                logger.warning(f"Plugin '{plugin.name}' dispose failed: {e}")
                if self._issues is not None:
                    self._issues.add_plugin_error(
                        plugin.name, f"Dispose failed: {e}", severity=Severity.WARNING
                    )
        self._initialized.clear()
        self._active.clear()

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def _lookup(self, name: str) -> Plugin | None:
        return self._active.get(name)

    @overload
    def get_plugin(self, name: str) -> Plugin | None: ...

    @overload
    def get_plugin(self, name: str, expected_type: type[P]) -> P | None: ...

    def get_plugin(self, name: str, expected_type: type[Plugin] | None = None) -> Plugin | None:
        """
        Initialized plugin for a capability, or None if absent or failed.

        Raises:
            TypeError: If the plugin is not an instance of expected_type
        """
        plugin = self._active.get(name)
        if plugin is None:
            return None
        if expected_type is not None and not isinstance(plugin, expected_type):
            raise TypeError(
                f"Plugin '{name}' is {type(plugin).__name__}, "
                f"expected {expected_type.__name__}"
            )
        return plugin

    def state(self, name: str) -> PluginState | None:
        return self._states.get(name)

    @property
    def registered(self) -> list[Plugin]:
        return list(self._plugins.values())

    @property
    def resolved_names(self) -> list[str]:
        return [p.name for p in self._resolved or []]
