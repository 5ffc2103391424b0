"""
Error Taxonomy

Exceptions raised across the build pipeline.

Fatal (abort the run, discard staged output):
    - ConfigurationError and subclasses: plugin graph problems, detected
      before any processing starts
    - FatalBuildError: staging write failure, database transaction failure,
      strict-mode violation
    - BuildCancelledError: the cancellation token was tripped

Recoverable (recorded as an Issue, the run continues):
    - IngestError: a malformed or unreadable document, which is skipped
    - PluginExecutionError: a per-item plugin failure, the item falls back
      or is omitted
"""

from __future__ import annotations


class VaultBuildError(Exception):
    """Base class for all build pipeline errors."""


class ConfigurationError(VaultBuildError):
    """Invalid plugin configuration. Always fatal."""


class DuplicateCapabilityError(ConfigurationError):
    """Two plugins registered under the same capability name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Plugin capability already registered: {name}")


class MissingDependencyError(ConfigurationError):
    """A plugin requires a capability that is not configured."""

    def __init__(self, plugin: str, missing: list[str]) -> None:
        self.plugin = plugin
        self.missing = missing
        super().__init__(
            f"Plugin '{plugin}' requires missing capability: {', '.join(missing)}"
        )


class CyclicDependencyError(ConfigurationError):
    """The plugin dependency graph contains a cycle."""

    def __init__(self, unresolved: list[str]) -> None:
        self.unresolved = unresolved
        super().__init__(
            f"Circular plugin dependency detected among: {', '.join(unresolved)}"
        )


class IngestError(VaultBuildError):
    """A source document could not be read or parsed."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class PluginExecutionError(VaultBuildError):
    """A plugin failed while processing a single item."""

    def __init__(self, plugin: str, subject: str, cause: BaseException | None = None) -> None:
        self.plugin = plugin
        self.subject = subject
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Plugin '{plugin}' failed on {subject}{detail}")


class FatalBuildError(VaultBuildError):
    """Stage-level failure that aborts the whole run."""


class BuildCancelledError(VaultBuildError):
    """The build was cancelled through its cancellation token."""
