"""
vault-build - Content Build Pipeline

Turns a vault of markdown documents and media into content-addressed build
artifacts: parsed documents, media variants, embeddings, similarity maps, a
queryable Parquet database and an integrity manifest.

Example:
    >>> from vault_build import BuildConfig, build_vault
    >>> config = BuildConfig(embedding_provider="hashing", similarity_enabled=True)
    >>> result = await build_vault("./vault", "./dist", config=config)
    >>> print(result.success, len(result.issues))

Main Classes:
    BuildOrchestrator: Runs one build through its stages
    BuildConfig: Configuration management
    PluginManager: Plugin registry and dependency resolution
"""

__version__ = "0.1.0"


# Public API - lazy imports to avoid loading optional dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "BuildOrchestrator":
        from vault_build.pipeline.orchestrator import BuildOrchestrator
        return BuildOrchestrator

    if name == "BuildConfig":
        from vault_build.config.settings import BuildConfig
        return BuildConfig

    if name == "PluginManager":
        from vault_build.plugins.manager import PluginManager
        return PluginManager

    if name == "CancellationToken":
        from vault_build.utils.concurrency import CancellationToken
        return CancellationToken

    # Convenience functions
    if name in ("build_vault", "build_vault_sync"):
        from vault_build.api import convenience
        return getattr(convenience, name)

    # Types
    if name in ("Document", "MediaAsset", "BuildResult", "BuildManifest", "Issue"):
        from vault_build import types
        return getattr(types, name)

    raise AttributeError(f"module 'vault_build' has no attribute {name!r}")


__all__ = [
    # Main classes
    "BuildOrchestrator",
    "BuildConfig",
    "PluginManager",
    "CancellationToken",

    # Convenience functions
    "build_vault",
    "build_vault_sync",

    # Types
    "Document",
    "MediaAsset",
    "BuildResult",
    "BuildManifest",
    "Issue",

    # Version
    "__version__",
]
