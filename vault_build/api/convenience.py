"""
Convenience Functions

Top-level functions for building a vault without wiring up an
orchestrator by hand. Designed for quick scripts and REPL usage.

Example:
    >>> from vault_build import build_vault_sync
    >>> result = build_vault_sync("./vault", "./dist", embedding_provider="hashing")
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vault_build.config.settings import BuildConfig
    from vault_build.plugins.base import Plugin
    from vault_build.types.results import BuildResult
    from vault_build.utils.concurrency import CancellationToken


async def build_vault(
    source: str | Path,
    output: str | Path,
    *,
    config: "BuildConfig | None" = None,
    plugins: "list[Plugin] | None" = None,
    token: "CancellationToken | None" = None,
    **overrides: Any,
) -> "BuildResult":
    """
    Build a vault into an output directory.

    Args:
        source: Vault root
        output: Output directory (replaced atomically on success)
        config: Base configuration (default: from environment)
        plugins: Explicit plugin list instead of the configured ones
        token: Cancellation token
        **overrides: BuildConfig options applied on top of config
    """
    from vault_build.config.settings import BuildConfig
    from vault_build.pipeline.orchestrator import BuildOrchestrator

    base = config or BuildConfig()
    if overrides:
        base = base.with_overrides(**overrides)
    orchestrator = BuildOrchestrator(source, output, config=base, plugins=plugins, token=token)
    return await orchestrator.run()


def build_vault_sync(
    source: str | Path,
    output: str | Path,
    **kwargs: Any,
) -> "BuildResult":
    """Sync wrapper for build_vault."""
    return asyncio.run(build_vault(source, output, **kwargs))
