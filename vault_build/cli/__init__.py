"""
Command-Line Interface

CLI commands for vault-build.

Commands:
    vault-build build    - Build a vault into an output directory
    vault-build plugins  - Show the resolved plugin initialization order
    vault-build verify   - Re-hash a published build against its manifest
    vault-build info     - Display a published build's summary

Usage:
    # Plain build (documents and media copies only)
    vault-build build ./vault --out ./dist

    # Embeddings, similarity, resized images and the database
    vault-build build ./vault --out ./dist --embedder hashing \\
        --similarity --images --database

    # Check what a config file would run
    vault-build plugins --config vault-build.toml

    # Integrity check
    vault-build verify ./dist
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

__all__ = ["main", "app"]

app = typer.Typer(
    name="vault-build",
    help="Content build pipeline for markdown vaults",
    no_args_is_help=True,
)
console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def _load_config(
    config_file: Optional[Path],
    *,
    strict: Optional[bool] = None,
    embedder: Optional[str] = None,
    images: Optional[bool] = None,
    similarity: Optional[bool] = None,
    database: Optional[bool] = None,
):
    """BuildConfig from file or environment, with command-line overrides."""
    from vault_build.config import BuildConfig

    config = BuildConfig.from_file(config_file) if config_file else BuildConfig()
    overrides: dict[str, object] = {}
    if strict is not None:
        overrides["strict"] = strict
    if embedder is not None:
        overrides["embedding_provider"] = embedder
    if images is not None:
        overrides["image_processor"] = "pillow" if images else "none"
    if similarity is not None:
        overrides["similarity_enabled"] = similarity
    if database is not None:
        overrides["database_enabled"] = database
    return config.with_overrides(**overrides) if overrides else config


@app.command()
def build(
    source: Path = typer.Argument(
        ...,
        help="Vault directory",
        exists=True,
        file_okay=False,
    ),
    out: Path = typer.Option(
        Path("./dist"),
        "--out", "-o",
        help="Output directory",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
        dir_okay=False,
    ),
    strict: Optional[bool] = typer.Option(
        None,
        "--strict/--no-strict",
        help="Fail the build on any qualifying issue",
    ),
    embedder: Optional[str] = typer.Option(
        None,
        "--embedder", "-e",
        help="Text embedder: none, hashing or openai",
    ),
    images: Optional[bool] = typer.Option(
        None,
        "--images/--no-images",
        help="Generate resized image variants with Pillow",
    ),
    similarity: Optional[bool] = typer.Option(
        None,
        "--similarity/--no-similarity",
        help="Compute document similarity (needs an embedder)",
    ),
    database: Optional[bool] = typer.Option(
        None,
        "--database/--no-database",
        help="Build the Parquet database",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Debug logging",
    ),
) -> None:
    """Build a vault into an output directory."""
    load_dotenv()
    _setup_logging(verbose)

    async def _run():
        from vault_build.pipeline.orchestrator import BuildOrchestrator

        config = _load_config(
            config_file,
            strict=strict,
            embedder=embedder,
            images=images,
            similarity=similarity,
            database=database,
        )
        orchestrator = BuildOrchestrator(source, out, config=config)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task(f"Building {source}...")
            result = await orchestrator.run()
            progress.update(task, completed=True)
        return result

    result = asyncio.run(_run())

    console.print()
    if result.success:
        stats = result.stats
        console.print(Panel(
            f"[green]Published to {result.output_dir}[/]\n\n"
            f"  Documents: {stats.documents}\n"
            f"  Media: {stats.media} ({stats.variants} variants)\n"
            f"  Text embeddings: {stats.text_embeddings}\n"
            f"  Similarity pairs: {stats.similarity_pairs}\n"
            f"  Artifacts: {len(result.manifest.entries) if result.manifest else 0}\n"
            f"  Duration: {result.duration_seconds:.1f}s",
            title="Build Complete",
        ))
    else:
        console.print(Panel(
            f"[red]{result.error}[/]",
            title=f"Build Failed ({result.state.value})",
            border_style="red",
        ))

    if result.issues:
        table = Table(title=f"Issues ({len(result.issues)})")
        table.add_column("Severity")
        table.add_column("Category", style="cyan")
        table.add_column("Path", style="dim")
        table.add_column("Message")
        for issue in result.issues[:50]:
            color = {"error": "red", "warning": "yellow"}.get(issue.severity.value, "blue")
            table.add_row(
                f"[{color}]{issue.severity.value}[/]",
                issue.category,
                issue.path or "",
                issue.message,
            )
        console.print(table)

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def plugins(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="TOML configuration file",
        exists=True,
        dir_okay=False,
    ),
    embedder: Optional[str] = typer.Option(None, "--embedder", "-e", help="Text embedder"),
    images: Optional[bool] = typer.Option(None, "--images/--no-images"),
    similarity: Optional[bool] = typer.Option(None, "--similarity/--no-similarity"),
    database: Optional[bool] = typer.Option(None, "--database/--no-database"),
) -> None:
    """Show the resolved plugin initialization order."""
    from vault_build.errors import ConfigurationError
    from vault_build.plugins import PluginManager, plugins_from_config
    from vault_build.plugins.base import describe

    load_dotenv()
    config = _load_config(
        config_file,
        embedder=embedder,
        images=images,
        similarity=similarity,
        database=database,
    )
    try:
        manager = PluginManager(plugins_from_config(config))
        order = manager.resolve()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/]")
        raise typer.Exit(code=1)

    if not order:
        console.print("[yellow]No plugins configured.[/]")
        return

    table = Table(title="Plugin Initialization Order")
    table.add_column("#", justify="right")
    table.add_column("Capability", style="cyan")
    table.add_column("Implementation")
    table.add_column("Requires", style="green")
    table.add_column("Uses if present", style="dim")
    for i, plugin in enumerate(order, start=1):
        summary = describe(plugin)
        table.add_row(
            str(i),
            summary["name"],
            summary["class"],
            ", ".join(summary["requires"]),
            ", ".join(summary["optional"]),
        )
    console.print(table)


@app.command()
def verify(
    out: Path = typer.Argument(
        ...,
        help="Published output directory",
        exists=True,
        file_okay=False,
    ),
) -> None:
    """Re-hash a published build against its manifest."""
    from vault_build.output import verify_manifest

    try:
        problems = verify_manifest(out)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(code=1)

    if problems:
        console.print(f"[red]{len(problems)} problem(s) found:[/]")
        for problem in problems:
            console.print(f"  - {problem}")
        raise typer.Exit(code=1)
    console.print("[green]All artifacts match the manifest.[/]")


@app.command()
def info(
    out: Path = typer.Argument(
        ...,
        help="Published output directory",
        exists=True,
        file_okay=False,
    ),
) -> None:
    """Display a published build's summary."""
    from vault_build.output import load_manifest
    from vault_build.output.writer import ISSUES

    manifest = load_manifest(out)
    if manifest is None:
        console.print(f"[red]No manifest found in {out}[/]")
        raise typer.Exit(code=1)

    table = Table(title=f"Build: {out}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Artifacts", str(len(manifest.entries)))
    table.add_row("Total bytes", str(sum(e.size for e in manifest.entries)))

    issues_path = out / ISSUES
    if issues_path.is_file():
        summary = json.loads(issues_path.read_text(encoding="utf-8")).get("summary", {})
        table.add_row("Issues", str(summary.get("total", 0)))
        for severity, count in summary.get("by_severity", {}).items():
            table.add_row(f"  {severity}", str(count))
    console.print(table)

    db_path = out / "database"
    if db_path.is_dir():
        async def _counts() -> dict[str, int]:
            from vault_build.storage.queries import DatabaseQueries

            queries = DatabaseQueries(db_path)
            try:
                return await queries.row_counts()
            finally:
                await queries.close()

        counts = asyncio.run(_counts())
        db_table = Table(title="Database")
        db_table.add_column("Table", style="cyan")
        db_table.add_column("Rows", justify="right", style="green")
        for name, count in counts.items():
            db_table.add_row(name, str(count))
        console.print(db_table)


def main() -> None:
    """Entry point for the CLI."""
    app()
