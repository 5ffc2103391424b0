"""
Build Manifest

Integrity listing of every published artifact. Written last, so a build
directory with a valid manifest.json is a complete build.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from vault_build.types.results import BuildManifest, ManifestEntry
from vault_build.utils.hashing import hash_file

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


def build_manifest(root: Path) -> BuildManifest:
    """
    Hash every file under root except the manifest itself.

    Entries are sorted by hash, ties broken by path.
    """
    entries = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        rel = path.relative_to(root).as_posix()
        if rel == MANIFEST_NAME:
            continue
        entries.append(ManifestEntry(path=rel, hash=hash_file(path), size=path.stat().st_size))
    entries.sort(key=lambda e: (e.hash, e.path))
    return BuildManifest(entries=entries)


def load_manifest(output_dir: Path) -> BuildManifest | None:
    """Manifest of a published build, or None if there is none."""
    path = Path(output_dir) / MANIFEST_NAME
    if not path.exists():
        return None
    return BuildManifest.model_validate(json.loads(path.read_text(encoding="utf-8")))


def verify_manifest(output_dir: Path) -> list[str]:
    """
    Re-hash every manifest entry.

    Returns:
        Problems found (missing files, hash or size mismatches). Empty when
        the output matches its manifest.

    Raises:
        FileNotFoundError: If output_dir has no manifest
    """
    output_dir = Path(output_dir)
    manifest = load_manifest(output_dir)
    if manifest is None:
        raise FileNotFoundError(f"No {MANIFEST_NAME} in {output_dir}")

    problems: list[str] = []
    for entry in manifest.entries:
        path = output_dir / entry.path
        if not path.is_file():
            problems.append(f"missing: {entry.path}")
            continue
        if path.stat().st_size != entry.size:
            problems.append(f"size mismatch: {entry.path}")
            continue
        if hash_file(path) != entry.hash:
            problems.append(f"hash mismatch: {entry.path}")

    if problems:
        logger.warning(f"Manifest verification found {len(problems)} problem(s)")
    return problems
