"""
Output Writer

Stages a build in a private sibling directory and publishes it atomically.

Layout:
    dist/                       published output (previous build)
    .dist.staging-{id}/         this build, until publish()
    .dist.lock                  publish lock

publish() runs under a FileLock so two builds targeting the same output never
interleave their renames: the old output is moved aside, staging is moved into
place, then the old output is removed. A build that fails or is cancelled
calls discard() and the published output is left untouched.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any
from uuid import uuid4

from filelock import FileLock

from vault_build.errors import FatalBuildError
from vault_build.output.manifest import MANIFEST_NAME, build_manifest
from vault_build.types.results import BuildManifest

logger = logging.getLogger(__name__)

# Artifact filenames
POSTS = "posts.json"
POSTS_SLUG_MAP = "posts-slug-map.json"
POSTS_PATH_MAP = "posts-path-map.json"
MEDIAS = "medias.json"
POSTS_EMBEDDING_HASH_MAP = "posts-embedding-hash-map.json"
POSTS_EMBEDDING_SLUG_MAP = "posts-embedding-slug-map.json"
MEDIA_EMBEDDING_HASH_MAP = "media-embedding-hash-map.json"
POSTS_SIMILARITY = "posts-similarity.json"
POSTS_SIMILAR_HASH = "posts-similar-hash.json"
POSTS_SCHEMA = "posts-schema.json"
SCHEMA_REPORT = "schema-report.json"
ISSUES = "processor-issues.json"


def dumps(data: Any) -> str:
    """
    Stable JSON text: fixed indent, no trailing spaces, newline at end.

    Key order is kept as given. Callers pass model dumps (field order) or
    dicts already sorted by key; frontmatter keeps its authored order.
    """
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class OutputWriter:
    """
    Staging directory for one build.

    Args:
        output_dir: Final published location
        lock_timeout: Seconds to wait for the publish lock
    """

    def __init__(self, output_dir: Path, lock_timeout: float = 60):
        self.output_dir = Path(output_dir).resolve()
        name = self.output_dir.name
        self.staging_dir = self.output_dir.parent / f".{name}.staging-{uuid4().hex[:12]}"
        self._lock = FileLock(str(self.output_dir.parent / f".{name}.lock"), timeout=lock_timeout)
        self._published = False

    def open(self) -> Path:
        """Create the staging directory."""
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise FatalBuildError(f"Cannot create staging directory {self.staging_dir}: {e}") from e
        logger.debug(f"Staging build in {self.staging_dir}")
        return self.staging_dir

    def path(self, relative: str) -> Path:
        """Absolute staging path for an artifact, creating parent dirs."""
        target = self.staging_dir / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        return target

    def write_json(self, relative: str, data: Any) -> Path:
        """Write one JSON artifact into staging."""
        target = self.path(relative)
        try:
            target.write_text(dumps(data), encoding="utf-8")
        except OSError as e:
            raise FatalBuildError(f"Failed to write {relative}: {e}") from e
        return target

    def write_manifest(self) -> BuildManifest:
        """Hash the staged tree and write manifest.json last."""
        manifest = build_manifest(self.staging_dir)
        self.write_json(MANIFEST_NAME, manifest.model_dump(mode="json"))
        return manifest

    def publish(self) -> Path:
        """
        Atomically replace the published output with the staged build.

        Raises:
            FatalBuildError: If the renames fail
        """
        old_dir = self.output_dir.parent / f".{self.output_dir.name}.old-{uuid4().hex[:12]}"
        with self._lock:
            try:
                if self.output_dir.exists():
                    self.output_dir.replace(old_dir)
                self.staging_dir.replace(self.output_dir)
            except OSError as e:
                # Put the previous output back if it was moved aside
                if old_dir.exists() and not self.output_dir.exists():
                    old_dir.replace(self.output_dir)
                raise FatalBuildError(f"Failed to publish {self.output_dir}: {e}") from e
        shutil.rmtree(old_dir, ignore_errors=True)
        self._published = True
        logger.info(f"Published build to {self.output_dir}")
        return self.output_dir

    def discard(self) -> None:
        """Delete the staging directory. Safe to call more than once."""
        if self._published:
            return
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            logger.debug(f"Discarded staging directory {self.staging_dir}")

    # -------------------------------------------------------------------------
    # Previous build
    # -------------------------------------------------------------------------

    def read_published_json(self, relative: str) -> Any | None:
        """JSON artifact from the published output, or None if absent or unreadable."""
        path = self.output_dir / relative
        if not path.is_file():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable previous artifact {relative}: {e}")
            return None
