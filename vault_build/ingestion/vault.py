"""
Vault Ingest

Two-pass ingest of a vault directory.

Pass 1 - Walk & parse:
    - Walk the tree in sorted order, skipping dot-names and ignored names
    - Read, hash and parse every markdown file (frontmatter + body)
    - Hash every media file
    - Collapse identical documents, drop unpublished ones, assign slugs
    - Build path / slug / name indices pointing at content hashes

Pass 2 - Resolve & render:
    - Resolve wiki links, markdown links and media references
    - Render HTML, plain text, TOC and excerpt
    - Invert outgoing links into backlinks

Malformed or unreadable documents are recorded as issues and skipped.

Example:
    >>> ingest = VaultIngest("./vault", BuildConfig(), IssueCollector())
    >>> snapshot = await ingest.ingest()
    >>> print(len(snapshot.documents))
"""

from __future__ import annotations

import asyncio
import logging
import os
import posixpath
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from vault_build.config import BuildConfig
from vault_build.errors import FatalBuildError, IngestError
from vault_build.ingestion.frontmatter import frontmatter_tags, is_published, parse_frontmatter
from vault_build.ingestion.markdown import (
    MARKDOWN_EXTENSIONS,
    MEDIA_EXTENSIONS,
    LinkRef,
    extract_inline_tags,
    extract_title,
    render_markdown,
    scan_references,
)
from vault_build.ingestion.slugs import SlugManager
from vault_build.types.documents import Document, MediaSource, VaultSnapshot
from vault_build.utils.concurrency import CancellationToken, run_bounded
from vault_build.utils.hashing import compute_hash, hash_file
from vault_build.utils.issues import IssueCollector
from vault_build.utils.paths import guess_mime, media_copy_name
from vault_build.utils.text import excerpt, slugify, word_count

logger = logging.getLogger(__name__)


@dataclass
class _ParsedFile:
    """A markdown file after pass 1."""

    path: str
    hash: str
    frontmatter: dict[str, Any]
    body: str


class VaultIngest:
    """
    Walks and parses a vault.

    Args:
        root: Vault directory
        config: Build configuration
        issues: Issue sink shared with the rest of the build
        exclude: Absolute paths never to descend into (e.g. the output dir)
    """

    def __init__(
        self,
        root: str | Path,
        config: BuildConfig,
        issues: IssueCollector,
        exclude: list[Path] | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config
        self.issues = issues
        self._exclude = {p.resolve() for p in (exclude or [])}

    async def ingest(self, token: CancellationToken | None = None) -> VaultSnapshot:
        """Run both passes and return the snapshot."""
        if not self.root.is_dir():
            raise FatalBuildError(f"Vault directory not found: {self.root}")

        markdown_paths, media_paths = await asyncio.to_thread(self._walk)
        logger.info(
            f"Found {len(markdown_paths)} markdown files and "
            f"{len(media_paths)} media files in {self.root}"
        )

        parsed = await run_bounded(
            markdown_paths,
            self._parse_one,
            concurrency=self.config.ingest_concurrency,
            token=token,
        )
        media = await run_bounded(
            media_paths,
            self._hash_media,
            concurrency=self.config.ingest_concurrency,
            token=token,
        )

        if token is not None:
            token.raise_if_cancelled()

        files = [p for p in parsed if p is not None]
        media_sources = [m for m in media if m is not None]
        return self._resolve(files, media_sources)

    # -------------------------------------------------------------------------
    # Pass 1
    # -------------------------------------------------------------------------

    def _walk(self) -> tuple[list[str], list[str]]:
        """Sorted vault-relative POSIX paths of markdown and media files."""
        ignored = set(self.config.ignore_names)
        markdown: list[str] = []
        media: list[str] = []

        for dirpath, dirnames, filenames in os.walk(self.root):
            current = Path(dirpath)
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not d.startswith(".")
                and d not in ignored
                and (current / d).resolve() not in self._exclude
            )
            for name in sorted(filenames):
                if name.startswith(".") or name in ignored:
                    continue
                rel = (current / name).relative_to(self.root).as_posix()
                suffix = PurePosixPath(name).suffix.lower()
                if suffix in MARKDOWN_EXTENSIONS:
                    markdown.append(rel)
                elif suffix in MEDIA_EXTENSIONS:
                    media.append(rel)

        return sorted(markdown), sorted(media)

    async def _parse_one(self, rel_path: str) -> _ParsedFile | None:
        try:
            return await asyncio.to_thread(self._read_document, rel_path)
        except IngestError as e:
            self.issues.add_ingest_error(rel_path, str(e))
            return None

    def _read_document(self, rel_path: str) -> _ParsedFile:
        """Read and parse one markdown file. Raises IngestError."""
        try:
            raw = (self.root / rel_path).read_bytes()
        except OSError as e:
            raise IngestError(rel_path, f"unreadable file: {e}") from e

        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise IngestError(rel_path, f"not valid UTF-8: {e}") from e

        text = text.replace("\r\n", "\n")
        frontmatter, body = parse_frontmatter(text, rel_path)
        return _ParsedFile(
            path=rel_path,
            hash=compute_hash(raw),
            frontmatter=frontmatter,
            body=body,
        )

    async def _hash_media(self, rel_path: str) -> MediaSource | None:
        full = self.root / rel_path
        try:
            content_hash = await asyncio.to_thread(hash_file, full)
            size = full.stat().st_size
        except OSError as e:
            self.issues.add_media_processing_error(rel_path, f"Unreadable media file: {e}")
            return None
        return MediaSource(
            hash=content_hash,
            path=rel_path,
            mime_type=guess_mime(rel_path),
            size=size,
        )

    # -------------------------------------------------------------------------
    # Pass 2
    # -------------------------------------------------------------------------

    def _resolve(self, files: list[_ParsedFile], media: list[MediaSource]) -> VaultSnapshot:
        slugs = SlugManager(self.issues)

        # Collapse identical content and drop unpublished documents
        primaries: list[_ParsedFile] = []
        aliases: dict[str, list[str]] = defaultdict(list)
        first_path: dict[str, str] = {}
        for parsed in sorted(files, key=lambda f: f.path):
            if not self.config.include_unpublished and not is_published(parsed.frontmatter):
                logger.debug(f"Skipping unpublished document {parsed.path}")
                continue
            if parsed.hash in first_path:
                aliases[parsed.hash].append(parsed.path)
                self.issues.add_duplicate_content(
                    parsed.path, first_path[parsed.hash], parsed.hash
                )
                continue
            first_path[parsed.hash] = parsed.path
            primaries.append(parsed)

        slug_of: dict[str, str] = {}
        path_index: dict[str, str] = {}
        for parsed in primaries:
            slug_of[parsed.hash] = slugs.assign(parsed.path, parsed.frontmatter)
            path_index[parsed.path] = parsed.hash
            for alias in aliases[parsed.hash]:
                path_index[alias] = parsed.hash
        slug_index = {slug: h for h, slug in slug_of.items()}

        resolver = _Resolver(self.config, path_index, slug_index, media)

        documents: list[Document] = []
        for parsed in primaries:
            documents.append(
                self._build_document(
                    parsed, slug_of[parsed.hash], aliases[parsed.hash], resolver, slug_of
                )
            )

        # Derive backlinks by inverting outgoing links
        backlinks: dict[str, set[str]] = defaultdict(set)
        for doc in documents:
            for target in doc.outgoing_links:
                backlinks[target].add(doc.hash)
        documents = [
            doc.model_copy(update={"backlinks": sorted(backlinks.get(doc.hash, ()))})
            for doc in documents
        ]

        logger.info(
            f"Ingested {len(documents)} documents "
            f"({sum(len(d.outgoing_links) for d in documents)} links), "
            f"{len(media)} media files"
        )
        return VaultSnapshot(
            documents=documents,
            media=sorted(media, key=lambda m: m.path),
            path_index=dict(sorted(path_index.items())),
            slug_index=dict(sorted(slug_index.items())),
        )

    def _build_document(
        self,
        parsed: _ParsedFile,
        slug: str,
        alias_paths: list[str],
        resolver: "_Resolver",
        slug_of: dict[str, str],
    ) -> Document:
        outgoing: set[str] = set()
        media_refs: set[str] = set()
        reported: set[tuple[str, str]] = set()

        for ref in scan_references(parsed.body):
            if ref.is_media:
                source = resolver.media(ref, parsed.path)
                if source is not None:
                    media_refs.add(source.hash)
                elif ("media", ref.target) not in reported:
                    reported.add(("media", ref.target))
                    self.issues.add_missing_media(parsed.path, ref.target, parsed.hash)
                continue

            target = resolver.document(ref, parsed.path, parsed.hash)
            if target is None:
                if ("link", ref.target) not in reported:
                    reported.add(("link", ref.target))
                    self.issues.add_broken_link(parsed.path, ref.target, parsed.hash)
            elif target != parsed.hash:
                outgoing.add(target)

        def link_href(ref: LinkRef) -> str | None:
            target = resolver.document(ref, parsed.path, parsed.hash)
            if target is None:
                return None
            href = f"/{slug_of[target]}"
            return f"{href}#{slugify(ref.fragment)}" if ref.fragment else href

        def media_src(ref: LinkRef) -> str | None:
            source = resolver.media(ref, parsed.path)
            if source is None:
                return None
            prefix = self.config.media_url_prefix.rstrip("/")
            name = media_copy_name(source.hash, source.path, shard=self.config.media_shard)
            return f"{prefix}/{name}"

        rendered = render_markdown(parsed.body, resolve_link=link_href, resolve_media=media_src)

        fm_title = parsed.frontmatter.get("title")
        title = (
            str(fm_title).strip()
            if fm_title not in (None, "")
            else extract_title(parsed.body) or PurePosixPath(parsed.path).stem
        )
        tags = sorted(set(frontmatter_tags(parsed.frontmatter)) | set(extract_inline_tags(rendered.plain_text)))

        return Document(
            hash=parsed.hash,
            path=parsed.path,
            slug=slug,
            title=title,
            frontmatter=parsed.frontmatter,
            body=parsed.body,
            toc=rendered.toc,
            rendered_html=rendered.html,
            plain_text=rendered.plain_text,
            excerpt=excerpt(rendered.plain_text),
            word_count=word_count(rendered.plain_text),
            tags=tags,
            outgoing_links=sorted(outgoing),
            media_refs=sorted(media_refs),
            aliases=sorted(alias_paths),
        )


class _Resolver:
    """Resolves link and media targets against the vault indices."""

    def __init__(
        self,
        config: BuildConfig,
        path_index: dict[str, str],
        slug_index: dict[str, str],
        media: list[MediaSource],
    ) -> None:
        self._paths = path_index
        self._slugs = slug_index
        self._by_stem: dict[str, list[str]] = defaultdict(list)
        for path in sorted(path_index):
            stem = PurePosixPath(path).with_suffix("").as_posix().lower()
            self._by_stem[PurePosixPath(stem).name].append(path)
            self._by_stem[stem].append(path)

        self._media_paths = {m.path: m for m in media}
        self._media_by_name: dict[str, list[MediaSource]] = defaultdict(list)
        for m in sorted(media, key=lambda s: s.path):
            self._media_by_name[PurePosixPath(m.path).name.lower()].append(m)

    @staticmethod
    def _candidates(target: str, from_path: str) -> list[str]:
        """Relative-to-document first, then relative-to-root."""
        base = posixpath.dirname(from_path)
        options: list[str] = []
        if not target.startswith("/"):
            options.append(posixpath.normpath(posixpath.join(base, target)))
        options.append(posixpath.normpath(target.lstrip("/")))
        return [o for o in options if not o.startswith("..")]

    def document(self, ref: LinkRef, from_path: str, from_hash: str) -> str | None:
        """Content hash of the referenced document, or None."""
        target = ref.target.strip()
        if not target:
            # [[#heading]] points into the current document
            return from_hash

        for candidate in self._candidates(target, from_path):
            for path in (candidate, f"{candidate}.md", f"{candidate}.markdown"):
                if path in self._paths:
                    return self._paths[path]

        key = target.lower()
        for ext in MARKDOWN_EXTENSIONS:
            if key.endswith(ext):
                key = key[: -len(ext)]
        matches = self._by_stem.get(key.lstrip("/"))
        if matches:
            return self._paths[matches[0]]

        slug = slugify(target)
        return self._slugs.get(slug)

    def media(self, ref: LinkRef, from_path: str) -> MediaSource | None:
        """Referenced media source, or None."""
        target = ref.target.strip()
        if not target:
            return None
        for candidate in self._candidates(target, from_path):
            if candidate in self._media_paths:
                return self._media_paths[candidate]
        matches = self._media_by_name.get(PurePosixPath(target).name.lower(), [])
        if len(matches) == 1:
            return matches[0]
        return None
