"""Tests for vault walking, parsing and link resolution."""

from pathlib import Path

import pytest

from vault_build.config import BuildConfig
from vault_build.errors import FatalBuildError
from vault_build.ingestion import VaultIngest
from vault_build.utils.hashing import compute_hash
from vault_build.utils.issues import IssueCollector


def write(root: Path, rel: str, content: str | bytes) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


async def ingest(root: Path, **config) -> tuple:
    issues = IssueCollector()
    snapshot = await VaultIngest(root, BuildConfig(**config), issues).ingest()
    return snapshot, issues


class TestWalk:
    """Test discovery of markdown and media files."""

    @pytest.mark.asyncio
    async def test_documents_sorted_by_path(self, tmp_path):
        """Documents come back sorted by vault path."""
        write(tmp_path, "b.md", "# B")
        write(tmp_path, "a.md", "# A")
        write(tmp_path, "sub/c.markdown", "# C")
        snapshot, issues = await ingest(tmp_path)
        assert [d.path for d in snapshot.documents] == ["a.md", "b.md", "sub/c.markdown"]
        assert issues.issues == []

    @pytest.mark.asyncio
    async def test_skips_dot_and_ignored_dirs(self, tmp_path):
        """Dot directories and ignore_names are not walked."""
        write(tmp_path, "keep.md", "keep")
        write(tmp_path, ".obsidian/config.md", "hidden")
        write(tmp_path, "node_modules/pkg/readme.md", "ignored")
        write(tmp_path, "drafts/x.md", "custom ignore")
        snapshot, _ = await ingest(tmp_path, ignore_names=["node_modules", "drafts"])
        assert [d.path for d in snapshot.documents] == ["keep.md"]

    @pytest.mark.asyncio
    async def test_media_sources_hashed(self, tmp_path):
        """Media files become MediaSource records with content hashes."""
        write(tmp_path, "img/a.png", b"png-bytes")
        write(tmp_path, "notes.txt", "not collected")
        snapshot, _ = await ingest(tmp_path)
        assert len(snapshot.media) == 1
        assert snapshot.media[0].hash == compute_hash(b"png-bytes")
        assert snapshot.media[0].mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_missing_root_is_fatal(self, tmp_path):
        """A missing vault directory raises FatalBuildError."""
        with pytest.raises(FatalBuildError):
            await ingest(tmp_path / "missing")


class TestParsing:
    """Test per-document parsing."""

    @pytest.mark.asyncio
    async def test_document_fields(self, tmp_path):
        """Title, slug, tags, toc and text fields are populated."""
        write(
            tmp_path,
            "guide.md",
            "---\ntitle: The Guide\ntags: [intro]\n---\n# Heading\n\nSome #python text here.",
        )
        snapshot, _ = await ingest(tmp_path)
        doc = snapshot.documents[0]
        assert doc.title == "The Guide"
        assert doc.slug == "guide"
        assert doc.tags == ["intro", "python"]
        assert doc.toc[0].anchor == "heading"
        assert doc.word_count == 5
        assert doc.excerpt == "Heading"
        assert doc.hash == compute_hash((tmp_path / "guide.md").read_bytes())

    @pytest.mark.asyncio
    async def test_title_fallbacks(self, tmp_path):
        """Title falls back to the first h1, then the filename stem."""
        write(tmp_path, "a.md", "# From Heading\n")
        write(tmp_path, "my-note.md", "no heading")
        snapshot, _ = await ingest(tmp_path)
        assert [d.title for d in snapshot.documents] == ["From Heading", "my-note"]

    @pytest.mark.asyncio
    async def test_malformed_frontmatter_skipped(self, tmp_path):
        """A malformed document is skipped with an ingest error."""
        write(tmp_path, "good.md", "fine")
        write(tmp_path, "bad.md", "---\ntitle: [oops\n---\n")
        snapshot, issues = await ingest(tmp_path)
        assert [d.path for d in snapshot.documents] == ["good.md"]
        assert [(i.category, i.path, i.severity.value) for i in issues.issues] == [
            ("ingest", "bad.md", "error")
        ]

    @pytest.mark.asyncio
    async def test_invalid_utf8_skipped(self, tmp_path):
        """Invalid UTF-8 is an ingest error."""
        write(tmp_path, "binary.md", b"\xff\xfe\x00bad")
        snapshot, issues = await ingest(tmp_path)
        assert snapshot.documents == []
        assert issues.issues[0].category == "ingest"

    @pytest.mark.asyncio
    async def test_unpublished_skipped(self, tmp_path):
        """Drafts are skipped unless include_unpublished is set."""
        write(tmp_path, "draft.md", "---\ndraft: true\n---\nwip")
        write(tmp_path, "live.md", "live")
        snapshot, _ = await ingest(tmp_path)
        assert [d.path for d in snapshot.documents] == ["live.md"]

        snapshot, _ = await ingest(tmp_path, include_unpublished=True)
        assert [d.path for d in snapshot.documents] == ["draft.md", "live.md"]

    @pytest.mark.asyncio
    async def test_duplicate_content_collapses(self, tmp_path):
        """Identical documents collapse onto one with aliases."""
        write(tmp_path, "a.md", "same bytes")
        write(tmp_path, "copy/a.md", "same bytes")
        snapshot, issues = await ingest(tmp_path)
        assert len(snapshot.documents) == 1
        doc = snapshot.documents[0]
        assert doc.path == "a.md"
        assert doc.aliases == ["copy/a.md"]
        assert snapshot.path_index == {"a.md": doc.hash, "copy/a.md": doc.hash}
        assert [i.category for i in issues.issues] == ["duplicate-content"]

    @pytest.mark.asyncio
    async def test_slug_conflicts_are_deterministic(self, tmp_path):
        """Same-named files in different folders get numbered slugs by path order."""
        write(tmp_path, "a/notes.md", "first")
        write(tmp_path, "b/notes.md", "second")
        snapshot, issues = await ingest(tmp_path)
        assert [d.slug for d in snapshot.documents] == ["notes", "notes-2"]
        assert snapshot.slug_index["notes-2"] == snapshot.documents[1].hash
        assert issues.issues[0].category == "slug-conflict"


class TestLinkResolution:
    """Test pass-2 link and media resolution."""

    @pytest.mark.asyncio
    async def test_links_and_backlinks(self, tmp_path):
        """Wiki and relative links resolve; backlinks invert them."""
        write(tmp_path, "a.md", "Links to [[B]] and [c](sub/c.md).")
        write(tmp_path, "b.md", "Back to [[a#Top|A]].")
        write(tmp_path, "sub/c.md", "Leaf.")
        snapshot, issues = await ingest(tmp_path)
        a, b, c = snapshot.documents
        assert a.outgoing_links == sorted([b.hash, c.hash])
        assert b.outgoing_links == [a.hash]
        assert a.backlinks == [b.hash]
        assert c.backlinks == [a.hash]
        assert '<a href="/a#top">A</a>' in b.rendered_html
        assert issues.issues == []

    @pytest.mark.asyncio
    async def test_self_link_not_outgoing(self, tmp_path):
        """A document linking to itself does not list itself."""
        write(tmp_path, "a.md", "Me: [[a]]")
        snapshot, _ = await ingest(tmp_path)
        assert snapshot.documents[0].outgoing_links == []

    @pytest.mark.asyncio
    async def test_broken_link_warning(self, tmp_path):
        """Unresolved links record one warning per target."""
        write(tmp_path, "a.md", "[[Missing]] and again [[Missing]]")
        snapshot, issues = await ingest(tmp_path)
        assert [(i.category, i.severity.value) for i in issues.issues] == [
            ("broken-link", "warning")
        ]
        assert issues.issues[0].subject_hash == snapshot.documents[0].hash

    @pytest.mark.asyncio
    async def test_media_resolution_orders(self, tmp_path):
        """Media resolves relative to the doc, then root, then unique filename."""
        write(tmp_path, "notes/local.png", b"local")
        write(tmp_path, "root.png", b"root")
        write(tmp_path, "deep/assets/unique.png", b"unique")
        write(tmp_path, "notes/page.md", "![[local.png]] ![r](/root.png) ![[unique.png]]")
        snapshot, issues = await ingest(tmp_path)
        doc = snapshot.documents[0]
        expected = sorted(compute_hash(b) for b in (b"local", b"root", b"unique"))
        assert doc.media_refs == expected
        assert issues.issues == []
        assert f'src="/_media/{compute_hash(b"local")[:16]}.png"' in doc.rendered_html

    @pytest.mark.asyncio
    async def test_missing_media_warning(self, tmp_path):
        """Unresolved media records a missing-media warning."""
        write(tmp_path, "a.md", "![alt](nowhere.png)")
        _, issues = await ingest(tmp_path)
        assert [i.category for i in issues.issues] == ["missing-media"]

    @pytest.mark.asyncio
    async def test_ambiguous_filename_not_resolved(self, tmp_path):
        """Two media files with the same name are not guessed between."""
        write(tmp_path, "x/pic.png", b"one")
        write(tmp_path, "y/pic.png", b"two")
        write(tmp_path, "a.md", "![[pic.png]]")
        _, issues = await ingest(tmp_path)
        assert [i.category for i in issues.issues] == ["missing-media"]

    @pytest.mark.asyncio
    async def test_output_dir_excluded(self, tmp_path):
        """Excluded directories are never ingested."""
        write(tmp_path, "a.md", "doc")
        write(tmp_path, "dist/posts.md", "generated")
        issues = IssueCollector()
        snapshot = await VaultIngest(
            tmp_path, BuildConfig(), issues, exclude=[tmp_path / "dist"]
        ).ingest()
        assert [d.path for d in snapshot.documents] == ["a.md"]
