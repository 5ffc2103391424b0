"""Tests for frontmatter, markdown rendering, reference scanning and slugs."""

import pytest

from vault_build.errors import IngestError
from vault_build.ingestion.frontmatter import (
    frontmatter_tags,
    is_published,
    parse_frontmatter,
    split_frontmatter,
)
from vault_build.ingestion.markdown import (
    extract_inline_tags,
    extract_title,
    render_markdown,
    scan_references,
)
from vault_build.ingestion.slugs import SlugManager, base_slug
from vault_build.utils.issues import IssueCollector
from vault_build.utils.text import excerpt, slugify, word_count


def _no_links(ref):
    return None


class TestFrontmatter:
    """Test YAML frontmatter parsing."""

    def test_no_frontmatter(self):
        """Text without a leading delimiter is all body."""
        assert split_frontmatter("# Title\n") == (None, "# Title\n")

    def test_parse_mapping(self):
        """A mapping is parsed and the body follows the closing delimiter."""
        fm, body = parse_frontmatter("---\ntitle: Hello\ntags: [a, b]\n---\n\nBody", "a.md")
        assert fm == {"title": "Hello", "tags": ["a", "b"]}
        assert body == "Body"

    def test_preserves_key_order(self):
        """Frontmatter keeps insertion order."""
        fm, _ = parse_frontmatter("---\nz: 1\na: 2\nm: 3\n---\n", "a.md")
        assert list(fm) == ["z", "a", "m"]

    def test_dates_become_strings(self):
        """YAML dates are converted to ISO strings."""
        fm, _ = parse_frontmatter("---\ndate: 2024-01-15\n---\n", "a.md")
        assert fm["date"] == "2024-01-15"

    def test_malformed_yaml_raises(self):
        """Malformed YAML raises IngestError naming the file."""
        with pytest.raises(IngestError, match="bad.md"):
            parse_frontmatter("---\ntitle: [unclosed\n---\nBody", "bad.md")

    def test_non_mapping_raises(self):
        """A list block is not valid frontmatter."""
        with pytest.raises(IngestError, match="mapping"):
            parse_frontmatter("---\n- a\n- b\n---\nBody", "list.md")

    def test_unterminated_block_is_body(self):
        """An opening delimiter without a close is treated as body."""
        fm, body = parse_frontmatter("---\ntitle: x\nno close", "a.md")
        assert fm == {}
        assert body.startswith("---")

    def test_tags_from_string_and_list(self):
        """Tags accept lists and comma/space separated strings."""
        assert frontmatter_tags({"tags": ["a", "#b"]}) == ["a", "b"]
        assert frontmatter_tags({"tags": "x, y z"}) == ["x", "y", "z"]
        assert frontmatter_tags({}) == []

    def test_published_flags(self):
        """published: false and draft: true mark a document unpublished."""
        assert is_published({}) is True
        assert is_published({"published": False}) is False
        assert is_published({"draft": True}) is False


class TestRendering:
    """Test markdown rendering to HTML and plain text."""

    def test_heading_anchors_and_toc(self):
        """Headings get slug anchors; duplicates are numbered."""
        result = render_markdown(
            "# Intro\n\n## Setup\n\n## Setup\n",
            resolve_link=_no_links,
            resolve_media=_no_links,
        )
        assert '<h1 id="intro">Intro</h1>' in result.html
        assert [t.anchor for t in result.toc] == ["intro", "setup", "setup-1"]
        assert [t.level for t in result.toc] == [1, 2, 2]

    def test_resolved_wiki_link(self):
        """A resolved wiki link renders as an anchor with its label."""
        result = render_markdown(
            "See [[Other Note|the other one]].",
            resolve_link=lambda ref: "/other-note",
            resolve_media=_no_links,
        )
        assert '<a href="/other-note">the other one</a>' in result.html
        assert "the other one" in result.plain_text

    def test_broken_link_span(self):
        """An unresolved link renders as a broken-link span."""
        result = render_markdown("[[Nowhere]]", resolve_link=_no_links, resolve_media=_no_links)
        assert '<span class="broken-link">Nowhere</span>' in result.html

    def test_missing_media_span(self):
        """An unresolved image renders as a missing-media span."""
        result = render_markdown("![[gone.png]]", resolve_link=_no_links, resolve_media=_no_links)
        assert '<span class="missing-media">gone.png</span>' in result.html

    def test_external_link_untouched(self):
        """External links are rendered as-is without resolution."""
        calls = []
        result = render_markdown(
            "[site](https://example.com)",
            resolve_link=lambda ref: calls.append(ref) or None,
            resolve_media=_no_links,
        )
        assert '<a href="https://example.com">site</a>' in result.html
        assert calls == []

    def test_code_is_escaped_and_not_linked(self):
        """Fenced code is escaped and link syntax inside it is ignored."""
        result = render_markdown(
            "```python\nx = '<b>' # [[not a link]]\n```",
            resolve_link=_no_links,
            resolve_media=_no_links,
        )
        assert '<pre><code class="language-python">' in result.html
        assert "&lt;b&gt;" in result.html
        assert "broken-link" not in result.html

    def test_img_tag_src_rewritten(self):
        """Raw <img> tags point at the resolved media URL."""
        result = render_markdown(
            '<img src="pic.png" alt="x">',
            resolve_link=_no_links,
            resolve_media=lambda ref: "/_media/abc.png",
        )
        assert 'src="/_media/abc.png"' in result.html

    def test_emphasis_and_lists(self):
        """Emphasis and lists render to HTML and strip from plain text."""
        result = render_markdown(
            "Some **bold** and *italic* text.\n\n- one\n- two",
            resolve_link=_no_links,
            resolve_media=_no_links,
        )
        assert "<strong>bold</strong>" in result.html
        assert "<em>italic</em>" in result.html
        assert "<ul><li>one</li><li>two</li></ul>" in result.html
        assert "**" not in result.plain_text


class TestReferences:
    """Test reference scanning."""

    def test_reference_kinds(self):
        """Wiki links, markdown links, embeds and images are found."""
        body = (
            "[[Note#Section]] [text](other.md) ![[pic.png]] ![alt](img/a.jpg) "
            '<img src="b.gif"> [ext](https://x.org) [anchor](#top)'
        )
        refs = scan_references(body)
        assert [(r.kind, r.target) for r in refs] == [
            ("wiki", "Note"),
            ("link", "other.md"),
            ("embed", "pic.png"),
            ("image", "img/a.jpg"),
            ("image", "b.gif"),
        ]
        assert refs[0].fragment == "Section"
        assert [r.is_media for r in refs] == [False, False, True, True, True]

    def test_references_in_code_ignored(self):
        """References inside fences and inline code are skipped."""
        body = "`[[inline]]`\n\n```\n[[fenced]]\n```\n[[real]]"
        assert [r.target for r in scan_references(body)] == ["real"]

    def test_url_encoded_target(self):
        """Percent-encoded link targets are decoded."""
        refs = scan_references("[x](My%20Note.md)")
        assert refs[0].target == "My Note.md"

    def test_extract_title(self):
        """The first h1 outside code is the title."""
        assert extract_title("```\n# not this\n```\n## Sub\n# Real *Title*") == "Real Title"
        assert extract_title("no headings") is None

    def test_inline_tags(self):
        """Inline #tags are extracted, anchors and headings are not."""
        assert extract_inline_tags("Tagged #python and #data/science, not a#b") == [
            "data/science",
            "python",
        ]


class TestSlugs:
    """Test slug assignment."""

    def test_frontmatter_slug_wins(self):
        """Frontmatter slug overrides the filename."""
        assert base_slug("notes/a.md", {"slug": "Custom Slug"}) == "custom-slug"

    def test_index_takes_folder_name(self):
        """index.md is named after its folder."""
        assert base_slug("guides/Getting Started/index.md", {}) == "getting-started"

    def test_conflicts_get_suffixes(self):
        """Repeated slugs get -2, -3 and record info issues."""
        issues = IssueCollector()
        manager = SlugManager(issues)
        assert manager.assign("a/notes.md", {}) == "notes"
        assert manager.assign("b/notes.md", {}) == "notes-2"
        assert manager.assign("c/notes.md", {}) == "notes-3"
        assert [i.category for i in issues.issues] == ["slug-conflict", "slug-conflict"]
        assert all(i.severity.value == "info" for i in issues.issues)


class TestTextHelpers:
    """Test slugify, word_count and excerpt."""

    def test_slugify(self):
        """Punctuation and accents collapse into hyphens."""
        assert slugify("Héllo, World! (draft)") == "hello-world-draft"
        assert slugify("!!!") == "untitled"

    def test_word_count(self):
        """Words are counted, punctuation ignored."""
        assert word_count("one two, three. it's") == 4

    def test_excerpt_truncates_on_word(self):
        """Long first paragraphs are cut on a word boundary."""
        text = "word " * 100 + "\n\nsecond paragraph"
        result = excerpt(text, max_chars=20)
        assert result.endswith("...")
        assert "second" not in result
