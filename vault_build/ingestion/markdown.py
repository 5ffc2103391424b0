"""
Markdown Parsing and Rendering

Line-based markdown processing for vault documents.

Algorithm:
    1. Split the body into blocks (fenced code, headings, lists, quotes,
       raw HTML, paragraphs), tracking heading anchors for the TOC
    2. Tokenize inline spans (code, wiki links, embeds, images, links)
       into placeholders so escaping never touches link targets
    3. Render each block to HTML and to plain text in the same pass

Link and media targets are resolved through callbacks supplied by the
caller, so the renderer has no knowledge of the vault index.
"""

from __future__ import annotations

import html
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import unquote

from vault_build.types.documents import TocEntry
from vault_build.utils.text import collapse_whitespace, slugify

MEDIA_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg")
MARKDOWN_EXTENSIONS = (".md", ".markdown")


@dataclass(frozen=True)
class LinkRef:
    """
    A reference found in a document body.

    kind is one of:
        "wiki"   - [[target#fragment|label]]
        "link"   - [label](target#fragment)
        "embed"  - ![[target]] (media when target has a media extension,
                   otherwise a note transclusion treated as a link)
        "image"  - ![alt](target) or <img src="target">
    """

    kind: str
    target: str
    label: str = ""
    fragment: str = ""

    @property
    def is_media(self) -> bool:
        if self.kind == "image":
            return True
        return self.kind == "embed" and self.target.lower().endswith(MEDIA_EXTENSIONS)


@dataclass
class RenderedMarkdown:
    html: str
    plain_text: str
    toc: list[TocEntry] = field(default_factory=list)


LinkResolver = Callable[[LinkRef], "str | None"]


# Regex patterns
_HEADER_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_FENCE_PATTERN = re.compile(r"^\s*(```+|~~~+)\s*([\w+.-]*)")
_LIST_PATTERN = re.compile(r"^\s*(?:([-*+])|(\d+)[.)])\s+(.*)$")
_HR_PATTERN = re.compile(r"^\s*([-*_])(?:\s*\1){2,}\s*$")
_QUOTE_PATTERN = re.compile(r"^\s*>\s?(.*)$")
_INLINE_PATTERN = re.compile(
    r"(?P<tick>`+)(?P<code>.+?)(?P=tick)"
    r"|!\[\[(?P<embed>[^\]\n]+)\]\]"
    r"|\[\[(?P<wiki>[^\]\n]+)\]\]"
    r"|!\[(?P<alt>[^\]\n]*)\]\((?P<src>[^)\s]+)(?:\s+\"[^\"]*\")?\)"
    r"|\[(?P<text>[^\]\n]+)\]\((?P<href>[^)\s]+)(?:\s+\"[^\"]*\")?\)"
    r"|(?P<imgtag><img\b[^>]*?\bsrc=[\"'](?P<imgsrc>[^\"']+)[\"'][^>]*>)",
    re.IGNORECASE,
)
_IMG_SRC_PATTERN = re.compile(r"(<img\b[^>]*?\bsrc=[\"'])([^\"']+)([\"'])", re.IGNORECASE)
_TAG_STRIP_PATTERN = re.compile(r"<[^>]+>")
_INLINE_TAG_PATTERN = re.compile(r"(?<![\w/#&])#([A-Za-z][\w/-]*)")
_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_EMPHASIS = [
    (re.compile(r"\*\*(?=\S)(.+?)(?<=\S)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"__(?=\S)(.+?)(?<=\S)__"), r"<strong>\1</strong>"),
    (re.compile(r"~~(?=\S)(.+?)(?<=\S)~~"), r"<del>\1</del>"),
    (re.compile(r"(?<![*\w])\*(?=\S)(.+?)(?<=\S)\*(?![*\w])"), r"<em>\1</em>"),
    (re.compile(r"(?<![_\w])_(?=\S)(.+?)(?<=\S)_(?![_\w])"), r"<em>\1</em>"),
]
_EMPHASIS_MARKERS = re.compile(r"\*\*|__|~~|(?<![\w*])\*(?=\S)|(?<=\S)\*(?![\w*])|(?<!\w)_(?=\S)|(?<=\S)_(?!\w)")


def is_external(target: str) -> bool:
    """True for URLs with a scheme (http:, mailto:, ...) and protocol-relative URLs."""
    return bool(_SCHEME_PATTERN.match(target)) or target.startswith("//")


def extract_title(body: str) -> str | None:
    """Text of the first level-1 heading outside code blocks."""
    for line in _lines_outside_code(body):
        match = _HEADER_PATTERN.match(line)
        if match and len(match.group(1)) == 1:
            return _inline_plain(match.group(2)).strip() or None
    return None


def extract_inline_tags(plain_text: str) -> list[str]:
    """Inline #tags from rendered plain text."""
    return sorted(set(_INLINE_TAG_PATTERN.findall(plain_text)))


def scan_references(body: str) -> list[LinkRef]:
    """
    Find every link and media reference outside fenced and inline code.

    External URLs and pure in-page anchors are not returned.
    """
    refs: list[LinkRef] = []
    for line in _lines_outside_code(body):
        for match in _INLINE_PATTERN.finditer(line):
            ref = _ref_from_match(match)
            if ref is not None:
                refs.append(ref)
    return refs


def render_markdown(
    body: str,
    *,
    resolve_link: LinkResolver,
    resolve_media: LinkResolver,
) -> RenderedMarkdown:
    """
    Render a markdown body to HTML and plain text.

    Args:
        body: Markdown without frontmatter
        resolve_link: Maps a document reference to an href, or None if broken
        resolve_media: Maps a media reference to a src URL, or None if missing

    Returns:
        RenderedMarkdown with html, plain_text and toc
    """
    renderer = _Renderer(resolve_link, resolve_media)
    return renderer.render(body)


# -----------------------------------------------------------------------------
# Internals
# -----------------------------------------------------------------------------


def _lines_outside_code(body: str) -> list[str]:
    lines: list[str] = []
    fence: str | None = None
    for line in body.split("\n"):
        match = _FENCE_PATTERN.match(line)
        if fence is None and match:
            fence = match.group(1)
            continue
        if fence is not None:
            if line.strip().startswith(fence):
                fence = None
            continue
        lines.append(line)
    return lines


def _split_target(raw: str) -> tuple[str, str]:
    """Split "path#fragment" and URL-decode the path."""
    target, _, fragment = raw.partition("#")
    return unquote(target.strip()), fragment.strip()


def _ref_from_match(match: re.Match[str]) -> LinkRef | None:
    if match.group("code") is not None:
        return None
    if (inner := match.group("embed")) is not None:
        target, _, label = inner.partition("|")
        path, fragment = _split_target(target)
        return LinkRef("embed", path, label.strip(), fragment)
    if (inner := match.group("wiki")) is not None:
        target, _, label = inner.partition("|")
        path, fragment = _split_target(target)
        if not path:
            return None
        return LinkRef("wiki", path, label.strip(), fragment)
    if (src := match.group("src")) is not None:
        if is_external(src):
            return None
        path, fragment = _split_target(src)
        return LinkRef("image", path, match.group("alt") or "", fragment)
    if (href := match.group("href")) is not None:
        if is_external(href) or href.startswith("#"):
            return None
        path, fragment = _split_target(href)
        return LinkRef("link", path, match.group("text"), fragment)
    if (src := match.group("imgsrc")) is not None:
        if is_external(src):
            return None
        path, fragment = _split_target(src)
        return LinkRef("image", path, "", fragment)
    return None


def _inline_plain(text: str) -> str:
    """Strip inline markup, keeping the human-readable part."""

    def replace(match: re.Match[str]) -> str:
        if match.group("code") is not None:
            return match.group("code")
        if (inner := match.group("embed")) is not None:
            target, _, label = inner.partition("|")
            return label.strip() if label.strip() else ""
        if (inner := match.group("wiki")) is not None:
            target, _, label = inner.partition("|")
            return label.strip() or target.partition("#")[0].strip()
        if match.group("src") is not None:
            return match.group("alt") or ""
        if match.group("href") is not None:
            return match.group("text")
        return ""

    stripped = _INLINE_PATTERN.sub(replace, text)
    stripped = _TAG_STRIP_PATTERN.sub("", stripped)
    return _EMPHASIS_MARKERS.sub("", stripped)


class _Renderer:
    """Single-use block renderer."""

    def __init__(self, resolve_link: LinkResolver, resolve_media: LinkResolver) -> None:
        self._resolve_link = resolve_link
        self._resolve_media = resolve_media
        self._html: list[str] = []
        self._plain: list[str] = []
        self._toc: list[TocEntry] = []
        self._anchors: dict[str, int] = {}

    def render(self, body: str) -> RenderedMarkdown:
        lines = body.split("\n")
        paragraph: list[str] = []
        i = 0

        def flush_paragraph() -> None:
            if paragraph:
                text = " ".join(line.strip() for line in paragraph)
                self._html.append(f"<p>{self._inline(text)}</p>")
                self._plain.append(_inline_plain(text))
                paragraph.clear()

        while i < len(lines):
            line = lines[i]

            fence = _FENCE_PATTERN.match(line)
            if fence:
                flush_paragraph()
                i = self._code_block(lines, i, fence.group(1), fence.group(2))
                continue

            if not line.strip():
                flush_paragraph()
                i += 1
                continue

            header = _HEADER_PATTERN.match(line)
            if header:
                flush_paragraph()
                self._heading(len(header.group(1)), header.group(2))
                i += 1
                continue

            if _HR_PATTERN.match(line):
                flush_paragraph()
                self._html.append("<hr />")
                i += 1
                continue

            if _LIST_PATTERN.match(line):
                flush_paragraph()
                i = self._list(lines, i)
                continue

            if _QUOTE_PATTERN.match(line):
                flush_paragraph()
                i = self._blockquote(lines, i)
                continue

            if line.lstrip().startswith("<") and not paragraph:
                i = self._html_block(lines, i)
                continue

            paragraph.append(line)
            i += 1

        flush_paragraph()
        return RenderedMarkdown(
            html="\n".join(self._html),
            plain_text=collapse_whitespace("\n\n".join(self._plain)),
            toc=self._toc,
        )

    # -- blocks ---------------------------------------------------------------

    def _code_block(self, lines: list[str], start: int, marker: str, lang: str) -> int:
        code: list[str] = []
        i = start + 1
        while i < len(lines) and not lines[i].strip().startswith(marker):
            code.append(lines[i])
            i += 1
        cls = f' class="language-{html.escape(lang)}"' if lang else ""
        self._html.append(f"<pre><code{cls}>{html.escape(chr(10).join(code))}</code></pre>")
        # Skip the closing fence (an unterminated fence runs to end of body)
        return i + 1

    def _heading(self, level: int, raw: str) -> None:
        text = _inline_plain(raw).strip()
        anchor = self._anchor(text)
        self._toc.append(TocEntry(level=level, text=text, anchor=anchor))
        self._html.append(f'<h{level} id="{anchor}">{self._inline(raw)}</h{level}>')
        self._plain.append(text)

    def _anchor(self, text: str) -> str:
        base = slugify(text)
        count = self._anchors.get(base, 0)
        self._anchors[base] = count + 1
        return base if count == 0 else f"{base}-{count}"

    def _list(self, lines: list[str], start: int) -> int:
        first = _LIST_PATTERN.match(lines[start])
        assert first is not None
        ordered = first.group(2) is not None
        tag = "ol" if ordered else "ul"
        items: list[str] = []
        i = start
        while i < len(lines):
            match = _LIST_PATTERN.match(lines[i])
            if match:
                items.append(match.group(3))
            elif lines[i].strip() and lines[i].startswith((" ", "\t")) and items:
                # Continuation line of the previous item
                items[-1] = f"{items[-1]} {lines[i].strip()}"
            else:
                break
            i += 1
        rendered = "".join(f"<li>{self._inline(item)}</li>" for item in items)
        self._html.append(f"<{tag}>{rendered}</{tag}>")
        self._plain.append("\n".join(_inline_plain(item) for item in items))
        return i

    def _blockquote(self, lines: list[str], start: int) -> int:
        quoted: list[str] = []
        i = start
        while i < len(lines):
            match = _QUOTE_PATTERN.match(lines[i])
            if not match:
                break
            quoted.append(match.group(1))
            i += 1
        text = " ".join(q.strip() for q in quoted if q.strip())
        self._html.append(f"<blockquote><p>{self._inline(text)}</p></blockquote>")
        self._plain.append(_inline_plain(text))
        return i

    def _html_block(self, lines: list[str], start: int) -> int:
        block: list[str] = []
        i = start
        while i < len(lines) and lines[i].strip():
            block.append(lines[i])
            i += 1
        raw = "\n".join(block)
        self._html.append(_IMG_SRC_PATTERN.sub(self._rewrite_img_src, raw))
        plain = _TAG_STRIP_PATTERN.sub("", raw).strip()
        if plain:
            self._plain.append(html.unescape(plain))
        return i

    def _rewrite_img_src(self, match: re.Match[str]) -> str:
        src = match.group(2)
        if is_external(src):
            return match.group(0)
        path, fragment = _split_target(src)
        resolved = self._resolve_media(LinkRef("image", path, "", fragment))
        return f"{match.group(1)}{html.escape(resolved or src)}{match.group(3)}"

    # -- inline ---------------------------------------------------------------

    def _inline(self, text: str) -> str:
        placeholders: list[str] = []

        def stash(fragment: str) -> str:
            placeholders.append(fragment)
            return f"\x00{len(placeholders) - 1}\x00"

        def replace(match: re.Match[str]) -> str:
            if match.group("code") is not None:
                return stash(f"<code>{html.escape(match.group('code'))}</code>")
            if match.group("src") is not None and is_external(match.group("src")):
                alt = html.escape(match.group("alt") or "")
                return stash(f'<img src="{html.escape(match.group("src"))}" alt="{alt}" />')
            if match.group("href") is not None and (
                is_external(match.group("href")) or match.group("href").startswith("#")
            ):
                href = html.escape(match.group("href"))
                return stash(f'<a href="{href}">{html.escape(match.group("text"))}</a>')
            if match.group("imgsrc") is not None and is_external(match.group("imgsrc")):
                return stash(match.group("imgtag"))
            ref = _ref_from_match(match)
            if ref is None:
                return stash(html.escape(match.group(0)))
            return stash(self._render_ref(ref))

        tokenized = _INLINE_PATTERN.sub(replace, text)
        escaped = html.escape(tokenized, quote=False)
        for pattern, replacement in _EMPHASIS:
            escaped = pattern.sub(replacement, escaped)
        return re.sub(r"\x00(\d+)\x00", lambda m: placeholders[int(m.group(1))], escaped)

    def _render_ref(self, ref: LinkRef) -> str:
        if ref.is_media:
            src = self._resolve_media(ref)
            alt = html.escape(ref.label or ref.target.rsplit("/", 1)[-1])
            if src is None:
                return f'<span class="missing-media">{alt}</span>'
            return f'<img src="{html.escape(src)}" alt="{alt}" />'

        label = ref.label or ref.target.rsplit("/", 1)[-1]
        if label.lower().endswith(MARKDOWN_EXTENSIONS):
            label = label.rsplit(".", 1)[0]
        href = self._resolve_link(ref)
        if href is None:
            return f'<span class="broken-link">{html.escape(label)}</span>'
        return f'<a href="{html.escape(href)}">{html.escape(label)}</a>'
