"""
Document Types

Markdown documents parsed from the vault.

Models:
    - TocEntry: One heading in a document's table of contents
    - Document: A parsed, link-resolved markdown document
    - MediaSource: One media file discovered during ingest
    - VaultSnapshot: Everything Ingest hands to the downstream stages
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class TocEntry(BaseModel):
    """A heading in a document."""

    level: int
    text: str
    anchor: str


class Document(BaseModel):
    """
    A parsed source document.

    Attributes:
        hash: SHA-256 of the raw file bytes (primary key)
        path: Vault-relative POSIX path
        slug: Unique URL slug
        title: Frontmatter title, first h1, or filename stem
        frontmatter: Parsed YAML frontmatter (insertion order preserved)
        body: Markdown body with the frontmatter block removed
        toc: Headings in document order
        rendered_html: HTML rendering with resolved links
        plain_text: Body with markup stripped
        excerpt: First paragraph of plain text, truncated
        word_count: Words in plain_text
        tags: Frontmatter tags plus inline #tags, sorted
        outgoing_links: Hashes of linked documents, sorted
        backlinks: Hashes of documents linking here, sorted
        media_refs: Hashes of referenced media, sorted
        aliases: Other vault paths with identical bytes

    Created during Ingest and not modified afterwards, except for `embedding`
    which the Embedding Pipeline attaches. `embedding` is never serialized.
    """

    hash: str
    path: str
    slug: str
    title: str
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    toc: list[TocEntry] = Field(default_factory=list)
    rendered_html: str = ""
    plain_text: str = ""
    excerpt: str = ""
    word_count: int = 0
    tags: list[str] = Field(default_factory=list)
    outgoing_links: list[str] = Field(default_factory=list)
    backlinks: list[str] = Field(default_factory=list)
    media_refs: list[str] = Field(default_factory=list)
    aliases: list[str] = Field(default_factory=list)
    embedding: list[float] | None = Field(default=None, exclude=True)


class MediaSource(BaseModel):
    """A media file found in the vault, before processing."""

    hash: str
    path: str
    mime_type: str
    size: int


class VaultSnapshot(BaseModel):
    """
    Output of Vault Ingest.

    Documents are sorted by path; media sources are sorted by path.
    Index maps point vault-relative paths and slugs at content hashes.
    """

    documents: list[Document] = Field(default_factory=list)
    media: list[MediaSource] = Field(default_factory=list)
    path_index: dict[str, str] = Field(default_factory=dict)
    slug_index: dict[str, str] = Field(default_factory=dict)

    def document(self, content_hash: str) -> Document | None:
        for doc in self.documents:
            if doc.hash == content_hash:
                return doc
        return None
